from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.models.quiz_version import QuizVersion


async def get_max_version_number(session: AsyncSession, quiz_id: int) -> int:
    """현재 최대 버전 번호 (없으면 0)"""
    max_version = await session.scalar(
        select(func.max(QuizVersion.version_number)).where(QuizVersion.quiz_id == quiz_id)
    )
    return max_version or 0


async def create_version(
    session: AsyncSession,
    quiz_id: int,
    version_number: int,
    snapshot: dict[str, Any],
    created_by: str | None,
    reason: str | None,
) -> QuizVersion:
    version = QuizVersion(
        quiz_id=quiz_id,
        version_number=version_number,
        snapshot=snapshot,
        created_by=created_by,
        reason=reason,
    )
    session.add(version)
    await session.flush()
    return version


async def list_versions(session: AsyncSession, quiz_id: int, limit: int = 50) -> Sequence[QuizVersion]:
    """최신 버전부터"""
    stmt = (
        select(QuizVersion)
        .where(QuizVersion.quiz_id == quiz_id)
        .order_by(QuizVersion.version_number.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_version(session: AsyncSession, quiz_id: int, version_number: int) -> QuizVersion | None:
    stmt = select(QuizVersion).where(
        QuizVersion.quiz_id == quiz_id,
        QuizVersion.version_number == version_number,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
