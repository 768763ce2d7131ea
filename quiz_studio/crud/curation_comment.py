from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.models.curation_comment import QuizCurationComment


async def create_comment(
    session: AsyncSession,
    quiz_id: int,
    author_id: str,
    message: str,
    kind: str = "decision",
) -> QuizCurationComment:
    comment = QuizCurationComment(quiz_id=quiz_id, author_id=author_id, kind=kind, message=message)
    session.add(comment)
    await session.flush()
    return comment


async def list_comments(session: AsyncSession, quiz_id: int) -> Sequence[QuizCurationComment]:
    """퀴즈별 검토 코멘트 (최신순)"""
    stmt = (
        select(QuizCurationComment)
        .where(QuizCurationComment.quiz_id == quiz_id)
        .order_by(QuizCurationComment.id.desc())
    )
    result = await session.execute(stmt)
    return result.scalars().all()
