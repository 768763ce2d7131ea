from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.models.content_import import ContentImport, ImportStatus


async def get_import_by_id(session: AsyncSession, import_id: int) -> ContentImport | None:
    """ID로 임포트 조회"""
    result = await session.execute(select(ContentImport).where(ContentImport.id == import_id))
    return result.scalar_one_or_none()


async def list_imports(
    session: AsyncSession,
    created_by: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[Sequence[ContentImport], int]:
    """임포트 목록 조회 (최신순)"""
    stmt = select(ContentImport)
    count_stmt = select(func.count(ContentImport.id))
    if created_by is not None:
        stmt = stmt.where(ContentImport.created_by == created_by)
        count_stmt = count_stmt.where(ContentImport.created_by == created_by)
    if status is not None:
        stmt = stmt.where(ContentImport.status == status)
        count_stmt = count_stmt.where(ContentImport.status == status)

    total = await session.scalar(count_stmt)
    stmt = stmt.order_by(ContentImport.id.desc()).limit(limit).offset(offset)
    result = await session.execute(stmt)
    return result.scalars().all(), total or 0


async def create_import(
    session: AsyncSession,
    created_by: str,
    source_bucket: str,
    source_path: str,
    source_mime: str | None = None,
) -> ContentImport:
    content_import = ContentImport(
        created_by=created_by,
        source_bucket=source_bucket,
        source_path=source_path,
        source_mime=source_mime,
        status=ImportStatus.UPLOADED.value,
    )
    session.add(content_import)
    await session.flush()
    return content_import


async def set_raw_extract(session: AsyncSession, content_import: ContentImport, raw_extract: dict[str, Any]) -> None:
    content_import.raw_extract = raw_extract
    content_import.status = ImportStatus.EXTRACTED.value
    await session.flush()


async def set_ai_suggested(session: AsyncSession, content_import: ContentImport, ai_suggested: dict[str, Any]) -> None:
    content_import.ai_suggested = ai_suggested
    content_import.status = ImportStatus.AI_SUGGESTED.value
    await session.flush()


async def set_final_approved(session: AsyncSession, content_import: ContentImport, final_approved: Any) -> None:
    content_import.final_approved = final_approved
    content_import.status = ImportStatus.FINAL_APPROVED.value
    await session.flush()
