import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.crud.audit_log import create_audit_log

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_best_effort(
    session: AsyncSession,
    label: str,
    effect: Callable[[], Awaitable[T]],
) -> T | None:
    """부수 효과를 SAVEPOINT 안에서 실행하고 실패는 로그만 남김

    감사 로그, 스냅샷, 코멘트처럼 실패해도 주 작업을 막으면 안 되는 효과에 사용합니다.
    SAVEPOINT가 롤백되므로 주 트랜잭션은 계속 사용할 수 있습니다.
    """
    try:
        async with session.begin_nested():
            return await effect()
    except Exception:
        logger.warning(f"부수 효과 실패 (무시): {label}", exc_info=True)
        return None


async def record_audit(
    session: AsyncSession,
    actor_id: str | None,
    action: str,
    entity_type: str,
    entity_id: Any,
    before_json: Any | None = None,
    after_json: Any | None = None,
) -> None:
    """감사 로그 기록 (best-effort)"""
    if not action or not entity_type or entity_id is None:
        logger.warning(f"감사 로그 필수값 누락: action={action}, entity_type={entity_type}, entity_id={entity_id}")
        return

    async def _write():
        await create_audit_log(
            session,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            before_json=before_json,
            after_json=after_json,
        )

    await run_best_effort(session, f"audit:{action}", _write)
