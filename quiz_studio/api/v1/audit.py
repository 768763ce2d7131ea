from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.core.security import Caller, can_curate, get_current_caller
from quiz_studio.crud import audit_log as audit_crud
from quiz_studio.exceptions import ForbiddenError
from quiz_studio.models.base import get_db
from quiz_studio.schemas import audit as audit_schema

router = APIRouter(prefix="/audit-log", tags=["audit"])


@router.get("", response_model=audit_schema.AuditLogListResponse)
async def list_audit_log(
    entity_type: str | None = Query(None),
    entity_id: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """감사 로그 조회 API (큐레이터)"""
    if not can_curate(caller):
        raise ForbiddenError("감사 로그는 큐레이터만 볼 수 있습니다")
    entries, total = await audit_crud.list_audit_logs(
        db, entity_type=entity_type, entity_id=entity_id, limit=limit, offset=offset
    )
    return audit_schema.AuditLogListResponse(
        entries=[audit_schema.AuditLogResponse.model_validate(e) for e in entries],
        total=total,
    )
