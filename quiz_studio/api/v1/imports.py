from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.core.security import Caller, get_current_caller
from quiz_studio.models.base import get_db
from quiz_studio.schemas import content_import as import_schema
from quiz_studio.services import import_service

router = APIRouter(prefix="/imports", tags=["imports"])


@router.post("", response_model=import_schema.ImportResponse, status_code=status.HTTP_201_CREATED)
async def create_import(
    request: import_schema.ImportCreateRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """업로드된 문서로 임포트 생성 API"""
    content_import = await import_service.create_import(
        db,
        caller,
        source_path=request.source_path,
        source_bucket=request.source_bucket,
        source_mime=request.source_mime,
    )
    return import_schema.ImportResponse.model_validate(content_import)


@router.get("", response_model=import_schema.ImportListResponse)
async def list_imports(
    status_filter: str | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """임포트 목록 조회 API"""
    imports, total = await import_service.list_imports(db, caller, status=status_filter, limit=limit, offset=offset)
    return import_schema.ImportListResponse(
        imports=[import_schema.ImportResponse.model_validate(i) for i in imports],
        total=total,
    )


@router.get("/{import_id}", response_model=import_schema.ImportResponse)
async def get_import(
    import_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    content_import = await import_service.get_import(db, import_id, caller)
    return import_schema.ImportResponse.model_validate(content_import)


@router.post("/{import_id}/extract", response_model=import_schema.ImportResponse)
async def extract_import(
    import_id: int,
    request: import_schema.ImportExtractRequest | None = None,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """원본 문서 추출 API (EXTRACTED)"""
    purpose = request.purpose if request else None
    content_import = await import_service.extract_import(db, import_id, caller, purpose=purpose)
    return import_schema.ImportResponse.model_validate(content_import)


@router.post("/{import_id}/structure", response_model=import_schema.ImportResponse)
async def structure_import(
    import_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """후보 문제 구조화 API (AI_SUGGESTED)"""
    content_import = await import_service.structure_import(db, import_id, caller)
    return import_schema.ImportResponse.model_validate(content_import)


@router.post("/{import_id}/finalize", response_model=import_schema.ImportResponse)
async def finalize_import(
    import_id: int,
    request: import_schema.ImportFinalizeRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """큐레이터 최종 승인 API (FINAL_APPROVED)"""
    content_import = await import_service.finalize_import(db, import_id, caller, request.final)
    return import_schema.ImportResponse.model_validate(content_import)


@router.post("/{import_id}/apply", response_model=import_schema.ImportApplyResponse)
async def apply_import(
    import_id: int,
    request: import_schema.ImportApplyRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """승인된 후보 문제를 DRAFT 퀴즈에 반영하는 API"""
    return await import_service.apply_import_to_quiz(
        db,
        import_id=import_id,
        quiz_id=request.quiz_id,
        caller=caller,
        source=request.source,
    )
