from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.core.security import Caller, get_current_caller
from quiz_studio.models.base import get_db
from quiz_studio.schemas import quiz as quiz_schema, quiz_version as version_schema
from quiz_studio.services import quiz_service, versioning

router = APIRouter(prefix="/quizzes", tags=["quizzes"])


@router.post("", response_model=quiz_schema.QuizResponse, status_code=status.HTTP_201_CREATED)
async def create_quiz(
    request: quiz_schema.QuizCreateRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """퀴즈 생성 API (DRAFT)"""
    quiz = await quiz_service.create_quiz(db, caller, request)
    return quiz_schema.QuizResponse.model_validate(quiz)


@router.get("", response_model=quiz_schema.QuizListResponse)
async def list_quizzes(
    workflow_status: str | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """퀴즈 목록 조회 API"""
    quizzes, total = await quiz_service.list_quizzes(
        db, caller, workflow_status=workflow_status, limit=limit, offset=offset
    )
    return quiz_schema.QuizListResponse(
        quizzes=[quiz_schema.QuizResponse.model_validate(q) for q in quizzes],
        total=total,
    )


@router.get("/{quiz_id}", response_model=quiz_schema.QuizDetailResponse)
async def get_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """퀴즈 상세 조회 API (문제 + 선택지)"""
    return await quiz_service.get_quiz(db, quiz_id, caller)


@router.patch("/{quiz_id}", response_model=quiz_schema.QuizResponse)
async def update_quiz(
    quiz_id: int,
    request: quiz_schema.QuizUpdateRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    quiz = await quiz_service.update_quiz(db, quiz_id, caller, request)
    return quiz_schema.QuizResponse.model_validate(quiz)


@router.post("/{quiz_id}/submit", response_model=quiz_schema.QuizResponse)
async def submit_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """검토 요청 API (DRAFT → SUBMITTED)"""
    quiz = await quiz_service.submit_quiz(db, quiz_id, caller)
    return quiz_schema.QuizResponse.model_validate(quiz)


@router.post("/{quiz_id}/review", response_model=quiz_schema.QuizResponse)
async def review_quiz(
    quiz_id: int,
    request: quiz_schema.QuizReviewRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """검토 결정 API (SUBMITTED → APPROVED | REJECTED)"""
    quiz = await quiz_service.review_quiz(db, quiz_id, caller, request)
    return quiz_schema.QuizResponse.model_validate(quiz)


@router.post("/{quiz_id}/publish", response_model=quiz_schema.QuizResponse)
async def publish_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """게시 API (APPROVED → PUBLISHED)"""
    quiz = await quiz_service.publish_quiz(db, quiz_id, caller)
    return quiz_schema.QuizResponse.model_validate(quiz)


@router.post("/{quiz_id}/republish", response_model=quiz_schema.QuizResponse)
async def republish_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    quiz = await quiz_service.republish_quiz(db, quiz_id, caller)
    return quiz_schema.QuizResponse.model_validate(quiz)


@router.post("/{quiz_id}/unsubmit", response_model=quiz_schema.QuizResponse)
async def unsubmit_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """검토 요청 취소 API (SUBMITTED → DRAFT, 소유자)"""
    quiz = await quiz_service.unsubmit_quiz(db, quiz_id, caller)
    return quiz_schema.QuizResponse.model_validate(quiz)


@router.post(
    "/{quiz_id}/questions",
    response_model=quiz_schema.QuizQuestionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_question(
    quiz_id: int,
    request: quiz_schema.QuizQuestionRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """문제 추가 API"""
    question = await quiz_service.add_question(db, quiz_id, caller, request)
    return quiz_schema.QuizQuestionResponse.model_validate(question)


@router.get("/{quiz_id}/versions", response_model=version_schema.QuizVersionListResponse)
async def list_quiz_versions(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """버전 목록 API (최신순)"""
    versions = await versioning.list_quiz_versions(db, quiz_id, caller)
    return version_schema.QuizVersionListResponse(
        versions=[version_schema.QuizVersionSummary.model_validate(v) for v in versions],
        total=len(versions),
    )


@router.post(
    "/{quiz_id}/versions",
    response_model=version_schema.SnapshotResponse,
    status_code=status.HTTP_201_CREATED,
)
async def snapshot_quiz(
    quiz_id: int,
    request: version_schema.SnapshotRequest | None = None,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """수동 스냅샷 API (큐레이터)"""
    version = await versioning.create_manual_snapshot(db, quiz_id, caller, request.reason if request else None)
    return version_schema.SnapshotResponse(version_number=version.version_number)


@router.get("/{quiz_id}/versions/{version_number}", response_model=version_schema.QuizVersionResponse)
async def get_quiz_version(
    quiz_id: int,
    version_number: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    version = await versioning.get_quiz_version(db, quiz_id, version_number, caller)
    return version_schema.QuizVersionResponse.model_validate(version)


@router.get("/{quiz_id}/comments", response_model=quiz_schema.CurationCommentListResponse)
async def list_comments(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """검토 코멘트 목록 API"""
    comments = await quiz_service.list_comments(db, quiz_id, caller)
    return quiz_schema.CurationCommentListResponse(
        comments=[quiz_schema.CurationCommentResponse.model_validate(c) for c in comments],
        total=len(comments),
    )
