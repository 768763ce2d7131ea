import json
import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.core.config import settings
from quiz_studio.core.locks import quiz_lock
from quiz_studio.core.security import Caller, can_curate
from quiz_studio.crud.content_import import (
    create_import as crud_create_import,
    get_import_by_id,
    list_imports as crud_list_imports,
    set_ai_suggested,
    set_final_approved,
    set_raw_extract,
)
from quiz_studio.crud.quiz import create_question, get_max_order_index, get_quiz_by_id
from quiz_studio.exceptions import (
    ForbiddenError,
    ImportNotFoundError,
    InvalidStateError,
    QuizNotFoundError,
    ValidationFailedError,
)
from quiz_studio.models.content_import import ContentImport
from quiz_studio.models.quiz import DifficultyLevel, QuizWorkflowStatus
from quiz_studio.schemas.ai import AIStructuringRequest
from quiz_studio.schemas.content_import import (
    TABULAR_KINDS,
    TEXT_KINDS,
    CandidateQuestion,
    ImportApplyResponse,
    SkippedCandidate,
    raw_extract_adapter,
)
from quiz_studio.services import ai_service
from quiz_studio.services.audit import record_audit
from quiz_studio.services.blob_store import get_blob_store
from quiz_studio.services.extractors import extract_document, require_kind

logger = logging.getLogger(__name__)

MIN_OPTIONS = 4


def _require_curator(caller: Caller) -> None:
    if not can_curate(caller):
        raise ForbiddenError("큐레이터 권한이 필요합니다")


async def _load_import(session: AsyncSession, import_id: int) -> ContentImport:
    content_import = await get_import_by_id(session, import_id)
    if not content_import:
        raise ImportNotFoundError(import_id)
    return content_import


async def create_import(
    session: AsyncSession,
    caller: Caller,
    source_path: str,
    source_bucket: str | None = None,
    source_mime: str | None = None,
) -> ContentImport:
    """업로드 완료된 문서로 임포트 생성 (UPLOADED)"""
    _require_curator(caller)
    bucket = source_bucket or settings.default_import_bucket
    try:
        content_import = await crud_create_import(
            session,
            created_by=caller.id,
            source_bucket=bucket,
            source_path=source_path,
            source_mime=source_mime,
        )
        await record_audit(
            session,
            actor_id=caller.id,
            action="import.create",
            entity_type="content_import",
            entity_id=content_import.id,
            after_json={"source_bucket": bucket, "source_path": source_path, "source_mime": source_mime},
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info(f"임포트 생성: id={content_import.id}, path={bucket}/{source_path}")
    return content_import


async def get_import(session: AsyncSession, import_id: int, caller: Caller) -> ContentImport:
    content_import = await _load_import(session, import_id)
    if content_import.created_by != caller.id and not can_curate(caller):
        raise ForbiddenError("임포트를 볼 권한이 없습니다")
    return content_import


async def list_imports(
    session: AsyncSession,
    caller: Caller,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ContentImport], int]:
    """임포트 목록 (큐레이터)"""
    _require_curator(caller)
    imports, total = await crud_list_imports(session, status=status, limit=limit, offset=offset)
    return list(imports), total


async def extract_import(
    session: AsyncSession,
    import_id: int,
    caller: Caller,
    purpose: str | None = None,
) -> ContentImport:
    """원본 문서를 내려받아 raw_extract 생성 (EXTRACTED)

    형식 판별은 다운로드 전에 수행하며, 다운로드/해석이 모두 성공한 뒤에만 레코드를 갱신합니다.
    재실행하면 이전 단계와 관계없이 raw_extract를 덮어쓰고 EXTRACTED로 되돌립니다.
    """
    _require_curator(caller)
    content_import = await _load_import(session, import_id)

    # 다운로드 전에 형식 판별
    kind = require_kind(content_import.source_path, content_import.source_mime)
    data = await get_blob_store().download(content_import.source_bucket, content_import.source_path)
    raw_extract = await extract_document(
        data,
        source_path=content_import.source_path,
        source_mime=content_import.source_mime,
        purpose=purpose,
        kind=kind,
    )

    try:
        previous_status = content_import.status
        await set_raw_extract(session, content_import, raw_extract)
        await record_audit(
            session,
            actor_id=caller.id,
            action="import.extract",
            entity_type="content_import",
            entity_id=import_id,
            before_json={"status": previous_status},
            after_json={"status": content_import.status, "kind": raw_extract.get("kind")},
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return content_import


async def structure_import(session: AsyncSession, import_id: int, caller: Caller) -> ContentImport:
    """raw_extract를 후보 문제로 구조화 (AI_SUGGESTED)

    표 형식(csv, xlsx, json)에 questions 목록이 있으면 외부 호출 없이 그대로 승격합니다.
    """
    _require_curator(caller)
    content_import = await _load_import(session, import_id)
    if not content_import.raw_extract:
        raise InvalidStateError("먼저 문서를 추출하세요 (raw_extract 없음)")

    raw = content_import.raw_extract
    try:
        extract = raw_extract_adapter.validate_python(raw)
    except ValidationError:
        # 알 수 없는 형식은 직렬화해서 구조화 요청
        logger.warning(f"알 수 없는 raw_extract 형식: import_id={import_id}, kind={raw.get('kind')}")
        extract = None

    kind = extract.kind if extract is not None else None
    if kind in TABULAR_KINDS and getattr(extract, "questions", None) is not None:
        # 저장된 목록을 그대로 사용 (순서, 내용 동일)
        ai_suggested = {"model": "passthrough", "questions": raw.get("questions") or []}
    else:
        if kind in TEXT_KINDS:
            source_text = extract.text or ""
        else:
            source_text = json.dumps(raw, ensure_ascii=False)
        if not source_text.strip():
            raise ValidationFailedError("구조화할 텍스트가 비어 있습니다")
        result = await ai_service.structure_questions(AIStructuringRequest(source_text=source_text))
        ai_suggested = {"model": result.model, "questions": result.questions}

    try:
        await set_ai_suggested(session, content_import, ai_suggested)
        await record_audit(
            session,
            actor_id=caller.id,
            action="import.structure",
            entity_type="content_import",
            entity_id=import_id,
            after_json={"model": ai_suggested["model"], "questions": len(ai_suggested["questions"])},
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info(
        f"임포트 구조화 완료: id={import_id}, model={ai_suggested['model']}, "
        f"questions={len(ai_suggested['questions'])}"
    )
    return content_import


async def finalize_import(session: AsyncSession, import_id: int, caller: Caller, final: Any) -> ContentImport:
    """큐레이터 최종 승인 (FINAL_APPROVED)"""
    _require_curator(caller)
    if final is None or (isinstance(final, (dict, list, str)) and not final):
        raise ValidationFailedError("최종 승인 페이로드(final)가 필요합니다")
    content_import = await _load_import(session, import_id)

    try:
        await set_final_approved(session, content_import, final)
        await record_audit(
            session,
            actor_id=caller.id,
            action="import.finalize",
            entity_type="content_import",
            entity_id=import_id,
            after_json={"status": content_import.status},
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return content_import


def _payload_questions(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("questions"), list):
        return payload["questions"]
    return []


def _candidate_to_question(index: int, raw: Any) -> tuple[dict | None, SkippedCandidate | None]:
    """후보 하나를 검증하여 (문제 데이터, 건너뛴 사유) 중 하나를 반환"""
    if not isinstance(raw, dict):
        return None, SkippedCandidate(index=index, reason="malformed")
    try:
        candidate = CandidateQuestion.model_validate(raw)
    except ValidationError:
        return None, SkippedCandidate(index=index, reason="malformed")

    if not candidate.prompt:
        return None, SkippedCandidate(index=index, reason="empty_prompt")

    lettered = candidate.lettered_options()
    if len(lettered) < MIN_OPTIONS:
        return None, SkippedCandidate(index=index, reason="too_few_options")

    # 정답 문자는 정규화된(빈 값 제외) 선택지 중 하나를 가리켜야 함
    letters = [letter for letter, _ in lettered]
    if candidate.correct not in letters:
        return None, SkippedCandidate(index=index, reason="invalid_correct")

    options = [
        {
            "option_text": text,
            "is_correct": letter == candidate.correct,
            "explanation": candidate.explanation,
        }
        for letter, text in lettered
    ]
    return {"question_text": candidate.prompt, "options": options}, None


async def apply_import_to_quiz(
    session: AsyncSession,
    import_id: int,
    quiz_id: int,
    caller: Caller,
    source: str = "final",
) -> ImportApplyResponse:
    """승인된 후보 문제를 DRAFT 퀴즈에 추가

    퀴즈 단위 임계 구역 안에서 order_index를 한 번 계산한 뒤 추가할 때마다 증가시키고,
    전체를 한 번에 커밋합니다.
    """
    _require_curator(caller)
    content_import = await _load_import(session, import_id)
    payload = content_import.ai_suggested if source == "ai" else content_import.final_approved
    candidates = _payload_questions(payload)
    if not candidates:
        raise ValidationFailedError("반영할 문제가 없습니다")

    created = 0
    skipped: list[SkippedCandidate] = []
    try:
        async with quiz_lock(quiz_id):
            quiz = await get_quiz_by_id(session, quiz_id, for_update=True)
            if not quiz:
                raise QuizNotFoundError(quiz_id)
            if quiz.workflow_status != QuizWorkflowStatus.DRAFT.value:
                raise InvalidStateError(
                    f"DRAFT 상태의 퀴즈에만 반영할 수 있습니다 (현재: {quiz.workflow_status})"
                )

            base_order = await get_max_order_index(session, quiz_id)
            for index, raw in enumerate(candidates):
                question_data, skip = _candidate_to_question(index, raw)
                if skip is not None:
                    skipped.append(skip)
                    continue
                await create_question(
                    session,
                    quiz_id=quiz_id,
                    question_text=question_data["question_text"],
                    order_index=base_order + 1 + created,
                    options=question_data["options"],
                    difficulty_level=DifficultyLevel.BASIC.value,
                    created_by=caller.id,
                )
                created += 1

            await record_audit(
                session,
                actor_id=caller.id,
                action="import.apply_to_quiz",
                entity_type="content_import",
                entity_id=import_id,
                after_json={
                    "quiz_id": quiz_id,
                    "source": source,
                    "created_questions": created,
                    "skipped_questions": len(skipped),
                },
            )
            await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        f"임포트 반영 완료: import_id={import_id}, quiz_id={quiz_id}, "
        f"created={created}, skipped={len(skipped)}"
    )
    return ImportApplyResponse(created_questions=created, skipped_questions=len(skipped), skipped=skipped)
