import logging

from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.core.config import settings
from quiz_studio.core.locks import quiz_lock
from quiz_studio.core.security import Caller, can_access_studio, can_curate
from quiz_studio.crud import curation_comment as comment_crud, quiz as quiz_crud
from quiz_studio.exceptions import (
    ForbiddenError,
    NoQuestionsError,
    QuestionNotFoundError,
    QuizNotFoundError,
    ValidationFailedError,
)
from quiz_studio.models.base import utcnow
from quiz_studio.models.curation_comment import QuizCurationComment
from quiz_studio.models.quiz import XP_BY_LEVEL, Quiz, QuizQuestion
from quiz_studio.schemas import quiz as quiz_schema
from quiz_studio.services import ai_service
from quiz_studio.services.audit import record_audit, run_best_effort
from quiz_studio.services.versioning import try_snapshot
from quiz_studio.services.workflow import Action, Stamp, Transition, capabilities_for, resolve

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 3
MIN_QUESTION_LENGTH = 10
MIN_REJECT_MESSAGE_LENGTH = 5
MIN_OPTIONS = 4
MAX_OPTIONS = 5

# 포르투갈어 난이도 표기도 허용
DIFFICULTY_ALIASES = {
    "basico": "basic",
    "intermediario": "intermediate",
    "avancado": "advanced",
    "especialista": "expert",
}


def _validate_title(title: str | None) -> str:
    title = (title or "").strip()
    if len(title) < MIN_TITLE_LENGTH:
        raise ValidationFailedError(f"제목은 {MIN_TITLE_LENGTH}자 이상이어야 합니다")
    return title


def validate_question(payload: quiz_schema.QuizQuestionRequest) -> tuple[str, str, list[dict]]:
    """문제 입력 검증 후 (문제 내용, 난이도, 선택지 목록) 반환"""
    question_text = payload.question_text.strip()
    if len(question_text) < MIN_QUESTION_LENGTH:
        raise ValidationFailedError(f"문제 내용은 {MIN_QUESTION_LENGTH}자 이상이어야 합니다")

    level = payload.difficulty_level.strip().lower()
    level = DIFFICULTY_ALIASES.get(level, level)
    if level not in XP_BY_LEVEL:
        raise ValidationFailedError(f"알 수 없는 난이도입니다: {payload.difficulty_level}")

    if not MIN_OPTIONS <= len(payload.options) <= MAX_OPTIONS:
        raise ValidationFailedError(f"선택지는 {MIN_OPTIONS}~{MAX_OPTIONS}개여야 합니다")

    options = []
    for opt in payload.options:
        text = opt.option_text.strip()
        if not text:
            raise ValidationFailedError("빈 선택지가 있습니다")
        explanation = (opt.explanation or "").strip() or None
        options.append({"option_text": text, "is_correct": opt.is_correct, "explanation": explanation})

    if sum(1 for o in options if o["is_correct"]) != 1:
        raise ValidationFailedError("정답은 정확히 1개여야 합니다")
    return question_text, level, options


def _status_snapshot(quiz: Quiz) -> dict:
    return {"workflow_status": quiz.workflow_status}


async def _load_quiz(session: AsyncSession, quiz_id: int, for_update: bool = False) -> Quiz:
    quiz = await quiz_crud.get_quiz_by_id(session, quiz_id, for_update=for_update)
    if not quiz:
        raise QuizNotFoundError(quiz_id)
    return quiz


def _resolve(quiz: Quiz, action: Action, caller: Caller) -> Transition:
    caps = capabilities_for(quiz.owner_id == caller.id, can_curate(caller))
    return resolve(quiz.workflow_status, action, caps)


async def _apply_transition(
    session: AsyncSession,
    quiz: Quiz,
    transition: Transition,
    caller: Caller,
) -> None:
    """스냅샷(필요 시) 후 상태와 스탬프 적용"""
    if transition.snapshot_reason:
        await try_snapshot(session, quiz.id, caller.id, transition.snapshot_reason)

    now = utcnow()
    for stamp in transition.stamps:
        if stamp is Stamp.SUBMITTED:
            quiz.submitted_at, quiz.submitted_by = now, caller.id
        elif stamp is Stamp.CLEAR_SUBMITTED:
            quiz.submitted_at, quiz.submitted_by = None, None
        elif stamp is Stamp.APPROVED:
            quiz.approved_at, quiz.approved_by = now, caller.id
        elif stamp is Stamp.CLEAR_APPROVED:
            quiz.approved_at, quiz.approved_by = None, None
        elif stamp is Stamp.PUBLISHED:
            quiz.published_at, quiz.published_by = now, caller.id
    quiz.workflow_status = transition.next_state.value
    await session.flush()


async def build_quiz_detail(session: AsyncSession, quiz: Quiz, caller: Caller) -> quiz_schema.QuizDetailResponse:
    questions = await quiz_crud.get_questions_by_quiz_id(session, quiz.id)
    detail = quiz_schema.QuizDetailResponse.model_validate(quiz)
    detail.questions = [quiz_schema.QuizQuestionResponse.model_validate(q) for q in questions]
    detail.is_owner = quiz.owner_id == caller.id
    detail.can_curate = can_curate(caller)
    return detail


async def create_quiz(
    session: AsyncSession,
    caller: Caller,
    request: quiz_schema.QuizCreateRequest,
) -> Quiz:
    """퀴즈 생성 (DRAFT, 호출자가 소유자)"""
    if not can_access_studio(caller):
        raise ForbiddenError("스튜디오 접근 권한이 없습니다")
    title = _validate_title(request.title)

    try:
        quiz = await quiz_crud.create_quiz(
            session,
            title=title,
            owner_id=caller.id,
            description=(request.description or "").strip() or None,
            due_date=request.due_date,
        )
        await record_audit(
            session,
            actor_id=caller.id,
            action="quiz.create",
            entity_type="quiz",
            entity_id=quiz.id,
            after_json={"title": title, "workflow_status": quiz.workflow_status},
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info(f"퀴즈 생성: id={quiz.id}, owner={caller.id}")
    return quiz


async def get_quiz(session: AsyncSession, quiz_id: int, caller: Caller) -> quiz_schema.QuizDetailResponse:
    """퀴즈 상세 (소유자 또는 큐레이터)"""
    quiz = await _load_quiz(session, quiz_id)
    if quiz.owner_id != caller.id and not can_curate(caller):
        raise ForbiddenError("퀴즈를 볼 권한이 없습니다")
    return await build_quiz_detail(session, quiz, caller)


async def list_quizzes(
    session: AsyncSession,
    caller: Caller,
    workflow_status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Quiz], int]:
    """큐레이터는 전체, 그 외에는 본인 퀴즈만"""
    owner_id = None if can_curate(caller) else caller.id
    status = workflow_status.strip().upper() if workflow_status else None
    quizzes, total = await quiz_crud.list_quizzes(
        session,
        owner_id=owner_id,
        workflow_status=status,
        limit=limit,
        offset=offset,
    )
    return list(quizzes), total


async def update_quiz(
    session: AsyncSession,
    quiz_id: int,
    caller: Caller,
    request: quiz_schema.QuizUpdateRequest,
) -> Quiz:
    """퀴즈 메타데이터 수정 (상태별 편집 규칙 적용)"""
    title = _validate_title(request.title) if request.title is not None else None
    try:
        async with quiz_lock(quiz_id):
            quiz = await _load_quiz(session, quiz_id, for_update=True)
            transition = _resolve(quiz, Action.EDIT, caller)
            before = {"title": quiz.title, "description": quiz.description, **_status_snapshot(quiz)}

            await _apply_transition(session, quiz, transition, caller)
            if title is not None:
                quiz.title = title
            if request.description is not None:
                quiz.description = request.description.strip() or None
            if request.due_date is not None:
                quiz.due_date = request.due_date
            await session.flush()

            await record_audit(
                session,
                actor_id=caller.id,
                action="quiz.update",
                entity_type="quiz",
                entity_id=quiz_id,
                before_json=before,
                after_json={"title": quiz.title, "description": quiz.description, **_status_snapshot(quiz)},
            )
            await session.commit()
    except Exception:
        await session.rollback()
        raise
    return quiz


async def _run_simple_transition(
    session: AsyncSession,
    quiz_id: int,
    caller: Caller,
    action: Action,
    audit_action: str,
) -> Quiz:
    try:
        async with quiz_lock(quiz_id):
            quiz = await _load_quiz(session, quiz_id, for_update=True)
            transition = _resolve(quiz, action, caller)
            before = _status_snapshot(quiz)
            await _apply_transition(session, quiz, transition, caller)
            await record_audit(
                session,
                actor_id=caller.id,
                action=audit_action,
                entity_type="quiz",
                entity_id=quiz_id,
                before_json=before,
                after_json=_status_snapshot(quiz),
            )
            await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info(f"퀴즈 상태 변경: id={quiz_id}, action={action.value}, status={quiz.workflow_status}")
    return quiz


async def submit_quiz(session: AsyncSession, quiz_id: int, caller: Caller) -> Quiz:
    """DRAFT → SUBMITTED"""
    return await _run_simple_transition(session, quiz_id, caller, Action.SUBMIT, "quiz.submit")


async def unsubmit_quiz(session: AsyncSession, quiz_id: int, caller: Caller) -> Quiz:
    """SUBMITTED → DRAFT (소유자만, 스냅샷 후 제출 정보 해제)"""
    return await _run_simple_transition(session, quiz_id, caller, Action.UNSUBMIT, "quiz.unsubmit")


async def republish_quiz(session: AsyncSession, quiz_id: int, caller: Caller) -> Quiz:
    """PUBLISHED → PUBLISHED (큐레이터, 스냅샷 후 게시 정보 갱신)"""
    return await _run_simple_transition(session, quiz_id, caller, Action.REPUBLISH, "quiz.republish")


async def review_quiz(
    session: AsyncSession,
    quiz_id: int,
    caller: Caller,
    request: quiz_schema.QuizReviewRequest,
) -> Quiz:
    """SUBMITTED → APPROVED | REJECTED (큐레이터)

    REJECTED는 5자 이상의 피드백이 필요하며, 피드백은 검토 코멘트로 남습니다.
    """
    approve = request.decision == "APPROVED"
    action = Action.APPROVE if approve else Action.REJECT
    message = (request.message or "").strip()

    try:
        async with quiz_lock(quiz_id):
            quiz = await _load_quiz(session, quiz_id, for_update=True)
            transition = _resolve(quiz, action, caller)
            if not approve and len(message) < MIN_REJECT_MESSAGE_LENGTH:
                raise ValidationFailedError(f"반려 사유는 {MIN_REJECT_MESSAGE_LENGTH}자 이상 입력하세요")

            before = _status_snapshot(quiz)
            await _apply_transition(session, quiz, transition, caller)

            if message:
                await run_best_effort(
                    session,
                    f"comment:{quiz_id}",
                    lambda: comment_crud.create_comment(session, quiz_id=quiz_id, author_id=caller.id, message=message),
                )
            await record_audit(
                session,
                actor_id=caller.id,
                action="quiz.review.approve" if approve else "quiz.review.reject",
                entity_type="quiz",
                entity_id=quiz_id,
                before_json=before,
                after_json={**_status_snapshot(quiz), "message": message or None},
            )
            await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info(f"퀴즈 검토: id={quiz_id}, decision={request.decision}, reviewer={caller.id}")
    return quiz


async def _proofread_targets(session: AsyncSession, quiz: Quiz) -> list[tuple[object, str]]:
    """교정 대상 (객체, 속성명) 목록 (제목, 설명, 문제, 선택지, 해설 순)"""
    questions = await quiz_crud.get_questions_by_quiz_id(session, quiz.id, populate_existing=True)
    targets: list[tuple[object, str]] = [(quiz, "title")]
    if quiz.description:
        targets.append((quiz, "description"))
    for question in questions:
        targets.append((question, "question_text"))
        for option in question.options:
            targets.append((option, "option_text"))
            if option.explanation:
                targets.append((option, "explanation"))
    return targets


async def _collect_corrections(session: AsyncSession, quiz: Quiz) -> dict[str, str]:
    """맞춤법 교정 결과를 {원문: 교정문}으로 반환 (best-effort, 실패하면 빈 dict)"""
    strings = [getattr(obj, attr) or "" for obj, attr in await _proofread_targets(session, quiz)]
    try:
        result = await ai_service.proofread_strings(strings)
    except Exception as e:
        logger.warning(f"게시 전 교정 실패 (원문 유지): quiz_id={quiz.id}, error={type(e).__name__}", exc_info=True)
        return {}
    return {original: corrected for original, corrected in zip(strings, result.output) if corrected != original}


async def _apply_corrections(session: AsyncSession, quiz: Quiz, corrections: dict[str, str]) -> int:
    """교정 결과 반영, 변경된 문자열 수 반환

    교정 호출 이후 편집된 문자열은 원문과 달라졌으므로 건드리지 않습니다.
    """
    if not corrections:
        return 0
    changed = 0
    for obj, attr in await _proofread_targets(session, quiz):
        corrected = corrections.get(getattr(obj, attr) or "")
        if corrected is not None:
            setattr(obj, attr, corrected)
            changed += 1
    if changed:
        await session.flush()
    return changed


async def publish_quiz(session: AsyncSession, quiz_id: int, caller: Caller) -> Quiz:
    """APPROVED → PUBLISHED (큐레이터, 문제 1개 이상)

    교정 호출은 잠금 밖에서 하고, 결과만 잠금 안에서 반영합니다.
    """
    try:
        corrections: dict[str, str] = {}
        if settings.proofread_on_publish:
            quiz = await _load_quiz(session, quiz_id)
            _resolve(quiz, Action.PUBLISH, caller)
            corrections = await _collect_corrections(session, quiz)

        async with quiz_lock(quiz_id):
            quiz = await _load_quiz(session, quiz_id, for_update=True)
            transition = _resolve(quiz, Action.PUBLISH, caller)
            if await quiz_crud.count_questions(session, quiz_id) < 1:
                raise NoQuestionsError(quiz_id)

            before = _status_snapshot(quiz)
            if transition.snapshot_reason:
                await try_snapshot(session, quiz_id, caller.id, transition.snapshot_reason)
            # 스냅샷은 위에서 교정 전 상태로 남김
            proofread_changes = await _apply_corrections(session, quiz, corrections)
            await _apply_transition(session, quiz, Transition(transition.next_state, None, transition.stamps), caller)

            await record_audit(
                session,
                actor_id=caller.id,
                action="quiz.publish",
                entity_type="quiz",
                entity_id=quiz_id,
                before_json=before,
                after_json={**_status_snapshot(quiz), "proofread_changes": proofread_changes},
            )
            await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info(f"퀴즈 게시: id={quiz_id}, curator={caller.id}, proofread_changes={proofread_changes}")
    return quiz


async def add_question(
    session: AsyncSession,
    quiz_id: int,
    caller: Caller,
    request: quiz_schema.QuizQuestionRequest,
) -> QuizQuestion:
    """문제 추가 (맨 뒤 order_index)"""
    question_text, level, options = validate_question(request)
    try:
        async with quiz_lock(quiz_id):
            quiz = await _load_quiz(session, quiz_id, for_update=True)
            transition = _resolve(quiz, Action.ADD_QUESTION, caller)
            before = _status_snapshot(quiz)
            await _apply_transition(session, quiz, transition, caller)

            order_index = await quiz_crud.get_max_order_index(session, quiz_id) + 1
            question = await quiz_crud.create_question(
                session,
                quiz_id=quiz_id,
                question_text=question_text,
                order_index=order_index,
                options=options,
                difficulty_level=level,
                created_by=caller.id,
            )
            await record_audit(
                session,
                actor_id=caller.id,
                action="quiz.question.create",
                entity_type="quiz_question",
                entity_id=question.id,
                before_json=before,
                after_json={"quiz_id": quiz_id, "order_index": order_index, **_status_snapshot(quiz)},
            )
            await session.commit()
    except Exception:
        await session.rollback()
        raise
    return question


async def _load_question(session: AsyncSession, question_id: int) -> QuizQuestion:
    question = await quiz_crud.get_question_by_id(session, question_id)
    if not question:
        raise QuestionNotFoundError(question_id)
    return question


async def update_question(
    session: AsyncSession,
    question_id: int,
    caller: Caller,
    request: quiz_schema.QuizQuestionRequest,
) -> QuizQuestion:
    """문제 내용/선택지 교체 (order_index 유지)"""
    question_text, level, options = validate_question(request)
    question = await _load_question(session, question_id)
    quiz_id = question.quiz_id
    try:
        async with quiz_lock(quiz_id):
            quiz = await _load_quiz(session, quiz_id, for_update=True)
            transition = _resolve(quiz, Action.UPDATE_QUESTION, caller)
            before = {"question_text": question.question_text, **_status_snapshot(quiz)}
            await _apply_transition(session, quiz, transition, caller)

            await quiz_crud.replace_question(session, question, question_text, level, options)
            await record_audit(
                session,
                actor_id=caller.id,
                action="quiz.question.update",
                entity_type="quiz_question",
                entity_id=question_id,
                before_json=before,
                after_json={"question_text": question_text, **_status_snapshot(quiz)},
            )
            await session.commit()
    except Exception:
        await session.rollback()
        raise
    return question


async def delete_question(session: AsyncSession, question_id: int, caller: Caller) -> int:
    """문제 삭제 후 order_index 압축, 퀴즈 ID 반환"""
    question = await _load_question(session, question_id)
    quiz_id = question.quiz_id
    try:
        async with quiz_lock(quiz_id):
            quiz = await _load_quiz(session, quiz_id, for_update=True)
            transition = _resolve(quiz, Action.DELETE_QUESTION, caller)
            before = {
                "question_text": question.question_text,
                "order_index": question.order_index,
                **_status_snapshot(quiz),
            }
            await _apply_transition(session, quiz, transition, caller)

            await quiz_crud.delete_question(session, question)
            await record_audit(
                session,
                actor_id=caller.id,
                action="quiz.question.delete",
                entity_type="quiz_question",
                entity_id=question_id,
                before_json=before,
                after_json=_status_snapshot(quiz),
            )
            await session.commit()
    except Exception:
        await session.rollback()
        raise
    return quiz_id


async def list_comments(session: AsyncSession, quiz_id: int, caller: Caller) -> list[QuizCurationComment]:
    """검토 코멘트 (소유자 또는 큐레이터)"""
    quiz = await _load_quiz(session, quiz_id)
    if quiz.owner_id != caller.id and not can_curate(caller):
        raise ForbiddenError("코멘트를 볼 권한이 없습니다")
    return list(await comment_crud.list_comments(session, quiz_id))
