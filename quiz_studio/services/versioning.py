import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.core.locks import quiz_lock
from quiz_studio.core.security import Caller, can_curate
from quiz_studio.crud.quiz import get_questions_by_quiz_id, get_quiz_by_id
from quiz_studio.crud.quiz_version import create_version, get_max_version_number, get_version, list_versions
from quiz_studio.exceptions import ForbiddenError, QuizNotFoundError, QuizVersionNotFoundError
from quiz_studio.models.quiz import Quiz
from quiz_studio.models.quiz_version import QuizVersion
from quiz_studio.schemas.quiz_version import QuizSnapshot, SnapshotQuestion, SnapshotQuiz
from quiz_studio.services.audit import record_audit, run_best_effort

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 400
VERSION_LIST_LIMIT = 50


async def build_snapshot(session: AsyncSession, quiz: Quiz) -> dict[str, Any]:
    """퀴즈 + order_index 순 문제 + 선택지를 JSON 문서로 변환"""
    questions = await get_questions_by_quiz_id(session, quiz.id)
    snapshot = QuizSnapshot(
        quiz=SnapshotQuiz.model_validate(quiz),
        questions=[SnapshotQuestion.model_validate(q) for q in questions],
    )
    return snapshot.model_dump(mode="json")


async def snapshot_quiz(
    session: AsyncSession,
    quiz_id: int,
    actor_id: str | None,
    reason: str | None = None,
) -> QuizVersion:
    """퀴즈 스냅샷 생성 (버전 번호는 퀴즈별 1부터 단조 증가)

    커밋은 호출자 책임입니다.
    """
    async with quiz_lock(quiz_id):
        quiz = await get_quiz_by_id(session, quiz_id, for_update=True)
        if not quiz:
            raise QuizNotFoundError(quiz_id)

        snapshot = await build_snapshot(session, quiz)
        version_number = await get_max_version_number(session, quiz_id) + 1
        trimmed_reason = reason[:MAX_REASON_LENGTH] if reason else None
        version = await create_version(
            session,
            quiz_id=quiz_id,
            version_number=version_number,
            snapshot=snapshot,
            created_by=actor_id,
            reason=trimmed_reason,
        )

    await record_audit(
        session,
        actor_id=actor_id,
        action="quiz.version.snapshot",
        entity_type="quiz",
        entity_id=quiz_id,
        after_json={"version_number": version_number, "reason": trimmed_reason},
    )
    logger.info(f"퀴즈 스냅샷 생성: quiz_id={quiz_id}, version={version_number}, reason={trimmed_reason}")
    return version


async def try_snapshot(
    session: AsyncSession,
    quiz_id: int,
    actor_id: str | None,
    reason: str,
) -> QuizVersion | None:
    """워크플로 전이용 스냅샷 (실패해도 전이는 계속 진행)"""
    return await run_best_effort(
        session,
        f"snapshot:{quiz_id}:{reason}",
        lambda: snapshot_quiz(session, quiz_id, actor_id, reason),
    )


async def create_manual_snapshot(
    session: AsyncSession,
    quiz_id: int,
    caller: Caller,
    reason: str | None = None,
) -> QuizVersion:
    """큐레이터 수동 스냅샷"""
    if not can_curate(caller):
        raise ForbiddenError("스냅샷은 큐레이터만 만들 수 있습니다")
    try:
        version = await snapshot_quiz(session, quiz_id, caller.id, reason or "manual")
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return version


async def _get_readable_quiz(session: AsyncSession, quiz_id: int, caller: Caller) -> Quiz:
    quiz = await get_quiz_by_id(session, quiz_id)
    if not quiz:
        raise QuizNotFoundError(quiz_id)
    if quiz.owner_id != caller.id and not can_curate(caller):
        raise ForbiddenError("퀴즈 버전을 볼 권한이 없습니다")
    return quiz


async def list_quiz_versions(session: AsyncSession, quiz_id: int, caller: Caller) -> list[QuizVersion]:
    """버전 목록 (최신순, 최대 50개, 소유자 또는 큐레이터)"""
    await _get_readable_quiz(session, quiz_id, caller)
    return list(await list_versions(session, quiz_id, limit=VERSION_LIST_LIMIT))


async def get_quiz_version(
    session: AsyncSession,
    quiz_id: int,
    version_number: int,
    caller: Caller,
) -> QuizVersion:
    await _get_readable_quiz(session, quiz_id, caller)
    version = await get_version(session, quiz_id, version_number)
    if not version:
        raise QuizVersionNotFoundError(quiz_id, version_number)
    return version
