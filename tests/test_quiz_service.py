"""Quiz Service 테스트 (워크플로, 버전, 문제 편집)"""
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from factories import CURATOR, OTHER_AUTHOR, OWNER, PLAIN_USER, question_request, quiz_request
from quiz_studio.core import locks
from quiz_studio.core.config import settings
from quiz_studio.crud import audit_log as audit_crud, quiz as quiz_crud
from quiz_studio.exceptions import (
    CollaboratorFailureError,
    ForbiddenError,
    InvalidStateError,
    NoQuestionsError,
    QuizNotFoundError,
    QuizVersionNotFoundError,
    ValidationFailedError,
)
from quiz_studio.models.quiz import QuizWorkflowStatus
from quiz_studio.schemas import quiz as quiz_schema
from quiz_studio.schemas.ai import AIProofreadResult
from quiz_studio.services import quiz_service, versioning


def _reject(message: str | None = "Faltam referências normativas") -> quiz_schema.QuizReviewRequest:
    return quiz_schema.QuizReviewRequest(decision="rejected", message=message)


APPROVE = quiz_schema.QuizReviewRequest(decision="APPROVED")


async def _quiz_with_questions(session, count: int = 1):
    quiz = await quiz_service.create_quiz(session, OWNER, quiz_request())
    for i in range(count):
        await quiz_service.add_question(session, quiz.id, OWNER, question_request(text=f"문제 번호 {i} 의 내용입니다"))
    return quiz


async def _approved_quiz(session, count: int = 1):
    quiz = await _quiz_with_questions(session, count)
    await quiz_service.submit_quiz(session, quiz.id, OWNER)
    await quiz_service.review_quiz(session, quiz.id, CURATOR, APPROVE)
    return quiz


@pytest.mark.asyncio
async def test_create_quiz_starts_as_draft(test_db_session):
    quiz = await quiz_service.create_quiz(test_db_session, OWNER, quiz_request("  NR-35 trabalho em altura  "))

    assert quiz.title == "NR-35 trabalho em altura"
    assert quiz.workflow_status == QuizWorkflowStatus.DRAFT.value
    assert quiz.owner_id == OWNER.id
    assert quiz.created_by == OWNER.id

    entries, _ = await audit_crud.list_audit_logs(test_db_session, entity_type="quiz", entity_id=str(quiz.id))
    assert [e.action for e in entries] == ["quiz.create"]


@pytest.mark.asyncio
async def test_create_quiz_validation(test_db_session):
    with pytest.raises(ValidationFailedError):
        await quiz_service.create_quiz(test_db_session, OWNER, quiz_request("ab"))
    with pytest.raises(ForbiddenError):
        await quiz_service.create_quiz(test_db_session, PLAIN_USER, quiz_request())


@pytest.mark.asyncio
async def test_curator_can_create_quiz(test_db_session):
    quiz = await quiz_service.create_quiz(test_db_session, CURATOR, quiz_request())
    assert quiz.owner_id == CURATOR.id


@pytest.mark.parametrize(
    "kwargs",
    [
        {"text": "curto"},
        {"difficulty": "impossivel"},
        {"option_count": 3},
        {"option_count": 6},
        {"correct": 9},
    ],
)
def test_validate_question_errors(kwargs):
    with pytest.raises(ValidationFailedError):
        quiz_service.validate_question(question_request(**kwargs))


def test_validate_question_multiple_correct():
    request = question_request()
    request.options[1].is_correct = True
    with pytest.raises(ValidationFailedError):
        quiz_service.validate_question(request)


def test_validate_question_normalizes_difficulty_alias():
    _, level, options = quiz_service.validate_question(question_request(difficulty="Avancado", option_count=5))
    assert level == "advanced"
    assert len(options) == 5


@pytest.mark.asyncio
async def test_add_question_sets_xp_and_order(test_db_session):
    quiz = await quiz_service.create_quiz(test_db_session, OWNER, quiz_request())
    first = await quiz_service.add_question(test_db_session, quiz.id, OWNER, question_request(difficulty="advanced"))
    second = await quiz_service.add_question(test_db_session, quiz.id, OWNER, question_request(difficulty="expert"))

    assert (first.order_index, first.xp_value) == (0, 20)
    assert (second.order_index, second.xp_value) == (1, 50)
    assert first.created_by == OWNER.id
    assert [o.is_correct for o in first.options] == [True, False, False, False]


@pytest.mark.asyncio
async def test_other_author_cannot_read_or_edit(test_db_session):
    quiz = await _quiz_with_questions(test_db_session)
    quiz_id = quiz.id

    with pytest.raises(ForbiddenError):
        await quiz_service.get_quiz(test_db_session, quiz_id, OTHER_AUTHOR)
    with pytest.raises(ForbiddenError):
        await quiz_service.add_question(test_db_session, quiz_id, OTHER_AUTHOR, question_request())
    with pytest.raises(QuizNotFoundError):
        await quiz_service.get_quiz(test_db_session, 999, OWNER)

    detail = await quiz_service.get_quiz(test_db_session, quiz_id, CURATOR)
    assert detail.is_owner is False
    assert detail.can_curate is True
    assert len(detail.questions) == 1


@pytest.mark.asyncio
async def test_list_quizzes_scoped_by_role(test_db_session):
    await quiz_service.create_quiz(test_db_session, OWNER, quiz_request("Quiz do autor 1"))
    await quiz_service.create_quiz(test_db_session, OTHER_AUTHOR, quiz_request("Quiz do autor 2"))

    own, own_total = await quiz_service.list_quizzes(test_db_session, OWNER)
    everything, total = await quiz_service.list_quizzes(test_db_session, CURATOR)
    drafts, _ = await quiz_service.list_quizzes(test_db_session, CURATOR, workflow_status="draft")
    published, _ = await quiz_service.list_quizzes(test_db_session, CURATOR, workflow_status="PUBLISHED")

    assert own_total == 1 and own[0].owner_id == OWNER.id
    assert total == 2 and len(everything) == 2
    assert len(drafts) == 2
    assert published == []


@pytest.mark.asyncio
async def test_publish_without_questions(test_db_session):
    quiz = await _approved_quiz(test_db_session, count=0)
    quiz_id = quiz.id

    with pytest.raises(NoQuestionsError):
        await quiz_service.publish_quiz(test_db_session, quiz_id, CURATOR)

    reloaded = await quiz_crud.get_quiz_by_id(test_db_session, quiz_id)
    await test_db_session.refresh(reloaded)
    assert reloaded.workflow_status == QuizWorkflowStatus.APPROVED.value
    assert await versioning.list_quiz_versions(test_db_session, quiz_id, CURATOR) == []


@pytest.mark.asyncio
async def test_publish_requires_curator_and_approval(test_db_session):
    quiz = await _quiz_with_questions(test_db_session)
    quiz_id = quiz.id

    with pytest.raises(InvalidStateError):
        await quiz_service.publish_quiz(test_db_session, quiz_id, CURATOR)

    await quiz_service.submit_quiz(test_db_session, quiz_id, OWNER)
    with pytest.raises(ForbiddenError):
        await quiz_service.review_quiz(test_db_session, quiz_id, OWNER, APPROVE)


@pytest.mark.asyncio
async def test_full_publish_and_republish(test_db_session):
    quiz = await _approved_quiz(test_db_session, count=2)

    published = await quiz_service.publish_quiz(test_db_session, quiz.id, CURATOR)
    assert published.workflow_status == QuizWorkflowStatus.PUBLISHED.value
    assert published.published_by == CURATOR.id
    assert published.approved_by == CURATOR.id
    assert published.submitted_by == OWNER.id

    republished = await quiz_service.republish_quiz(test_db_session, quiz.id, CURATOR)
    assert republished.workflow_status == QuizWorkflowStatus.PUBLISHED.value
    assert republished.published_by == CURATOR.id

    versions = await versioning.list_quiz_versions(test_db_session, quiz.id, OWNER)
    assert [(v.version_number, v.reason) for v in versions] == [(2, "republish"), (1, "publish")]
    snapshot = versions[1].snapshot
    assert snapshot["quiz"]["workflow_status"] == QuizWorkflowStatus.APPROVED.value
    assert [q["order_index"] for q in snapshot["questions"]] == [0, 1]
    assert len(snapshot["questions"][0]["options"]) == 4


@pytest.mark.asyncio
async def test_rejected_edit_returns_to_draft(test_db_session):
    quiz = await _quiz_with_questions(test_db_session)
    quiz_id = quiz.id
    await quiz_service.submit_quiz(test_db_session, quiz_id, OWNER)

    rejected = await quiz_service.review_quiz(test_db_session, quiz_id, CURATOR, _reject())
    assert rejected.workflow_status == QuizWorkflowStatus.REJECTED.value
    assert rejected.approved_by == CURATOR.id

    comments = await quiz_service.list_comments(test_db_session, quiz_id, OWNER)
    assert [(c.author_id, c.message) for c in comments] == [(CURATOR.id, "Faltam referências normativas")]

    # 큐레이터는 반려된 퀴즈를 편집할 수 없음
    questions = await quiz_crud.get_questions_by_quiz_id(test_db_session, quiz_id)
    question_id = questions[0].id
    with pytest.raises(ForbiddenError):
        await quiz_service.update_question(test_db_session, question_id, CURATOR, question_request(correct=1))

    updated = await quiz_service.update_question(
        test_db_session, question_id, OWNER, question_request(text="수정된 문제 내용입니다", correct=2)
    )
    assert updated.question_text == "수정된 문제 내용입니다"
    assert updated.order_index == 0
    assert [o.is_correct for o in updated.options] == [False, False, True, False]

    detail = await quiz_service.get_quiz(test_db_session, quiz_id, OWNER)
    assert detail.workflow_status == QuizWorkflowStatus.DRAFT.value
    assert detail.approved_at is None
    assert detail.approved_by is None

    versions = await versioning.list_quiz_versions(test_db_session, quiz_id, OWNER)
    assert [(v.version_number, v.reason) for v in versions] == [(1, "edit:REJECTED")]
    assert versions[0].snapshot["quiz"]["workflow_status"] == QuizWorkflowStatus.REJECTED.value
    assert versions[0].snapshot["questions"][0]["question_text"] == "문제 번호 0 의 내용입니다"


@pytest.mark.asyncio
async def test_reject_requires_message(test_db_session):
    quiz = await _quiz_with_questions(test_db_session)
    quiz_id = quiz.id
    await quiz_service.submit_quiz(test_db_session, quiz_id, OWNER)

    with pytest.raises(ValidationFailedError):
        await quiz_service.review_quiz(test_db_session, quiz_id, CURATOR, _reject("curt"))
    with pytest.raises(ValidationFailedError):
        await quiz_service.review_quiz(test_db_session, quiz_id, CURATOR, _reject(None))

    detail = await quiz_service.get_quiz(test_db_session, quiz_id, CURATOR)
    assert detail.workflow_status == QuizWorkflowStatus.SUBMITTED.value


@pytest.mark.asyncio
async def test_unsubmit(test_db_session):
    quiz = await _quiz_with_questions(test_db_session)
    quiz_id = quiz.id
    await quiz_service.submit_quiz(test_db_session, quiz_id, OWNER)

    with pytest.raises(ForbiddenError):
        await quiz_service.unsubmit_quiz(test_db_session, quiz_id, CURATOR)

    unsubmitted = await quiz_service.unsubmit_quiz(test_db_session, quiz_id, OWNER)
    assert unsubmitted.workflow_status == QuizWorkflowStatus.DRAFT.value
    assert unsubmitted.submitted_at is None
    assert unsubmitted.submitted_by is None

    versions = await versioning.list_quiz_versions(test_db_session, quiz_id, OWNER)
    assert [v.reason for v in versions] == ["unsubmit"]

    with pytest.raises(InvalidStateError):
        await quiz_service.unsubmit_quiz(test_db_session, quiz_id, OWNER)


@pytest.mark.asyncio
async def test_curator_edit_while_submitted_snapshots(test_db_session):
    quiz = await _quiz_with_questions(test_db_session)
    quiz_id = quiz.id
    await quiz_service.submit_quiz(test_db_session, quiz_id, OWNER)

    with pytest.raises(ForbiddenError):
        await quiz_service.update_quiz(
            test_db_session, quiz_id, OWNER, quiz_schema.QuizUpdateRequest(title="Novo título")
        )

    updated = await quiz_service.update_quiz(
        test_db_session, quiz_id, CURATOR, quiz_schema.QuizUpdateRequest(title="Novo título")
    )
    assert updated.title == "Novo título"
    assert updated.workflow_status == QuizWorkflowStatus.SUBMITTED.value

    versions = await versioning.list_quiz_versions(test_db_session, quiz_id, CURATOR)
    assert [v.reason for v in versions] == ["edit:SUBMITTED"]
    assert versions[0].snapshot["quiz"]["title"] == "NR-10 안전 기초"


@pytest.mark.asyncio
async def test_delete_question_compacts_order(test_db_session):
    quiz = await _quiz_with_questions(test_db_session, count=3)
    questions = await quiz_crud.get_questions_by_quiz_id(test_db_session, quiz.id)
    middle_id = questions[1].id
    last_id = questions[2].id

    returned_quiz_id = await quiz_service.delete_question(test_db_session, middle_id, OWNER)

    assert returned_quiz_id == quiz.id
    remaining = await quiz_crud.get_questions_by_quiz_id(test_db_session, quiz.id)
    assert [q.order_index for q in remaining] == [0, 1]
    assert remaining[1].id == last_id

    # 삭제 후 추가하면 맨 뒤에 붙음
    added = await quiz_service.add_question(test_db_session, quiz.id, OWNER, question_request())
    assert added.order_index == 2


@pytest.mark.asyncio
async def test_snapshot_numbers_increase(test_db_session):
    quiz = await _quiz_with_questions(test_db_session)

    first = await versioning.create_manual_snapshot(test_db_session, quiz.id, CURATOR)
    second = await versioning.create_manual_snapshot(test_db_session, quiz.id, CURATOR, reason="x" * 500)

    assert (first.version_number, first.reason) == (1, "manual")
    assert second.version_number == 2
    assert len(second.reason) == 400

    fetched = await versioning.get_quiz_version(test_db_session, quiz.id, 1, OWNER)
    assert fetched.snapshot["quiz"]["id"] == quiz.id
    with pytest.raises(QuizVersionNotFoundError):
        await versioning.get_quiz_version(test_db_session, quiz.id, 3, OWNER)
    with pytest.raises(ForbiddenError):
        await versioning.create_manual_snapshot(test_db_session, quiz.id, OWNER)
    with pytest.raises(ForbiddenError):
        await versioning.list_quiz_versions(test_db_session, quiz.id, OTHER_AUTHOR)

    entries, _ = await audit_crud.list_audit_logs(test_db_session, entity_type="quiz", entity_id=str(quiz.id))
    assert [e.action for e in entries if e.action == "quiz.version.snapshot"] == ["quiz.version.snapshot"] * 2


@pytest.mark.asyncio
async def test_snapshot_failure_does_not_block_transition(test_db_session):
    quiz = await _quiz_with_questions(test_db_session)
    quiz_id = quiz.id
    await quiz_service.submit_quiz(test_db_session, quiz_id, OWNER)

    with patch.object(versioning, "snapshot_quiz", new=AsyncMock(side_effect=RuntimeError("disk full"))):
        unsubmitted = await quiz_service.unsubmit_quiz(test_db_session, quiz_id, OWNER)

    assert unsubmitted.workflow_status == QuizWorkflowStatus.DRAFT.value
    assert await versioning.list_quiz_versions(test_db_session, quiz_id, OWNER) == []

    entries, _ = await audit_crud.list_audit_logs(test_db_session, entity_type="quiz", entity_id=str(quiz_id))
    assert entries[0].action == "quiz.unsubmit"


@pytest.mark.asyncio
async def test_audit_failure_does_not_block_operation(test_db_session):
    with patch(
        "quiz_studio.services.audit.create_audit_log",
        new=AsyncMock(side_effect=RuntimeError("audit table missing")),
    ):
        quiz = await quiz_service.create_quiz(test_db_session, OWNER, quiz_request())

    assert quiz.id is not None
    entries, total = await audit_crud.list_audit_logs(test_db_session)
    assert total == 0


@pytest.mark.asyncio
async def test_publish_keeps_text_when_proofread_fails(test_db_session):
    quiz = await _approved_quiz(test_db_session)
    with patch.object(
        quiz_service.ai_service,
        "proofread_strings",
        new=AsyncMock(side_effect=CollaboratorFailureError("AI 서버 오류")),
    ):
        published = await quiz_service.publish_quiz(test_db_session, quiz.id, CURATOR)

    assert published.workflow_status == QuizWorkflowStatus.PUBLISHED.value
    assert published.title == "NR-10 안전 기초"


@pytest.mark.asyncio
async def test_publish_survives_gemini_transport_error(test_db_session, monkeypatch):
    quiz = await _approved_quiz(test_db_session)
    quiz_id = quiz.id
    monkeypatch.setattr(settings, "gemini_api_key", "k")
    mock_client = MagicMock()
    mock_client.models.generate_content.side_effect = httpx.ConnectError("dns failure")

    with patch.object(quiz_service.ai_service, "get_gemini_client", return_value=mock_client):
        published = await quiz_service.publish_quiz(test_db_session, quiz_id, CURATOR)

    mock_client.models.generate_content.assert_called_once()
    assert published.workflow_status == QuizWorkflowStatus.PUBLISHED.value
    assert published.title == "NR-10 안전 기초"
    versions = await versioning.list_quiz_versions(test_db_session, quiz_id, CURATOR)
    assert [(v.version_number, v.reason) for v in versions] == [(1, "publish")]


@pytest.mark.asyncio
async def test_publish_proofreads_outside_lock(test_db_session):
    quiz = await _approved_quiz(test_db_session)
    quiz_id = quiz.id
    lock_held_during_call = []

    async def fake_proofread(strings):
        lock_held_during_call.append(quiz_id in locks._locks)
        return AIProofreadResult(output=["NR-10 안전 기초 (개정)"] + strings[1:])

    with patch.object(quiz_service.ai_service, "proofread_strings", new=AsyncMock(side_effect=fake_proofread)):
        published = await quiz_service.publish_quiz(test_db_session, quiz_id, CURATOR)

    assert lock_held_during_call == [False]
    assert published.title == "NR-10 안전 기초 (개정)"
    versions = await versioning.list_quiz_versions(test_db_session, quiz_id, CURATOR)
    assert versions[0].snapshot["quiz"]["title"] == "NR-10 안전 기초"
