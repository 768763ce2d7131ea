"""워크플로 전이 표 단위 테스트 (DB 없음)"""
import pytest

from quiz_studio.exceptions import ForbiddenError, InvalidStateError
from quiz_studio.models.quiz import QuizWorkflowStatus as S
from quiz_studio.services.workflow import Action, Capability, Stamp, capabilities_for, resolve

OWNER = (Capability.OWNER,)
CURATOR = (Capability.CURATOR,)
BOTH = (Capability.OWNER, Capability.CURATOR)


def test_submit_from_draft_stamps_submission():
    transition = resolve(S.DRAFT, Action.SUBMIT, OWNER)
    assert transition.next_state is S.SUBMITTED
    assert transition.snapshot_reason is None
    assert transition.stamps == (Stamp.SUBMITTED,)


def test_review_requires_curator():
    with pytest.raises(ForbiddenError):
        resolve(S.SUBMITTED, Action.APPROVE, OWNER)

    assert resolve(S.SUBMITTED, Action.APPROVE, CURATOR).next_state is S.APPROVED
    rejected = resolve(S.SUBMITTED, Action.REJECT, CURATOR)
    assert rejected.next_state is S.REJECTED
    assert rejected.stamps == (Stamp.APPROVED,)


def test_action_without_rule_is_invalid_state():
    with pytest.raises(InvalidStateError):
        resolve(S.DRAFT, Action.PUBLISH, CURATOR)
    with pytest.raises(InvalidStateError):
        resolve(S.PUBLISHED, Action.PUBLISH, CURATOR)
    with pytest.raises(InvalidStateError):
        resolve("APPROVED", Action.UNSUBMIT, OWNER)


def test_publish_and_republish_snapshot():
    publish = resolve(S.APPROVED, Action.PUBLISH, CURATOR)
    assert publish.next_state is S.PUBLISHED
    assert publish.snapshot_reason == "publish"

    republish = resolve(S.PUBLISHED, Action.REPUBLISH, CURATOR)
    assert republish.next_state is S.PUBLISHED
    assert republish.snapshot_reason == "republish"


def test_unsubmit_is_owner_only():
    with pytest.raises(ForbiddenError):
        resolve(S.SUBMITTED, Action.UNSUBMIT, CURATOR)

    transition = resolve(S.SUBMITTED, Action.UNSUBMIT, OWNER)
    assert transition.next_state is S.DRAFT
    assert transition.snapshot_reason == "unsubmit"
    assert transition.stamps == (Stamp.CLEAR_SUBMITTED,)


@pytest.mark.parametrize("action", [Action.EDIT, Action.ADD_QUESTION, Action.UPDATE_QUESTION, Action.DELETE_QUESTION])
def test_draft_edits_need_no_snapshot(action):
    for caps in (OWNER, CURATOR):
        transition = resolve(S.DRAFT, action, caps)
        assert transition.next_state is S.DRAFT
        assert transition.snapshot_reason is None


def test_rejected_edit_returns_to_draft_for_owner_only():
    with pytest.raises(ForbiddenError):
        resolve(S.REJECTED, Action.UPDATE_QUESTION, CURATOR)

    transition = resolve(S.REJECTED, Action.UPDATE_QUESTION, OWNER)
    assert transition.next_state is S.DRAFT
    assert transition.snapshot_reason == "edit:REJECTED"
    assert transition.stamps == (Stamp.CLEAR_APPROVED,)


@pytest.mark.parametrize("state", [S.SUBMITTED, S.APPROVED, S.PUBLISHED])
def test_edits_outside_draft_are_curator_only(state):
    with pytest.raises(ForbiddenError):
        resolve(state, Action.EDIT, OWNER)

    transition = resolve(state, Action.DELETE_QUESTION, CURATOR)
    assert transition.next_state is state
    assert transition.snapshot_reason == f"delete_question:{state.value}"


def test_owner_capability_is_tried_first():
    # 소유자이면서 큐레이터인 경우 REJECTED 편집은 소유자 규칙으로 처리
    transition = resolve(S.REJECTED, Action.EDIT, BOTH)
    assert transition.next_state is S.DRAFT

    # 소유자 규칙이 없으면 큐레이터 규칙으로 넘어감
    assert resolve(S.SUBMITTED, Action.APPROVE, BOTH).next_state is S.APPROVED


def test_capabilities_for():
    assert capabilities_for(True, False) == OWNER
    assert capabilities_for(False, True) == CURATOR
    assert capabilities_for(True, True) == BOTH
    assert capabilities_for(False, False) == ()

    with pytest.raises(ForbiddenError):
        resolve(S.DRAFT, Action.SUBMIT, ())
