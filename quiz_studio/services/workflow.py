"""퀴즈 워크플로 전이 규칙

(현재 상태, 동작, 권한) → (다음 상태, 스냅샷 사유, 스탬프) 표로 정의합니다.
DB와 무관한 순수 함수이므로 서비스 계층은 resolve() 결과만 적용합니다.
"""
import enum
from dataclasses import dataclass

from quiz_studio.exceptions import ForbiddenError, InvalidStateError
from quiz_studio.models.quiz import QuizWorkflowStatus as S


class Action(str, enum.Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    PUBLISH = "publish"
    REPUBLISH = "republish"
    UNSUBMIT = "unsubmit"
    EDIT = "edit"
    ADD_QUESTION = "add_question"
    UPDATE_QUESTION = "update_question"
    DELETE_QUESTION = "delete_question"


class Capability(str, enum.Enum):
    OWNER = "owner"
    CURATOR = "curator"


class Stamp(str, enum.Enum):
    """전이 시 기록/해제할 타임스탬프 필드"""
    SUBMITTED = "submitted"
    CLEAR_SUBMITTED = "clear_submitted"
    APPROVED = "approved"
    CLEAR_APPROVED = "clear_approved"
    PUBLISHED = "published"


@dataclass(frozen=True)
class Transition:
    next_state: S
    snapshot_reason: str | None = None
    stamps: tuple[Stamp, ...] = ()


EDIT_ACTIONS = (Action.EDIT, Action.ADD_QUESTION, Action.UPDATE_QUESTION, Action.DELETE_QUESTION)
OWNER, CURATOR = Capability.OWNER, Capability.CURATOR


def _build_table() -> dict[tuple[S, Action, Capability], Transition]:
    table: dict[tuple[S, Action, Capability], Transition] = {
        (S.DRAFT, Action.SUBMIT, OWNER): Transition(S.SUBMITTED, stamps=(Stamp.SUBMITTED,)),
        (S.DRAFT, Action.SUBMIT, CURATOR): Transition(S.SUBMITTED, stamps=(Stamp.SUBMITTED,)),
        (S.SUBMITTED, Action.APPROVE, CURATOR): Transition(S.APPROVED, stamps=(Stamp.APPROVED,)),
        (S.SUBMITTED, Action.REJECT, CURATOR): Transition(S.REJECTED, stamps=(Stamp.APPROVED,)),
        (S.SUBMITTED, Action.UNSUBMIT, OWNER): Transition(
            S.DRAFT, snapshot_reason="unsubmit", stamps=(Stamp.CLEAR_SUBMITTED,)
        ),
        (S.APPROVED, Action.PUBLISH, CURATOR): Transition(
            S.PUBLISHED, snapshot_reason="publish", stamps=(Stamp.PUBLISHED,)
        ),
        (S.PUBLISHED, Action.REPUBLISH, CURATOR): Transition(
            S.PUBLISHED, snapshot_reason="republish", stamps=(Stamp.PUBLISHED,)
        ),
    }
    for action in EDIT_ACTIONS:
        # 초안은 스냅샷 없이 편집
        table[(S.DRAFT, action, OWNER)] = Transition(S.DRAFT)
        table[(S.DRAFT, action, CURATOR)] = Transition(S.DRAFT)
        # 반려된 퀴즈는 소유자만 편집, 편집 시 초안으로 되돌림
        table[(S.REJECTED, action, OWNER)] = Transition(
            S.DRAFT, snapshot_reason="edit:REJECTED", stamps=(Stamp.CLEAR_APPROVED,)
        )
        for state in (S.SUBMITTED, S.APPROVED, S.PUBLISHED):
            table[(state, action, CURATOR)] = Transition(state, snapshot_reason=f"{action.value}:{state.value}")
    return table


TRANSITIONS = _build_table()


def capabilities_for(is_owner: bool, is_curator: bool) -> tuple[Capability, ...]:
    """소유자 권한을 먼저 시도"""
    caps = []
    if is_owner:
        caps.append(OWNER)
    if is_curator:
        caps.append(CURATOR)
    return tuple(caps)


def resolve(state: str | S, action: Action, capabilities: tuple[Capability, ...]) -> Transition:
    """적용할 전이 규칙 조회

    Raises:
        InvalidStateError: 현재 상태에서 해당 동작 규칙이 없음
        ForbiddenError: 규칙은 있으나 호출자 권한으로는 허용되지 않음
    """
    state = S(state)
    for capability in capabilities:
        transition = TRANSITIONS.get((state, action, capability))
        if transition is not None:
            return transition

    if any((state, action, capability) in TRANSITIONS for capability in Capability):
        raise ForbiddenError(f"현재 상태({state.value})에서 '{action.value}' 권한이 없습니다")
    raise InvalidStateError(f"현재 상태({state.value})에서 '{action.value}'을(를) 할 수 없습니다")
