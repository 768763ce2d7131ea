from quiz_studio.schemas.ai import (
    AIProofreadResponse,
    AIProofreadResult,
    AIStructuringRequest,
    AIStructuringResponse,
    AIStructuringResult,
)
from quiz_studio.schemas.audit import AuditLogListResponse, AuditLogResponse
from quiz_studio.schemas.content_import import (
    AISuggested,
    CandidateQuestion,
    ImportApplyRequest,
    ImportApplyResponse,
    ImportCreateRequest,
    ImportExtractRequest,
    ImportFinalizeRequest,
    ImportListResponse,
    ImportResponse,
    RawExtract,
    SkippedCandidate,
)
from quiz_studio.schemas.quiz import (
    CurationCommentListResponse,
    CurationCommentResponse,
    QuizCreateRequest,
    QuizDetailResponse,
    QuizListResponse,
    QuizOptionInput,
    QuizOptionResponse,
    QuizQuestionRequest,
    QuizQuestionResponse,
    QuizResponse,
    QuizReviewRequest,
    QuizUpdateRequest,
)
from quiz_studio.schemas.quiz_version import (
    QuizSnapshot,
    QuizVersionListResponse,
    QuizVersionResponse,
    QuizVersionSummary,
    SnapshotRequest,
    SnapshotResponse,
)

__all__ = [
    "AIStructuringRequest",
    "AIStructuringResponse",
    "AIStructuringResult",
    "AIProofreadResponse",
    "AIProofreadResult",
    "AuditLogResponse",
    "AuditLogListResponse",
    "CandidateQuestion",
    "RawExtract",
    "AISuggested",
    "ImportCreateRequest",
    "ImportExtractRequest",
    "ImportFinalizeRequest",
    "ImportApplyRequest",
    "ImportApplyResponse",
    "ImportResponse",
    "ImportListResponse",
    "SkippedCandidate",
    "QuizCreateRequest",
    "QuizUpdateRequest",
    "QuizReviewRequest",
    "QuizOptionInput",
    "QuizQuestionRequest",
    "QuizOptionResponse",
    "QuizQuestionResponse",
    "QuizResponse",
    "QuizDetailResponse",
    "QuizListResponse",
    "CurationCommentResponse",
    "CurationCommentListResponse",
    "QuizSnapshot",
    "QuizVersionSummary",
    "QuizVersionListResponse",
    "QuizVersionResponse",
    "SnapshotRequest",
    "SnapshotResponse",
]
