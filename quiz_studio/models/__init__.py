from quiz_studio.models.audit_log import AuditLog
from quiz_studio.models.base import Base, get_db
from quiz_studio.models.content_import import ContentImport, ImportStatus
from quiz_studio.models.curation_comment import QuizCurationComment
from quiz_studio.models.quiz import (
    XP_BY_LEVEL,
    DifficultyLevel,
    Quiz,
    QuizOption,
    QuizQuestion,
    QuizWorkflowStatus,
)
from quiz_studio.models.quiz_version import QuizVersion

__all__ = [
    "Base",
    "ContentImport",
    "ImportStatus",
    "Quiz",
    "QuizQuestion",
    "QuizOption",
    "QuizWorkflowStatus",
    "DifficultyLevel",
    "XP_BY_LEVEL",
    "QuizVersion",
    "AuditLog",
    "QuizCurationComment",
    "get_db",
]
