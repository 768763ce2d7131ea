from quiz_studio.services.ai_service import proofread_strings, structure_questions
from quiz_studio.services.extractors import extract_document
from quiz_studio.services.import_service import (
    apply_import_to_quiz,
    create_import,
    extract_import,
    finalize_import,
    structure_import,
)
from quiz_studio.services.quiz_service import (
    publish_quiz,
    republish_quiz,
    review_quiz,
    submit_quiz,
    unsubmit_quiz,
)
from quiz_studio.services.versioning import snapshot_quiz, try_snapshot

__all__ = [
    "structure_questions",
    "proofread_strings",
    "extract_document",
    "create_import",
    "extract_import",
    "structure_import",
    "finalize_import",
    "apply_import_to_quiz",
    "submit_quiz",
    "review_quiz",
    "publish_quiz",
    "republish_quiz",
    "unsubmit_quiz",
    "snapshot_quiz",
    "try_snapshot",
]
