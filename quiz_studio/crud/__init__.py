from quiz_studio.crud.audit_log import create_audit_log, list_audit_logs
from quiz_studio.crud.content_import import (
    create_import,
    get_import_by_id,
    list_imports,
    set_ai_suggested,
    set_final_approved,
    set_raw_extract,
)
from quiz_studio.crud.curation_comment import create_comment, list_comments
from quiz_studio.crud.quiz import (
    count_questions,
    create_question,
    create_quiz,
    delete_question,
    get_max_order_index,
    get_question_by_id,
    get_questions_by_quiz_id,
    get_quiz_by_id,
    list_quizzes,
    replace_question,
)
from quiz_studio.crud.quiz_version import (
    create_version,
    get_max_version_number,
    get_version,
    list_versions,
)

__all__ = [
    "get_import_by_id",
    "list_imports",
    "create_import",
    "set_raw_extract",
    "set_ai_suggested",
    "set_final_approved",
    "get_quiz_by_id",
    "list_quizzes",
    "create_quiz",
    "get_questions_by_quiz_id",
    "get_question_by_id",
    "count_questions",
    "get_max_order_index",
    "create_question",
    "replace_question",
    "delete_question",
    "get_max_version_number",
    "create_version",
    "list_versions",
    "get_version",
    "create_audit_log",
    "list_audit_logs",
    "create_comment",
    "list_comments",
]
