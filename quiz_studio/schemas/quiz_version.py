from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class SnapshotOption(BaseModel):
    id: int
    option_text: str
    is_correct: bool
    explanation: str | None

    model_config = {"from_attributes": True}


class SnapshotQuestion(BaseModel):
    id: int
    question_text: str
    difficulty_level: str
    xp_value: int
    order_index: int
    created_by: str | None
    created_at: datetime
    options: list[SnapshotOption]

    model_config = {"from_attributes": True}


class SnapshotQuiz(BaseModel):
    id: int
    title: str
    description: str | None
    owner_id: str
    created_by: str
    workflow_status: str
    submitted_at: datetime | None
    approved_at: datetime | None
    approved_by: str | None
    published_at: datetime | None
    published_by: str | None
    due_date: datetime | None

    model_config = {"from_attributes": True}


class QuizSnapshot(BaseModel):
    """스냅샷 문서 (퀴즈 + order_index 순 문제 + 선택지)"""
    quiz: SnapshotQuiz
    questions: list[SnapshotQuestion]


class SnapshotRequest(BaseModel):
    reason: str | None = Field(None, max_length=400, description="스냅샷 사유")


class SnapshotResponse(BaseModel):
    version_number: int


class QuizVersionSummary(BaseModel):
    version_number: int
    created_at: datetime
    created_by: str | None
    reason: str | None

    model_config = {"from_attributes": True}


class QuizVersionListResponse(BaseModel):
    versions: list[QuizVersionSummary]
    total: int


class QuizVersionResponse(QuizVersionSummary):
    quiz_id: int
    snapshot: dict[str, Any]
