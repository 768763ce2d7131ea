from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator


class QuizCreateRequest(BaseModel):
    """퀴즈 생성 요청 스키마 (항상 DRAFT로 시작)"""
    title: str = Field(..., description="제목 (3자 이상)")
    description: str | None = Field(None, description="설명")
    due_date: datetime | None = Field(None, description="마감일")


class QuizUpdateRequest(BaseModel):
    """퀴즈 메타데이터 수정 요청 (None인 필드는 변경하지 않음)"""
    title: str | None = None
    description: str | None = None
    due_date: datetime | None = None


class QuizReviewRequest(BaseModel):
    """큐레이터 검토 결정"""
    decision: Literal["APPROVED", "REJECTED"]
    message: str | None = Field(None, description="피드백 (REJECTED일 때 5자 이상 필수)")

    @field_validator("decision", mode="before")
    @classmethod
    def normalize_decision(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class QuizOptionInput(BaseModel):
    model_config = {"populate_by_name": True}

    option_text: str = Field(..., validation_alias=AliasChoices("option_text", "text"))
    is_correct: bool = False
    explanation: str | None = None


class QuizQuestionRequest(BaseModel):
    """문제 추가/수정 요청 스키마"""
    question_text: str = Field(..., description="문제 내용 (10자 이상)")
    difficulty_level: str = Field("basic", description="basic | intermediate | advanced | expert")
    options: list[QuizOptionInput] = Field(..., description="선택지 4~5개, 정답 1개")


class QuizOptionResponse(BaseModel):
    id: int
    option_text: str
    is_correct: bool
    explanation: str | None

    model_config = {"from_attributes": True}


class QuizQuestionResponse(BaseModel):
    id: int
    quiz_id: int
    question_text: str
    difficulty_level: str
    xp_value: int
    order_index: int
    created_by: str | None
    options: list[QuizOptionResponse]

    model_config = {"from_attributes": True}


class QuizResponse(BaseModel):
    """퀴즈 응답 스키마"""
    id: int
    title: str
    description: str | None
    owner_id: str
    created_by: str
    workflow_status: str
    submitted_at: datetime | None
    submitted_by: str | None
    approved_at: datetime | None
    approved_by: str | None
    published_at: datetime | None
    published_by: str | None
    due_date: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class QuizDetailResponse(QuizResponse):
    """퀴즈 상세 (order_index 순 문제 + 선택지)"""
    questions: list[QuizQuestionResponse] = Field(default_factory=list)
    is_owner: bool = False
    can_curate: bool = False


class QuizListResponse(BaseModel):
    quizzes: list[QuizResponse]
    total: int


class CurationCommentResponse(BaseModel):
    id: int
    quiz_id: int
    author_id: str
    kind: str
    message: str
    created_at: datetime

    model_config = {"from_attributes": True}


class CurationCommentListResponse(BaseModel):
    comments: list[CurationCommentResponse]
    total: int
