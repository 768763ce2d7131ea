from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, field_validator

OPTION_LETTERS = ("A", "B", "C", "D", "E")


class CandidateQuestion(BaseModel):
    """임포트 후보 문제 (추출/구조화 결과에 포함, 아직 퀴즈에 반영되지 않음)

    포르투갈어 헤더(pergunta, alt_a, correta, explicacao)와
    영어 헤더(question, a, answer)를 모두 허용합니다.
    """

    model_config = {"populate_by_name": True, "extra": "ignore"}

    prompt: str = Field("", validation_alias=AliasChoices("prompt", "question", "question_text", "pergunta"))
    option_a: str = Field("", validation_alias=AliasChoices("option_a", "a", "alt_a"))
    option_b: str = Field("", validation_alias=AliasChoices("option_b", "b", "alt_b"))
    option_c: str = Field("", validation_alias=AliasChoices("option_c", "c", "alt_c"))
    option_d: str = Field("", validation_alias=AliasChoices("option_d", "d", "alt_d"))
    option_e: str = Field("", validation_alias=AliasChoices("option_e", "e", "alt_e"))
    correct: str = Field("", validation_alias=AliasChoices("correct", "answer", "correct_letter", "correta"))
    explanation: str | None = Field(None, validation_alias=AliasChoices("explanation", "explicacao"))

    @field_validator("prompt", "option_a", "option_b", "option_c", "option_d", "option_e", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("correct", mode="before")
    @classmethod
    def normalize_letter(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip().upper()

    @field_validator("explanation", mode="before")
    @classmethod
    def normalize_explanation(cls, v: Any) -> str | None:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    def lettered_options(self) -> list[tuple[str, str]]:
        """비어 있지 않은 선택지를 (문자, 텍스트) 목록으로 반환 (A~E 순서 유지)"""
        pairs = [
            ("A", self.option_a),
            ("B", self.option_b),
            ("C", self.option_c),
            ("D", self.option_d),
            ("E", self.option_e),
        ]
        return [(letter, text) for letter, text in pairs if text]


# raw_extract 종류별 페이로드 (kind로 구분되는 닫힌 집합)
class CsvExtract(BaseModel):
    kind: Literal["csv"] = "csv"
    purpose: str | None = None
    headers: list[str] = Field(default_factory=list)
    questions: list[dict[str, Any]] = Field(default_factory=list)


class XlsxExtract(BaseModel):
    kind: Literal["xlsx"] = "xlsx"
    purpose: str | None = None
    sheet: str | None = None
    questions: list[dict[str, Any]] = Field(default_factory=list)


class PdfExtract(BaseModel):
    kind: Literal["pdf"] = "pdf"
    purpose: str | None = None
    text: str = ""


class TxtExtract(BaseModel):
    kind: Literal["txt"] = "txt"
    purpose: str | None = None
    text: str = ""


class DocxExtract(BaseModel):
    kind: Literal["docx"] = "docx"
    purpose: str | None = None
    text: str = ""


class JsonExtract(BaseModel):
    kind: Literal["json"] = "json"
    purpose: str | None = None
    questions: list[dict[str, Any]] | None = None
    text: str | None = None


RawExtract = Annotated[
    Union[CsvExtract, XlsxExtract, PdfExtract, TxtExtract, DocxExtract, JsonExtract],
    Field(discriminator="kind"),
]
raw_extract_adapter: TypeAdapter[RawExtract] = TypeAdapter(RawExtract)

TABULAR_KINDS = frozenset({"csv", "xlsx", "json"})
TEXT_KINDS = frozenset({"pdf", "txt", "docx", "json"})


class AISuggested(BaseModel):
    """구조화 단계 결과 (model='passthrough'이면 외부 호출 없이 승격된 것)"""
    model: str
    questions: list[dict[str, Any]]


class ImportCreateRequest(BaseModel):
    """임포트 생성 요청 (업로드 완료된 원본 위치)"""
    source_bucket: str | None = Field(None, description="버킷 (None이면 기본 버킷)")
    source_path: str = Field(..., min_length=1, description="버킷 내 경로")
    source_mime: str | None = Field(None, description="업로드 시 선언된 MIME")

    @field_validator("source_path")
    @classmethod
    def strip_path(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("source_path는 필수입니다")
        return v


class ImportExtractRequest(BaseModel):
    purpose: str | None = Field(None, description="추출 용도 (예: quiz, catalog)")


class ImportFinalizeRequest(BaseModel):
    """큐레이터 최종 승인 페이로드 ({kind, questions|catalog})"""
    final: Any = Field(..., description="최종 승인 페이로드")


class ImportApplyRequest(BaseModel):
    quiz_id: int = Field(..., description="반영할 퀴즈 ID (DRAFT 상태여야 함)")
    source: Literal["final", "ai"] = Field("final", description="반영할 페이로드 선택")

    @field_validator("source", mode="before")
    @classmethod
    def normalize_source(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class SkippedCandidate(BaseModel):
    index: int
    reason: Literal["empty_prompt", "too_few_options", "invalid_correct", "malformed"]


class ImportApplyResponse(BaseModel):
    created_questions: int
    skipped_questions: int = 0
    skipped: list[SkippedCandidate] = Field(default_factory=list)


class ImportResponse(BaseModel):
    id: int
    created_by: str
    source_bucket: str
    source_path: str
    source_mime: str | None
    status: str
    raw_extract: dict[str, Any] | None
    ai_suggested: dict[str, Any] | None
    final_approved: Any | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ImportListResponse(BaseModel):
    imports: list[ImportResponse]
    total: int
