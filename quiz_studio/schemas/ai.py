from typing import Any

from pydantic import BaseModel, Field


class AIStructuringRequest(BaseModel):
    """AI 구조화 요청 스키마 (내부 사용)"""
    source_text: str = Field(..., min_length=1, description="원본 텍스트 (추출 결과)")


class AIStructuringResponse(BaseModel):
    """AI 구조화 응답 스키마 (Structured Output)"""
    questions: list[dict[str, Any]] = Field(..., description="후보 문제 목록")


class AIStructuringResult(BaseModel):
    model: str
    questions: list[dict[str, Any]]


class AIProofreadResponse(BaseModel):
    """AI 교정 응답 스키마 (입력과 같은 개수)"""
    strings: list[str]


class AIProofreadResult(BaseModel):
    output: list[str]
    used_model: str | None = None
