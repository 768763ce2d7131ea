from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.core.security import Caller, get_current_caller
from quiz_studio.models.base import get_db
from quiz_studio.schemas import quiz as quiz_schema
from quiz_studio.services import quiz_service

router = APIRouter(prefix="/questions", tags=["questions"])


@router.put("/{question_id}", response_model=quiz_schema.QuizQuestionResponse)
async def update_question(
    question_id: int,
    request: quiz_schema.QuizQuestionRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """문제 수정 API (선택지 전체 교체)"""
    question = await quiz_service.update_question(db, question_id, caller, request)
    return quiz_schema.QuizQuestionResponse.model_validate(question)


@router.delete("/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_question(
    question_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """문제 삭제 API (뒤쪽 문제 순서 당김)"""
    await quiz_service.delete_question(db, question_id, caller)
