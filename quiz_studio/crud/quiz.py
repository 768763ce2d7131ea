from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_studio.models.quiz import XP_BY_LEVEL, Quiz, QuizOption, QuizQuestion


async def get_quiz_by_id(
    session: AsyncSession,
    quiz_id: int,
    for_update: bool = False,
) -> Quiz | None:
    """ID로 퀴즈 조회

    Args:
        session: 데이터베이스 세션
        quiz_id: 퀴즈 ID
        for_update: 트랜잭션 종료까지 행 잠금 (SELECT ... FOR UPDATE, SQLite에서는 무시됨)
    """
    stmt = select(Quiz).where(Quiz.id == quiz_id)
    if for_update:
        stmt = stmt.with_for_update()
        # 다른 트랜잭션이 바꾼 상태를 다시 읽어야 함
        stmt = stmt.execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_quizzes(
    session: AsyncSession,
    owner_id: str | None = None,
    workflow_status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[Sequence[Quiz], int]:
    """퀴즈 목록 (owner_id가 None이면 전체)"""
    stmt = select(Quiz)
    count_stmt = select(func.count(Quiz.id))
    if owner_id is not None:
        stmt = stmt.where(Quiz.owner_id == owner_id)
        count_stmt = count_stmt.where(Quiz.owner_id == owner_id)
    if workflow_status is not None:
        stmt = stmt.where(Quiz.workflow_status == workflow_status)
        count_stmt = count_stmt.where(Quiz.workflow_status == workflow_status)

    total = await session.scalar(count_stmt)
    stmt = stmt.order_by(Quiz.updated_at.desc(), Quiz.id.desc()).limit(limit).offset(offset)
    result = await session.execute(stmt)
    return result.scalars().all(), total or 0


async def create_quiz(
    session: AsyncSession,
    title: str,
    owner_id: str,
    description: str | None = None,
    due_date=None,
) -> Quiz:
    quiz = Quiz(
        title=title,
        description=description,
        owner_id=owner_id,
        created_by=owner_id,
        due_date=due_date,
    )
    session.add(quiz)
    await session.flush()
    return quiz


async def get_questions_by_quiz_id(
    session: AsyncSession,
    quiz_id: int,
    populate_existing: bool = False,
) -> Sequence[QuizQuestion]:
    """order_index 순 문제 목록 (선택지는 selectin으로 함께 로드)

    populate_existing이면 세션에 이미 있는 객체도 DB 값으로 다시 채웁니다.
    """
    stmt = (
        select(QuizQuestion)
        .where(QuizQuestion.quiz_id == quiz_id)
        .order_by(QuizQuestion.order_index, QuizQuestion.id)
    )
    if populate_existing:
        stmt = stmt.execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_question_by_id(session: AsyncSession, question_id: int) -> QuizQuestion | None:
    result = await session.execute(select(QuizQuestion).where(QuizQuestion.id == question_id))
    return result.scalar_one_or_none()


async def count_questions(session: AsyncSession, quiz_id: int) -> int:
    total = await session.scalar(select(func.count(QuizQuestion.id)).where(QuizQuestion.quiz_id == quiz_id))
    return total or 0


async def get_max_order_index(session: AsyncSession, quiz_id: int) -> int:
    """현재 최대 order_index (문제가 없으면 -1)"""
    max_index = await session.scalar(
        select(func.max(QuizQuestion.order_index)).where(QuizQuestion.quiz_id == quiz_id)
    )
    return -1 if max_index is None else max_index


async def create_question(
    session: AsyncSession,
    quiz_id: int,
    question_text: str,
    order_index: int,
    options: list[dict],
    difficulty_level: str = "basic",
    created_by: str | None = None,
) -> QuizQuestion:
    """문제 + 선택지 생성

    options 항목: {"option_text", "is_correct", "explanation"}
    """
    question = QuizQuestion(
        quiz_id=quiz_id,
        question_text=question_text,
        difficulty_level=difficulty_level,
        xp_value=XP_BY_LEVEL[difficulty_level],
        order_index=order_index,
        created_by=created_by,
        options=[
            QuizOption(
                option_text=opt["option_text"],
                is_correct=bool(opt.get("is_correct", False)),
                explanation=opt.get("explanation"),
            )
            for opt in options
        ],
    )
    session.add(question)
    await session.flush()
    return question


async def replace_question(
    session: AsyncSession,
    question: QuizQuestion,
    question_text: str,
    difficulty_level: str,
    options: list[dict],
) -> QuizQuestion:
    """문제 내용과 선택지 전체 교체 (order_index 유지)"""
    question.question_text = question_text
    question.difficulty_level = difficulty_level
    question.xp_value = XP_BY_LEVEL[difficulty_level]
    question.options = [
        QuizOption(
            option_text=opt["option_text"],
            is_correct=bool(opt.get("is_correct", False)),
            explanation=opt.get("explanation"),
        )
        for opt in options
    ]
    await session.flush()
    return question


async def delete_question(session: AsyncSession, question: QuizQuestion) -> None:
    """문제 삭제 후 뒤쪽 문제의 order_index를 당겨 연속성 유지"""
    quiz_id = question.quiz_id
    removed_index = question.order_index
    await session.delete(question)
    await session.flush()

    stmt = (
        select(QuizQuestion)
        .where(QuizQuestion.quiz_id == quiz_id, QuizQuestion.order_index > removed_index)
        .order_by(QuizQuestion.order_index)
    )
    result = await session.execute(stmt)
    for later in result.scalars().all():
        later.order_index -= 1
    await session.flush()
