import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from quiz_studio.api.v1 import audit, imports, questions, quizzes
from quiz_studio.core.config import settings
from quiz_studio.core.logging import setup_logging
from quiz_studio.exceptions import AuthenticationError, BaseAppError
from quiz_studio.models.base import get_engine

# 로깅 설정
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Quiz Studio API",
    description="퀴즈 콘텐츠 임포트, 검토 워크플로, 버전 관리 API",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (imports.router, quizzes.router, questions.router, audit.router):
    app.include_router(router, prefix="/api/v1")


def create_cors_response(
    status_code: int,
    content: dict,
    request: Request,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """CORS 헤더를 포함한 JSONResponse 생성 (예외 핸들러용)"""
    response = JSONResponse(status_code=status_code, content=content, headers=headers)
    origin = request.headers.get("origin")
    if origin and origin in settings.allowed_origins_list:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"
    return response


def _server_error_content(exc: Exception, public_detail: str) -> dict:
    # 프로덕션 환경에서는 상세 에러 메시지 숨김
    if settings.environment == "production":
        return {"detail": public_detail}
    return {"detail": str(exc), "type": exc.__class__.__name__}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """요청 검증 오류 핸들러"""
    errors = jsonable_encoder(exc.errors())
    logger.warning(f"요청 검증 오류: path={request.url.path}, errors={errors}")
    return create_cors_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
        request=request,
    )


@app.exception_handler(BaseAppError)
async def app_exception_handler(request: Request, exc: BaseAppError):
    """애플리케이션 예외 핸들러 ({"detail": message})"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Application error: {exc.__class__.__name__} - {exc.message}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "status_code": exc.status_code,
        },
    )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return create_cors_response(
        status_code=exc.status_code,
        content={"detail": exc.message},
        request=request,
        headers=headers,
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """데이터베이스 예외 핸들러"""
    logger.error(
        f"Database error: {exc.__class__.__name__}",
        exc_info=True,
        extra={"path": request.url.path, "method": request.method},
    )
    return create_cors_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_server_error_content(exc, "Database error occurred"),
        request=request,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """전역 예외 핸들러 - 모든 미처리 예외를 로깅"""
    logger.error(
        f"Unhandled exception: {exc.__class__.__name__}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
            "query_params": dict(request.query_params),
        },
    )
    return create_cors_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_server_error_content(exc, "Internal Server Error"),
        request=request,
    )


@app.get("/")
async def root():
    return {"message": "Quiz Studio API", "version": "0.1.0"}


@app.get("/health")
async def health_check():
    """헬스 체크 엔드포인트"""
    return {"status": "healthy"}


@app.get("/health/db")
async def health_check_db():
    """데이터베이스 연결 상태 확인"""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "disconnected"},
        )
