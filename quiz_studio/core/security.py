import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from quiz_studio.core.config import settings
from quiz_studio.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_CONTENT_CURATOR = "content_curator"
CURATOR_ROLES = frozenset({ROLE_ADMIN, ROLE_CONTENT_CURATOR})
# 스튜디오 접근이 허용되는 관리자 계열 역할
STUDIO_ROLES = frozenset({"team_leader", "leader", "manager", "gerente", "coordinator"})

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """인증된 호출자"""
    id: str
    roles: frozenset[str] = field(default_factory=frozenset)
    studio_access: bool = False
    is_leader: bool = False


def can_curate(caller: Caller) -> bool:
    return bool(caller.roles & CURATOR_ROLES)


def can_access_studio(caller: Caller) -> bool:
    return caller.studio_access or caller.is_leader or bool(caller.roles & STUDIO_ROLES) or can_curate(caller)


def create_access_token(
    user_id: str,
    roles: list[str] | None = None,
    studio_access: bool = False,
    is_leader: bool = False,
    ttl_minutes: int = 120,
) -> str:
    """접근 토큰 발급 (개발/테스트용)"""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "roles": roles or [],
        "studio_access": studio_access,
        "is_leader": is_leader,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def resolve_caller(token: str) -> Caller:
    """토큰을 검증하고 호출자 정보로 변환"""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.PyJWTError as e:
        logger.info(f"토큰 검증 실패: {type(e).__name__}")
        raise AuthenticationError("유효하지 않거나 만료된 토큰입니다") from e

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("토큰에 사용자 정보가 없습니다")

    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return Caller(
        id=str(user_id),
        roles=frozenset(str(r).strip().lower() for r in roles if r),
        studio_access=bool(payload.get("studio_access", False)),
        is_leader=bool(payload.get("is_leader", False)),
    )


async def get_current_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> Caller:
    """FastAPI 의존성: Authorization 헤더의 Bearer 토큰으로 호출자 확인"""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()
    return resolve_caller(credentials.credentials)
