"""
Signed-cookie sessions (fastapi-sessions) backed by Redis, and the role checks
the payment routes depend on. Logging in is handled elsewhere; this module only
answers "who is calling and may they do this".
"""
import inspect
from typing import Optional
from uuid import UUID, uuid4

import redis
from fastapi import Depends, Request
from fastapi_sessions.backends.session_backend import SessionBackend
from fastapi_sessions.frontends.implementations import CookieParameters, SessionCookie
from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import Forbidden, Unauthorized
from app.models.user import UserRole


class SessionData(BaseModel):
    user_id: str
    email: str
    role: str = UserRole.CUSTOMER


class RedisSessionBackend(SessionBackend[UUID, SessionData]):
    def __init__(self) -> None:
        self.client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.ttl_seconds = settings.session_ttl
        self.key_prefix = "session:"

    async def create(self, session_id: UUID, data: SessionData) -> None:
        self.client.setex(
            f"{self.key_prefix}{session_id}",
            self.ttl_seconds,
            data.model_dump_json(),
        )

    async def read(self, session_id: UUID) -> Optional[SessionData]:
        raw = self.client.get(f"{self.key_prefix}{session_id}")
        if not raw:
            return None
        return SessionData.model_validate_json(raw)

    async def update(self, session_id: UUID, data: SessionData) -> None:
        await self.create(session_id, data)

    async def delete(self, session_id: UUID) -> None:
        self.client.delete(f"{self.key_prefix}{session_id}")


session_backend = RedisSessionBackend()

cookie_params = CookieParameters(
    max_age=settings.session_ttl,
    samesite=settings.session_cookie_samesite,
    secure=settings.session_cookie_secure,
)

session_cookie = SessionCookie(
    cookie_name="servixing_session",
    identifier="servixing_session",
    auto_error=False,
    secret_key=settings.session_secret,
    cookie_params=cookie_params,
)


async def get_session_id(request: Request) -> Optional[UUID]:
    session_id = session_cookie(request)
    if inspect.isawaitable(session_id):
        session_id = await session_id
    # Missing or tampered cookies come back as a FrontendError, not None
    return session_id if isinstance(session_id, UUID) else None


async def require_session(request: Request) -> SessionData:
    session_id = await get_session_id(request)
    data = await session_backend.read(session_id) if session_id else None
    if data is None:
        raise Unauthorized()
    return data


def require_role(*roles: str):
    """Dependency factory: the session's role must be one of `roles`."""
    allowed = frozenset(roles)

    async def dependency(session: SessionData = Depends(require_session)) -> SessionData:
        if session.role not in allowed:
            raise Forbidden("Admin privileges required")
        return session

    return dependency


async def create_session(user_id: str, email: str, role: str = UserRole.CUSTOMER) -> UUID:
    session_id = uuid4()
    await session_backend.create(session_id, SessionData(user_id=user_id, email=email, role=role))
    return session_id
