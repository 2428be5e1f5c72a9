"""Server-side guest sessions.

The browser only ever holds an opaque random id in an HTTP-only cookie; the
session payload lives at `session:{id}` with a 24h TTL that slides forward on
`refresh`. All authorization after login derives from this lookup.
"""

import secrets
import time

from fastapi import Request, Response
from loguru import logger
from pydantic import BaseModel, Field
from redis.asyncio import Redis
from redis.exceptions import RedisError

from stayportal.contracts.redis_keys import SESSION
from stayportal.gateway.exceptions import ServiceUnavailableError

SESSION_COOKIE_NAME = "guest_session"
SESSION_TTL_SECONDS = 60 * 60 * 24


class GuestIdentity(BaseModel):
    reservation_id: str
    confirmation_code: str
    guest_name: str
    listing_id: str
    is_demo: bool = False


class SessionData(GuestIdentity):
    created_at: int = Field(default_factory=lambda: int(time.time() * 1000))  # ms


def _session_key(session_id: str) -> str:
    return SESSION.format(session_id=session_id)


def clear_session_cookie(response: Response, *, secure: bool) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=secure,
        samesite="lax",
    )


class SessionManager:
    def __init__(
        self,
        redis: Redis | None,
        *,
        secure_cookie: bool = True,
        ttl_seconds: int = SESSION_TTL_SECONDS,
    ) -> None:
        self.redis = redis
        self.secure_cookie = secure_cookie
        self.ttl_seconds = ttl_seconds

    def _set_cookie(self, response: Response, session_id: str) -> None:
        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=session_id,
            max_age=self.ttl_seconds,
            path="/",
            httponly=True,
            secure=self.secure_cookie,
            samesite="lax",
        )

    def clear_cookie(self, response: Response) -> None:
        clear_session_cookie(response, secure=self.secure_cookie)

    async def create(self, response: Response, identity: GuestIdentity) -> str | None:
        """Persist a new session and set its cookie. None means no session exists; callers must not proceed."""
        if self.redis is None:
            logger.error("Redis not configured - cannot create session")
            return None

        session_id = secrets.token_urlsafe(32)
        data = SessionData(**identity.model_dump())
        try:
            await self.redis.set(_session_key(session_id), data.model_dump_json(), ex=self.ttl_seconds)
        except RedisError as e:
            logger.error(f"Error creating session for reservation {identity.reservation_id}: {e}")
            return None

        self._set_cookie(response, session_id)
        logger.info(f"Created session {session_id[:8]}... for reservation {identity.reservation_id}")
        return session_id

    async def resolve(self, session_id: str) -> SessionData | None:
        """Look up a session id without touching cookies.

        None means the session is gone. A store error raises ServiceUnavailableError
        instead, so callers keep the cookie of a session that may still be alive.
        """
        if self.redis is None:
            return None
        try:
            raw = await self.redis.get(_session_key(session_id))
        except RedisError as e:
            logger.error(f"Error resolving session {session_id[:8]}...: {e}")
            raise ServiceUnavailableError("Session store unavailable. Please try again later.") from e
        if raw is None:
            return None
        return SessionData.model_validate_json(raw)

    async def get(self, request: Request, response: Response) -> SessionData | None:
        session_id = request.cookies.get(SESSION_COOKIE_NAME)
        if not session_id:
            return None

        data = await self.resolve(session_id)
        if data is None:
            self.clear_cookie(response)
        return data

    async def refresh(self, request: Request, response: Response) -> bool:
        """Slide the expiry of the existing session forward, store TTL and cookie max-age alike."""
        session_id = request.cookies.get(SESSION_COOKIE_NAME)
        if not session_id or self.redis is None:
            return False

        try:
            extended = await self.redis.expire(_session_key(session_id), self.ttl_seconds)
        except RedisError as e:
            logger.error(f"Error refreshing session {session_id[:8]}...: {e}")
            return False

        if extended:
            self._set_cookie(response, session_id)
        return bool(extended)

    async def destroy(self, request: Request, response: Response) -> bool:
        session_id = request.cookies.get(SESSION_COOKIE_NAME)
        if session_id and self.redis is not None:
            try:
                await self.redis.delete(_session_key(session_id))
            except RedisError as e:
                logger.error(f"Error destroying session {session_id[:8]}...: {e}")
                self.clear_cookie(response)
                return False

        self.clear_cookie(response)
        return True
