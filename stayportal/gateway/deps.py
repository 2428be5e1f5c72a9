import secrets
from typing import Annotated

import stripe
from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis.asyncio import Redis

from stayportal.gateway.config import Settings, get_settings
from stayportal.gateway.exceptions import NotAuthenticatedError, ServiceUnavailableError
from stayportal.gateway.guesty import GuestyClient
from stayportal.gateway.notifications import Notifier
from stayportal.gateway.redis_client import get_redis_client
from stayportal.gateway.sessions import SESSION_COOKIE_NAME, SessionData, SessionManager
from stayportal.gateway.upsell_requests import UpsellLedger

bearer = HTTPBearer(auto_error=False)

SettingsDep = Annotated[Settings, Depends(get_settings)]
RedisClient = Annotated[Redis | None, Depends(get_redis_client)]


def get_session_manager(redis: RedisClient, settings: SettingsDep) -> SessionManager:
    return SessionManager(redis, secure_cookie=settings.session_cookie_secure)


def get_upsell_ledger(redis: RedisClient) -> UpsellLedger:
    return UpsellLedger(redis)


async def get_guesty_client(request: Request) -> GuestyClient:
    return request.app.state.guesty_client


async def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_stripe_client(settings: SettingsDep) -> stripe.StripeClient:
    if not settings.stripe_secret_key:
        raise ServiceUnavailableError("Payments are not configured")
    return stripe.StripeClient(settings.stripe_secret_key)


SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]
UpsellLedgerDep = Annotated[UpsellLedger, Depends(get_upsell_ledger)]
GuestyClientDep = Annotated[GuestyClient, Depends(get_guesty_client)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]
StripeClientDep = Annotated[stripe.StripeClient, Depends(get_stripe_client)]


async def get_current_session(request: Request, sessions: SessionManagerDep) -> SessionData:
    """The guest's server-side session. Reservation ids are never taken from the client."""
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    if not session_id:
        raise NotAuthenticatedError()

    session = await sessions.resolve(session_id)
    if session is None:
        raise NotAuthenticatedError("session expired", clear_cookie=True)

    request.state.reservation_id = session.reservation_id
    return session


async def get_optional_session(request: Request, sessions: SessionManagerDep) -> SessionData | None:
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    if not session_id:
        return None
    try:
        return await sessions.resolve(session_id)
    except ServiceUnavailableError:
        return None


CurrentSession = Annotated[SessionData, Depends(get_current_session)]
OptionalSession = Annotated[SessionData | None, Depends(get_optional_session)]


def _check_bearer_secret(expected: str | None, creds: HTTPAuthorizationCredentials | None, what: str) -> None:
    if not expected:
        raise ServiceUnavailableError(f"{what} access is not configured")
    if creds is None or not secrets.compare_digest(creds.credentials.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_admin(
    settings: SettingsDep,
    creds: HTTPAuthorizationCredentials | None = Security(bearer),
) -> None:
    """Require `Authorization: Bearer <ADMIN_SECRET>`."""
    _check_bearer_secret(settings.admin_secret, creds, "Admin")


async def require_cron(
    settings: SettingsDep,
    creds: HTTPAuthorizationCredentials | None = Security(bearer),
) -> None:
    """Require `Authorization: Bearer <CRON_SECRET>`."""
    _check_bearer_secret(settings.cron_secret, creds, "Cron")
