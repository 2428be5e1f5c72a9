import re
import time

from fastapi import APIRouter, HTTPException, Request, Response, status
from loguru import logger
from pydantic import BaseModel

from stayportal.gateway.demo import demo_reservation, is_demo_code
from stayportal.gateway.deps import GuestyClientDep, RedisClient, SessionManagerDep, SettingsDep
from stayportal.gateway.exceptions import (
    NotAuthenticatedError,
    RateLimitedError,
    ServiceUnavailableError,
    UpstreamError,
)
from stayportal.gateway.guesty import GuestyAPIError, GuestyTokenQuotaError, Reservation
from stayportal.gateway.portal_codes import is_portal_code_shaped, lookup_by_code
from stayportal.gateway.rate_limit import AUTH, check_rate_limit, get_client_ip
from stayportal.gateway.sessions import SESSION_COOKIE_NAME, GuestIdentity

router = APIRouter(prefix="/api/auth", tags=["Auth"])

CODE_PATTERN = re.compile(r"^[A-Za-z0-9-]{3,40}$")


class LoginRequest(BaseModel):
    confirmation_code: str = ""  # confirmation code or portal code


class LoginResponse(BaseModel):
    session: GuestIdentity
    reservation: Reservation


class SessionStatusResponse(BaseModel):
    authenticated: bool
    session: GuestIdentity | None = None


@router.post("")
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    settings: SettingsDep,
    redis: RedisClient,
    sessions: SessionManagerDep,
    guesty: GuestyClientDep,
) -> LoginResponse:
    """Log a guest in by confirmation code or portal code and issue the session cookie."""
    code = body.confirmation_code.strip()
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Confirmation code is required")

    if is_demo_code(code):
        reservation = demo_reservation()
        identity = GuestIdentity(
            reservation_id=reservation.id,
            confirmation_code=reservation.confirmation_code,
            guest_name=reservation.guest_name,
            listing_id=reservation.listing_id,
            is_demo=True,
        )
        if await sessions.create(response, identity) is None:
            logger.warning("Demo login without a session: store unavailable")
        return LoginResponse(session=identity, reservation=reservation)

    now_ms = int(time.time() * 1000)
    limit = await check_rate_limit(
        redis, get_client_ip(request), AUTH, fail_open=settings.rate_limit_fail_open, now_ms=now_ms
    )
    if not limit.success:
        raise RateLimitedError(limit.reset_at, now_ms)

    if not CODE_PATTERN.match(code):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid confirmation code format")

    reservation = None
    try:
        if is_portal_code_shaped(code):
            reservation_id = await lookup_by_code(redis, code)
            if reservation_id:
                reservation = await guesty.get_reservation(reservation_id)
        if reservation is None:
            reservation = await guesty.get_reservation_by_confirmation_code(code)
    except GuestyTokenQuotaError:
        logger.error("Login failed: Guesty token quota exhausted, set GUESTY_ACCESS_TOKEN")
        raise ServiceUnavailableError("Login is temporarily unavailable. Please try again later.")
    except GuestyAPIError as e:
        logger.error(f"Login lookup failed: Guesty returned {e.status_code}")
        raise UpstreamError("Something went wrong. Please try again.")

    if reservation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Reservation not found. Please check your confirmation code.",
        )

    identity = GuestIdentity(
        reservation_id=reservation.id,
        confirmation_code=reservation.confirmation_code,
        guest_name=reservation.guest_name,
        listing_id=reservation.listing_id,
    )
    if await sessions.create(response, identity) is None:
        raise ServiceUnavailableError("Unable to start a session. Please try again later.")

    return LoginResponse(session=identity, reservation=reservation)


@router.get("/session")
async def get_session(
    request: Request,
    response: Response,
    sessions: SessionManagerDep,
) -> SessionStatusResponse:
    """Introspect the current session and slide its expiry forward."""
    session = await sessions.get(request, response)
    if session is None:
        raise NotAuthenticatedError(clear_cookie=SESSION_COOKIE_NAME in request.cookies)

    await sessions.refresh(request, response)
    return SessionStatusResponse(
        authenticated=True,
        session=GuestIdentity.model_validate(session.model_dump(exclude={"created_at"})),
    )


@router.delete("/session")
async def logout(request: Request, response: Response, sessions: SessionManagerDep) -> dict:
    await sessions.destroy(request, response)
    return {"status": "ok"}
