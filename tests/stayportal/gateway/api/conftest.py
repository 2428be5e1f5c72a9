import hashlib
import hmac
import json
import time
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import AsyncClient

from stayportal.gateway import create_app
from stayportal.gateway.cache import Caches
from stayportal.gateway.config import Settings
from stayportal.gateway.deps import get_guesty_client, get_notifier
from stayportal.gateway.guesty import GuestyClient, Money, Reservation
from stayportal.gateway.notifications import Notifier
from stayportal.gateway.redis_client import get_redis_client

STRIPE_WEBHOOK_SECRET = "whsec_test"
ADMIN_SECRET = "admin-secret"
CRON_SECRET = "cron-secret"


@pytest_asyncio.fixture(scope="function")
async def app(redis) -> FastAPI:
    settings = Settings(
        redis_url=None,
        cors_origins=["*"],
        app_url="http://portal.test",
        token_cache_type=Caches.MEMORY,
        guesty_portal_code_field_id="field-portal-code",
        stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
        admin_secret=ADMIN_SECRET,
        cron_secret=CRON_SECRET,
        session_cookie_secure=False,  # the test client talks plain http
        portal_sync_delay_seconds=0,
    )

    app = create_app(settings)

    async with app.router.lifespan_context(app):
        app.dependency_overrides[get_redis_client] = lambda: redis
        yield app


@pytest.fixture
def guesty(app) -> AsyncMock:
    guesty = AsyncMock(spec=GuestyClient)
    guesty.get_reservation.return_value = None
    guesty.get_reservation_by_confirmation_code.return_value = None
    guesty.get_listing.return_value = None
    guesty.get_payments.return_value = []
    app.dependency_overrides[get_guesty_client] = lambda: guesty
    yield guesty
    app.dependency_overrides.pop(get_guesty_client, None)


@pytest.fixture
def notifier(app) -> AsyncMock:
    notifier = AsyncMock(spec=Notifier)
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield notifier
    app.dependency_overrides.pop(get_notifier, None)


@pytest_asyncio.fixture
async def client(app, guesty, notifier):
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def reservation() -> Reservation:
    return Reservation(
        id="res-123",
        confirmation_code="HA-ABC123",
        guest_name="Ada Guest",
        guest_email="ada@example.com",
        check_in="2025-07-04",
        check_out="2025-07-08",
        status="confirmed",
        listing_id="listing-1",
        money=Money(total_paid=900, balance_due=0),
    )


@pytest_asyncio.fixture
async def logged_in(client, guesty, reservation) -> Reservation:
    """Log in as `reservation`; the client then carries the session cookie."""
    guesty.get_reservation_by_confirmation_code.return_value = reservation
    response = await client.post("/api/auth", json={"confirmation_code": reservation.confirmation_code})
    assert response.status_code == 200
    return reservation


def _signed_stripe_request(
    event_type: str, obj: dict, event_id: str = "evt_test", secret: str = STRIPE_WEBHOOK_SECRET
) -> tuple[bytes, dict[str, str]]:
    payload = json.dumps({"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}).encode()
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return payload, {"stripe-signature": f"t={timestamp},v1={signature}", "content-type": "application/json"}


@pytest.fixture
def stripe_request():
    """Build a webhook payload and headers exactly as Stripe would send them."""
    return _signed_stripe_request
