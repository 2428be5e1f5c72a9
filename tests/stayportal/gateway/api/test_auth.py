"""Tests for guest login, session introspection and logout."""

from unittest.mock import AsyncMock

import pytest
from fastapi import status
from redis.exceptions import ConnectionError

from stayportal.gateway.config import get_settings
from stayportal.gateway.guesty import GuestyAPIError, GuestyTokenQuotaError
from stayportal.gateway.portal_codes import store_code
from stayportal.gateway.redis_client import get_redis_client


@pytest.mark.asyncio
async def test_login_with_confirmation_code(client, guesty, reservation):
    guesty.get_reservation_by_confirmation_code.return_value = reservation

    response = await client.post("/api/auth", json={"confirmation_code": "HA-ABC123"})

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["session"]["reservation_id"] == "res-123"
    assert body["reservation"]["guest_name"] == "Ada Guest"
    cookie = response.headers["set-cookie"]
    assert "guest_session=" in cookie
    assert "HttpOnly" in cookie
    guesty.get_reservation_by_confirmation_code.assert_awaited_once_with("HA-ABC123")


@pytest.mark.asyncio
async def test_login_with_portal_code(client, guesty, redis, reservation):
    await store_code(redis, "res-123", "HMXKPQ")
    guesty.get_reservation.return_value = reservation

    response = await client.post("/api/auth", json={"confirmation_code": "hmxkpq"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["session"]["reservation_id"] == "res-123"
    guesty.get_reservation.assert_awaited_once_with("res-123")
    guesty.get_reservation_by_confirmation_code.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_portal_shaped_code_falls_back_to_confirmation_code(client, guesty, reservation):
    guesty.get_reservation_by_confirmation_code.return_value = reservation

    response = await client.post("/api/auth", json={"confirmation_code": "ABCDEF"})

    assert response.status_code == status.HTTP_200_OK
    guesty.get_reservation_by_confirmation_code.assert_awaited_once_with("ABCDEF")


@pytest.mark.asyncio
async def test_unknown_code_is_404(client, guesty):
    response = await client.post("/api/auth", json={"confirmation_code": "NOPE-1"})

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert "set-cookie" not in response.headers


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"confirmation_code": ""}, {"confirmation_code": "   "}])
async def test_missing_code_is_400(client, guesty, payload):
    response = await client.post("/api/auth", json=payload)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    guesty.get_reservation_by_confirmation_code.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["ab", "has spaces", "semi;colon", "x" * 41])
async def test_malformed_code_is_400(client, guesty, code):
    response = await client.post("/api/auth", json={"confirmation_code": code})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    guesty.get_reservation_by_confirmation_code.assert_not_awaited()


@pytest.mark.asyncio
async def test_upstream_failure_is_502_without_details(client, guesty):
    guesty.get_reservation_by_confirmation_code.side_effect = GuestyAPIError(500, "secret upstream body")

    response = await client.post("/api/auth", json={"confirmation_code": "HA-ABC123"})

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert "secret upstream body" not in response.text


@pytest.mark.asyncio
async def test_token_quota_is_503(client, guesty):
    guesty.get_reservation_by_confirmation_code.side_effect = GuestyTokenQuotaError("quota")

    response = await client.post("/api/auth", json={"confirmation_code": "HA-ABC123"})

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


@pytest.mark.asyncio
async def test_sixth_attempt_per_minute_is_rate_limited(client, guesty):
    headers = {"x-forwarded-for": "203.0.113.7"}
    for _ in range(5):
        response = await client.post("/api/auth", json={"confirmation_code": "NOPE-1"}, headers=headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND

    response = await client.post("/api/auth", json={"confirmation_code": "NOPE-1"}, headers=headers)

    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert int(response.headers["retry-after"]) >= 1
    assert guesty.get_reservation_by_confirmation_code.await_count == 5

    other = await client.post("/api/auth", json={"confirmation_code": "NOPE-1"}, headers={"x-forwarded-for": "198.51.100.1"})
    assert other.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["DEMO", "demo123"])
async def test_demo_login_never_calls_guesty(client, guesty, code):
    response = await client.post("/api/auth", json={"confirmation_code": code})

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["session"]["is_demo"] is True
    assert body["reservation"]["id"].startswith("demo-")
    guesty.get_reservation_by_confirmation_code.assert_not_awaited()
    guesty.get_reservation.assert_not_awaited()


@pytest.mark.asyncio
async def test_demo_login_works_without_store(app, client, guesty):
    app.dependency_overrides[get_redis_client] = lambda: None

    response = await client.post("/api/auth", json={"confirmation_code": "DEMO123"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["reservation"]["confirmation_code"] == "DEMO123"
    assert "set-cookie" not in response.headers


@pytest.mark.asyncio
async def test_real_login_without_store_is_503(app, client, guesty, reservation):
    app.dependency_overrides[get_redis_client] = lambda: None
    guesty.get_reservation_by_confirmation_code.return_value = reservation

    response = await client.post("/api/auth", json={"confirmation_code": "HA-ABC123"})

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert "set-cookie" not in response.headers


@pytest.mark.asyncio
async def test_session_introspection(client, logged_in):
    response = await client.get("/api/auth/session")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["authenticated"] is True
    assert response.json()["session"]["reservation_id"] == logged_in.id
    # sliding expiry re-issues the cookie
    assert "guest_session=" in response.headers["set-cookie"]


@pytest.mark.asyncio
async def test_session_without_cookie_is_401(client):
    response = await client.get("/api/auth/session")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.asyncio
async def test_stale_cookie_is_401_and_cleared(client):
    client.cookies.set("guest_session", "stale-session-id")

    response = await client.get("/api/auth/session")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert 'guest_session=""' in response.headers["set-cookie"]


@pytest.mark.asyncio
async def test_cleared_cookie_keeps_session_cookie_attributes(app, client):
    app.dependency_overrides[get_settings]().session_cookie_secure = True
    client.cookies.set("guest_session", "stale-session-id")

    response = await client.get("/api/reservation")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    cookie = response.headers["set-cookie"]
    assert 'guest_session=""' in cookie
    assert "Secure" in cookie
    assert "HttpOnly" in cookie
    assert "samesite=lax" in cookie.lower()


@pytest.mark.asyncio
async def test_store_outage_does_not_log_the_guest_out(app, client):
    broken = AsyncMock()
    broken.get.side_effect = ConnectionError("store down")
    app.dependency_overrides[get_redis_client] = lambda: broken
    client.cookies.set("guest_session", "live-session-id")

    response = await client.get("/api/reservation")

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert "set-cookie" not in response.headers


@pytest.mark.asyncio
async def test_logout_is_idempotent(client, logged_in):
    first = await client.delete("/api/auth/session")
    assert first.status_code == status.HTTP_200_OK

    assert (await client.get("/api/auth/session")).status_code == status.HTTP_401_UNAUTHORIZED
    assert (await client.delete("/api/auth/session")).status_code == status.HTTP_200_OK
