"""Tests for the sliding-window rate limiter."""

from unittest.mock import AsyncMock

import pytest
from fastapi import Request
from redis.exceptions import ConnectionError

from stayportal.gateway.rate_limit import API, AUTH, RATE_LIMITS, STRICT, check_rate_limit, get_client_ip

NOW = 1_750_000_000_000


@pytest.mark.asyncio
async def test_auth_policy_admits_five_then_rejects(redis):
    results = [await check_rate_limit(redis, "1.2.3.4", AUTH, now_ms=NOW + i) for i in range(6)]

    assert [r.success for r in results] == [True] * 5 + [False]
    assert [r.remaining for r in results[:5]] == [4, 3, 2, 1, 0]
    assert results[5].remaining == 0
    # oldest admitted request was at NOW
    assert results[5].reset_at == NOW + AUTH.window_ms


@pytest.mark.asyncio
async def test_window_slides(redis):
    for i in range(5):
        await check_rate_limit(redis, "1.2.3.4", AUTH, now_ms=NOW + i * 1000)

    assert not (await check_rate_limit(redis, "1.2.3.4", AUTH, now_ms=NOW + 30_000)).success
    # the first request has left the window, one slot frees up
    assert (await check_rate_limit(redis, "1.2.3.4", AUTH, now_ms=NOW + AUTH.window_ms + 1)).success
    assert not (await check_rate_limit(redis, "1.2.3.4", AUTH, now_ms=NOW + AUTH.window_ms + 2)).success


@pytest.mark.asyncio
async def test_rejected_requests_do_not_extend_the_window(redis):
    for _ in range(5):
        await check_rate_limit(redis, "ip", AUTH, now_ms=NOW)
    for i in range(20):
        await check_rate_limit(redis, "ip", AUTH, now_ms=NOW + 1000 + i)

    assert (await check_rate_limit(redis, "ip", AUTH, now_ms=NOW + AUTH.window_ms + 1)).success


@pytest.mark.asyncio
async def test_same_millisecond_requests_are_all_counted(redis):
    results = [await check_rate_limit(redis, "burst", STRICT, now_ms=NOW) for _ in range(4)]
    assert [r.success for r in results] == [True, True, True, False]


@pytest.mark.asyncio
async def test_identifiers_and_policies_are_independent(redis):
    for _ in range(5):
        await check_rate_limit(redis, "a", AUTH, now_ms=NOW)

    assert not (await check_rate_limit(redis, "a", AUTH, now_ms=NOW)).success
    assert (await check_rate_limit(redis, "b", AUTH, now_ms=NOW)).success
    assert (await check_rate_limit(redis, "a", API, now_ms=NOW)).success


@pytest.mark.asyncio
async def test_fails_open_without_store():
    result = await check_rate_limit(None, "ip", AUTH, now_ms=NOW)
    assert result.success
    assert result.remaining == AUTH.max_requests


@pytest.mark.asyncio
async def test_fails_closed_when_configured():
    result = await check_rate_limit(None, "ip", AUTH, fail_open=False, now_ms=NOW)
    assert not result.success
    assert result.reset_at == NOW + AUTH.window_ms


@pytest.mark.asyncio
async def test_store_errors_follow_fail_mode():
    broken = AsyncMock()
    broken.zremrangebyscore.side_effect = ConnectionError("store down")

    assert (await check_rate_limit(broken, "ip", AUTH, now_ms=NOW)).success
    assert not (await check_rate_limit(broken, "ip", AUTH, fail_open=False, now_ms=NOW)).success


def test_policy_table():
    assert RATE_LIMITS["auth"] == AUTH
    assert (API.max_requests, API.window_ms) == (60, 60_000)
    assert (STRICT.max_requests, STRICT.window_ms) == (3, 300_000)


@pytest.mark.parametrize(
    "headers, expected",
    [
        ({"x-forwarded-for": "9.9.9.9, 10.0.0.1"}, "9.9.9.9"),
        ({"cf-connecting-ip": "8.8.8.8", "x-real-ip": "7.7.7.7"}, "8.8.8.8"),
        ({"x-real-ip": "7.7.7.7"}, "7.7.7.7"),
        ({}, "unknown"),
    ],
)
def test_get_client_ip(headers, expected):
    request = Request({"type": "http", "headers": [(k.encode(), v.encode()) for k, v in headers.items()]})
    assert get_client_ip(request) == expected
