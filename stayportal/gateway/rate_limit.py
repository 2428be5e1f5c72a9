"""Sliding-window rate limiting on a Redis sorted set.

Storage: `ratelimit:{prefix}:{identifier}` holds one member per admitted
request, scored by its timestamp in ms. Each check trims entries older than the
window, so the cardinality is the number of requests in the trailing window.
"""

import secrets
import time
from dataclasses import dataclass

from fastapi import Request
from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from stayportal.contracts.redis_keys import RATE_LIMIT


@dataclass(frozen=True)
class RateLimitPolicy:
    prefix: str
    window_ms: int
    max_requests: int


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    remaining: int
    reset_at: int  # unix ms when the window frees up


AUTH = RateLimitPolicy(prefix="auth", window_ms=60 * 1000, max_requests=5)
API = RateLimitPolicy(prefix="api", window_ms=60 * 1000, max_requests=60)
STRICT = RateLimitPolicy(prefix="strict", window_ms=5 * 60 * 1000, max_requests=3)  # sensitive operations

RATE_LIMITS: dict[str, RateLimitPolicy] = {p.prefix: p for p in (AUTH, API, STRICT)}


def _degraded(policy: RateLimitPolicy, now_ms: int, fail_open: bool) -> RateLimitResult:
    if fail_open:
        return RateLimitResult(success=True, remaining=policy.max_requests, reset_at=now_ms + policy.window_ms)
    return RateLimitResult(success=False, remaining=0, reset_at=now_ms + policy.window_ms)


async def check_rate_limit(
    redis: Redis | None,
    identifier: str,
    policy: RateLimitPolicy,
    *,
    fail_open: bool = True,
    now_ms: int | None = None,
) -> RateLimitResult:
    """Count this request against `identifier`'s window, admitting it if there is room."""
    now = now_ms if now_ms is not None else int(time.time() * 1000)

    if redis is None:
        logger.warning(f"Redis not configured - rate limiting {'disabled' if fail_open else 'rejecting'}")
        return _degraded(policy, now, fail_open)

    key = RATE_LIMIT.format(prefix=policy.prefix, identifier=identifier)
    window_start = now - policy.window_ms

    try:
        await redis.zremrangebyscore(key, 0, window_start)
        current = await redis.zcard(key)

        if current >= policy.max_requests:
            oldest = await redis.zrange(key, 0, 0, withscores=True)
            reset_at = int(oldest[0][1]) + policy.window_ms if oldest else now + policy.window_ms
            logger.info(f"Rate limit hit: {policy.prefix}:{identifier} ({current}/{policy.max_requests})")
            return RateLimitResult(success=False, remaining=0, reset_at=reset_at)

        # random tail keeps same-millisecond requests from collapsing into one member
        await redis.zadd(key, {f"{now}-{secrets.token_hex(4)}": now})
        await redis.expire(key, -(-policy.window_ms // 1000) + 1)
    except RedisError as e:
        logger.error(f"Rate limit check failed for {policy.prefix}:{identifier}: {e}")
        return _degraded(policy, now, fail_open)

    return RateLimitResult(
        success=True,
        remaining=policy.max_requests - current - 1,
        reset_at=now + policy.window_ms,
    )


def get_client_ip(request: Request) -> str:
    """Client address from proxy headers. Unrecognized proxies all share the "unknown" bucket."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    for header in ("cf-connecting-ip", "x-real-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()

    return "unknown"
