import redis.asyncio as redis
from fastapi import Request
from loguru import logger
from redis.asyncio import Redis

from stayportal.gateway.config import Settings


async def create_redis_client(settings: Settings) -> Redis | None:
    """Create a new Redis client instance, or None if no store is configured."""
    if not settings.redis_url:
        logger.warning("REDIS_URL not configured - sessions, portal codes and the upsell ledger are disabled")
        return None
    return await redis.from_url(settings.redis_url, decode_responses=True)


async def get_redis_client(request: Request) -> Redis | None:
    """Get the Redis client from app state."""
    return request.app.state.redis_client
