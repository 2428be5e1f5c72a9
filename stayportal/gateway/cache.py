import abc
import time
from enum import StrEnum, auto

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError


class Caches(StrEnum):
    MEMORY = auto()
    REDIS = auto()


class Cache(abc.ABC):
    """Small string key/value cache with per-entry TTL."""

    @abc.abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value for `key`, or None if missing or expired."""

    @abc.abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store `value` under `key` with optional TTL."""

    @abc.abstractmethod
    async def clear(self, key: str) -> None:
        """Drop `key` if present."""


class MemoryCache(Cache):
    """Process-local cache. Only shared between requests served by the same worker."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.time() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = time.time() + ttl_seconds if ttl_seconds else None
        self._entries[key] = (value, expires_at)

    async def clear(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisCache(Cache):
    """Cache shared by every process through the store.

    Store errors fall through to `fallback`, so a store outage costs at most the
    sharing, never the cached value within this process.
    """

    def __init__(self, redis: Redis, fallback: Cache | None = None) -> None:
        self.redis = redis
        self.fallback = fallback or MemoryCache()

    async def get(self, key: str) -> str | None:
        try:
            return await self.redis.get(key)
        except RedisError as e:
            logger.warning(f"Cache read for {key} failed, using in-memory fallback: {e}")
            return await self.fallback.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        await self.fallback.set(key, value, ttl_seconds)
        try:
            await self.redis.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            logger.warning(f"Cache write for {key} failed, kept in memory only: {e}")

    async def clear(self, key: str) -> None:
        await self.fallback.clear(key)
        try:
            await self.redis.delete(key)
        except RedisError as e:
            logger.warning(f"Cache clear for {key} failed: {e}")


def create_cache(cache_type: Caches, redis: Redis | None) -> Cache:
    match cache_type:
        case Caches.MEMORY:
            return MemoryCache()
        case Caches.REDIS:
            if redis is None:
                logger.warning("Redis cache requested but no store is configured, using in-memory cache")
                return MemoryCache()
            return RedisCache(redis)
        case _:
            raise ValueError(f"Invalid cache type {cache_type}")
