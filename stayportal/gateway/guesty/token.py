"""Client-credentials bearer token for the Guesty Open API.

The token endpoint is strictly rate limited (5 tokens per 24 hours), so a
token is cached for its whole reported lifetime in a `Cache` -- shared through
the store when one is configured, so every process reuses the same token.
"""

import json
import time
from collections.abc import Callable

import httpx
from loguru import logger

from stayportal.contracts.redis_keys import GUESTY_ACCESS_TOKEN
from stayportal.gateway.cache import Cache
from stayportal.gateway.config import Settings
from stayportal.gateway.guesty.errors import GuestyAPIError, GuestyTokenQuotaError

REFRESH_MARGIN_SECONDS = 5 * 60


class AccessTokenProvider:
    def __init__(
        self,
        settings: Settings,
        cache: Cache,
        http: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.http = http
        self.clock = clock

    async def get_access_token(self) -> str:
        if self.settings.guesty_access_token:
            logger.debug("Using manually provided Guesty access token")
            return self.settings.guesty_access_token

        cached = await self._cached_token()
        if cached is not None:
            return cached

        token, expires_in = await self._request_token()
        expires_at = self.clock() + expires_in
        await self.cache.set(
            GUESTY_ACCESS_TOKEN,
            json.dumps({"token": token, "expires_at": expires_at}),
            ttl_seconds=max(1, int(expires_in - REFRESH_MARGIN_SECONDS)),
        )
        logger.info(f"Got new Guesty access token, valid for {expires_in}s")
        return token

    async def invalidate(self) -> None:
        await self.cache.clear(GUESTY_ACCESS_TOKEN)

    async def _cached_token(self) -> str | None:
        raw = await self.cache.get(GUESTY_ACCESS_TOKEN)
        if raw is None:
            return None
        try:
            entry = json.loads(raw)
            token, expires_at = entry["token"], float(entry["expires_at"])
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding malformed cached Guesty token")
            await self.cache.clear(GUESTY_ACCESS_TOKEN)
            return None
        if self.clock() < expires_at - REFRESH_MARGIN_SECONDS:
            return token
        return None

    async def _request_token(self) -> tuple[str, int]:
        logger.info("Requesting new Guesty access token")
        try:
            response = await self.http.post(
                self.settings.guesty_token_url,
                data={
                    "grant_type": "client_credentials",
                    "scope": "open-api",
                    "client_id": self.settings.guesty_client_id or "",
                    "client_secret": self.settings.guesty_client_secret or "",
                },
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as e:
            logger.error(f"Guesty token endpoint unreachable: {e!r}")
            raise GuestyAPIError(0, str(e), message="Guesty token endpoint unreachable") from e
        if response.status_code == 429:
            logger.error(f"Guesty token quota exhausted: {response.text[:500]}")
            raise GuestyTokenQuotaError(response.text)
        if response.is_error:
            logger.error(f"Guesty token error: {response.status_code} {response.text[:500]}")
            raise GuestyAPIError(response.status_code, response.text, message="Failed to get Guesty access token")

        body = response.json()
        return body["access_token"], int(body.get("expires_in", 86400))
