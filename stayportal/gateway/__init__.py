from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from stayportal.gateway.api.v1 import routers as v1_routers
from stayportal.gateway.cache import create_cache
from stayportal.gateway.config import Settings, get_settings
from stayportal.gateway.exceptions import APIError
from stayportal.gateway.guesty import AccessTokenProvider, GuestyClient
from stayportal.gateway.logging_config import (
    RequestContextMiddleware,
    api_error_handler,
    configure_logging,
    unhandled_exception_handler,
)
from stayportal.gateway.notifications import Notifier
from stayportal.gateway.redis_client import create_redis_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.dependency_overrides[get_settings]()
    assert isinstance(settings, Settings)

    app.state.redis_client = await create_redis_client(settings)

    app.state.http_client = httpx.AsyncClient(timeout=settings.guesty_request_timeout_seconds)
    tokens = AccessTokenProvider(
        settings,
        cache=create_cache(settings.token_cache_type, app.state.redis_client),
        http=app.state.http_client,
    )
    app.state.guesty_client = GuestyClient(settings, tokens, app.state.http_client)
    app.state.notifier = Notifier(settings, app.state.http_client)

    yield

    await app.state.http_client.aclose()
    if app.state.redis_client is not None:
        await app.state.redis_client.aclose()


def create_app(
    settings: Settings | None = None,
) -> FastAPI:
    if settings is None:
        settings = Settings()  # type: ignore

    configure_logging(settings.log_dir)

    app = FastAPI(
        title="Stay Portal Gateway",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.dependency_overrides[get_settings] = lambda: settings

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    for r in v1_routers:
        app.include_router(r)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
