import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from stayportal.gateway.cache import Caches


class Settings(BaseSettings):
    redis_url: str | None = None  # None: store unconfigured, store-backed features degrade
    cors_origins: list[str] = []
    app_url: str = "http://localhost:3000"  # base for checkout success/cancel redirects

    guesty_client_id: str | None = None
    guesty_client_secret: str | None = None
    guesty_access_token: str | None = None  # manual override, bypasses the token cache entirely
    guesty_api_url: str = "https://open-api.guesty.com/v1"
    guesty_token_url: str = "https://open-api.guesty.com/oauth2/token"
    guesty_portal_code_field_id: str | None = None
    guesty_request_timeout_seconds: float = 30.0

    token_cache_type: Caches = Caches.REDIS

    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None

    guesty_webhook_secret: str | None = None
    admin_secret: str | None = None
    cron_secret: str | None = None

    resend_api_key: str | None = None
    notification_email: str | None = None
    notification_email_from: str = "Guest Portal <notifications@example.com>"
    slack_webhook_url: str | None = None

    session_cookie_secure: bool = True
    rate_limit_fail_open: bool = True  # auth gate, not a billing boundary

    # re-push existing codes on every reservation event, not only when a code is created
    portal_code_webhook_resync: bool = True
    portal_sync_delay_seconds: float = 5.0  # between custom-field writes, Guesty rate limits

    log_dir: Path | None = None

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=[os.getenv("ENV_FILE", ""), ".env"],
        extra="ignore",
        env_nested_delimiter="__",
    )


def get_settings() -> Settings:  # ty: ignore[invalid-return-type]
    """This is only used for dependency references, see __init__.py:

    app.dependency_overrides[get_settings] = lambda: Settings()  # type: ignore
    """
    ...
