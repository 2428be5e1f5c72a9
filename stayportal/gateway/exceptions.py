from typing import Any


class APIError(Exception):
    """Base exception for all API errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {"detail": str(self)}

    def headers(self) -> dict[str, str] | None:
        return None


class ResourceNotFoundError(APIError):
    """Raised when a required resource is not found - maps to HTTP 404."""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any, *, message: str | None = None):
        super().__init__(message or f"{resource_type} {resource_id!r} not found")
        self.resource_type = resource_type
        self.resource_id = resource_id

    def to_dict(self) -> dict[str, Any]:
        return {"detail": str(self), "resource_type": self.resource_type, "resource_id": str(self.resource_id)}


class NotAuthenticatedError(APIError):
    """Raised when a guest session is missing or no longer resolves - maps to HTTP 401.

    With `clear_cookie` set, the response also expires the session cookie so the
    browser stops presenting an id that points at dead state.
    """

    status_code = 401

    def __init__(self, message: str = "not authenticated", *, clear_cookie: bool = False):
        super().__init__(message)
        self.clear_cookie = clear_cookie


class RateLimitedError(APIError):
    """Raised when a client exhausted its request window - maps to HTTP 429."""

    status_code = 429

    def __init__(self, reset_at_ms: int, now_ms: int, *, message: str | None = None):
        super().__init__(message or "Too many attempts. Please try again later.")
        self.reset_at_ms = reset_at_ms
        self.retry_after = max(1, -(-(reset_at_ms - now_ms) // 1000))

    def to_dict(self) -> dict[str, Any]:
        return {"detail": str(self), "retry_after": self.retry_after}

    def headers(self) -> dict[str, str] | None:
        return {"Retry-After": str(self.retry_after)}


class UpstreamError(APIError):
    """Raised when an upstream platform failed - maps to HTTP 502.

    The message is guest-facing; upstream bodies stay in the server log.
    """

    status_code = 502


class ServiceUnavailableError(APIError):
    """Raised when a required collaborator is not configured or unreachable - maps to HTTP 503."""

    status_code = 503


class InvalidStatusTransitionError(APIError):
    """Raised when an upsell request would leave a terminal state - maps to HTTP 409."""

    status_code = 409

    def __init__(self, request_id: str, current: str, target: str):
        super().__init__(f"Upsell request {request_id!r} cannot move from {current!r} to {target!r}")
        self.request_id = request_id
        self.current = current
        self.target = target
