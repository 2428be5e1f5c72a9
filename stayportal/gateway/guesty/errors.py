class GuestyAPIError(Exception):
    """Non-2xx response from the Guesty API, or status 0 when it could not be reached.

    `body` is for server logs only.
    """

    def __init__(self, status_code: int, body: str, *, message: str | None = None):
        super().__init__(message or f"Guesty API error: {status_code}")
        self.status_code = status_code
        self.body = body


class GuestyTokenQuotaError(GuestyAPIError):
    """The token endpoint refused to issue a token (HTTP 429).

    Guesty issues only a handful of tokens per 24 hours; retrying makes it worse.
    Operators have to set GUESTY_ACCESS_TOKEN or wait for the quota to reset.
    """

    def __init__(self, body: str):
        super().__init__(
            429,
            body,
            message=(
                "Guesty OAuth rate limit exceeded (5 tokens per 24 hours). "
                "Set GUESTY_ACCESS_TOKEN manually or wait for the quota to reset."
            ),
        )
