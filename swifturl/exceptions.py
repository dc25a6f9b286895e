"""Domain exceptions for SwiftURL.

Every expected business outcome is a ``ShortenerError`` subclass carrying the
HTTP status it maps to, a human message and a list of detail strings. The
handlers in ``swifturl.errors`` turn them into the JSON error envelope (API)
or a small HTML page (redirects).

Exception Hierarchy
===================
::
    ShortenerError
    ├─ URLNotFoundError          404
    ├─ URLExpiredError           410
    ├─ InvalidURLError           400
    ├─ RequestValidationFailed   400
    ├─ CustomCodeTakenError      409
    ├─ RateLimitExceededError    429
    └─ ServiceUnavailableError   503

    ShortCodeConflict   (repository → service, never reaches HTTP)
"""

__all__ = [
    "CustomCodeTakenError",
    "InvalidURLError",
    "RateLimitExceededError",
    "RequestValidationFailed",
    "ServiceUnavailableError",
    "ShortCodeConflict",
    "ShortenerError",
    "URLExpiredError",
    "URLNotFoundError",
]


class ShortenerError(Exception):
    status_code: int = 500
    message: str = "Internal Server Error"

    def __init__(
        self,
        message: str | None = None,
        details: list[str] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.message = message or self.message
        self.details = details or []
        self.headers = headers or {}
        super().__init__(self.message)


class URLNotFoundError(ShortenerError):
    status_code = 404
    message = "URL not found"

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(details=["The requested short URL does not exist"])


class URLExpiredError(ShortenerError):
    status_code = 410
    message = "URL expired"

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(details=["This short URL has expired and is no longer valid"])


class InvalidURLError(ShortenerError):
    status_code = 400
    message = "Invalid URL"


class RequestValidationFailed(ShortenerError):
    status_code = 400
    message = "Validation Error"


class CustomCodeTakenError(ShortenerError):
    status_code = 409
    message = "Custom code unavailable"

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(details=[f"The requested custom short code '{short_code}' is already in use"])


class RateLimitExceededError(ShortenerError):
    status_code = 429
    message = "Rate limit exceeded"

    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        retry_after: int,
        headers: dict[str, str] | None = None,
    ):
        self.retry_after = retry_after
        super().__init__(
            message=f"Too many requests. Maximum {max_requests} requests per {window_ms / 1000:g} seconds.",
            details=[f"Retry after {retry_after} seconds"],
            headers={**(headers or {}), "Retry-After": str(retry_after)},
        )


class ServiceUnavailableError(ShortenerError):
    status_code = 503
    message = "Service temporarily unavailable"


class ShortCodeConflict(Exception):
    """Raised by the store when an insert hits the short_code unique constraint."""

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Short code '{short_code}' already exists")
