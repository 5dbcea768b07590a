"""Custom exceptions for the rate limiter application."""


class RateLimiterException(Exception):
    """Base class for rate limiter exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500
    error_code: str = "rate_limiter_error"

    def __init__(self, message: str = "Rate limiter error"):
        self.message = message
        super().__init__(message)

    def to_response(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class BucketStoreError(RateLimiterException):
    """Raised when the shared bucket store cannot produce an answer.

    Covers connection failures, timeouts, Redis errors and malformed
    replies. The store state is unknown when this is raised.
    Maps to HTTP 503 Service Unavailable.
    """
    status_code = 503
    error_code = "rate_limiter_unavailable"

    def __init__(self, error_type: str = "unexpected", detail: str | None = None):
        self.error_type = error_type
        self.detail = detail
        super().__init__("Service Unavailable - Rate limiter unavailable")


class RateLimitExceededError(RateLimiterException):
    """Raised when a caller has no token left in its bucket.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(self, reset_seconds: int | None = None):
        self.reset_seconds = reset_seconds
        super().__init__("Too Many Requests")
