"""Middleware package for the rate limiter."""

from ratelimiter.app.middleware.rate_limit import (
    RateLimitMiddleware,
    make_bucket_key,
    resolve_identity,
)

__all__ = [
    "RateLimitMiddleware",
    "make_bucket_key",
    "resolve_identity",
]
