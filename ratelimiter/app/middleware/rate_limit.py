"""Rate limiting middleware.

Maps each request to a route and caller identity, asks the evaluator for
a Decision and renders it: informational headers on every gated response,
429 for an enforced limit, 503 when the store failed and the route fails
closed. Routes without a configured Limit pass through untouched.
"""

import hashlib
import time

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from ratelimiter.app.api.metrics import RateLimiterMetrics
from ratelimiter.app.core.logging import get_log_context, get_logger
from ratelimiter.app.exceptions import (
    BucketStoreError,
    RateLimiterException,
    RateLimitExceededError,
)
from ratelimiter.app.services.route_limits import Gated, RouteLimitTable
from ratelimiter.app.services.token_bucket import Decision, RateLimitEvaluator

logger = get_logger(__name__)


def resolve_identity(
    request: Request,
    identity_header: str = "X-USER-ID",
    trust_forwarded_for: bool = False,
) -> str:
    """Get the caller identity for the request.

    Precedence:
    1) the identity header, if present and non-blank
    2) first X-Forwarded-For hop, when the proxy is trusted
    3) socket peer address
    """
    identity = request.headers.get(identity_header, "").strip()
    if identity:
        return identity

    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
            if client_ip:
                return client_ip

    return request.client.host if request.client else "unknown"


def make_bucket_key(prefix: str, route: str, identity: str) -> str:
    """Build the store key for one route and caller.

    The identity is hashed so raw user ids and addresses never reach the
    store. The digest contains no ':' so keys of different routes cannot
    collide. Use 32 hex chars (128 bits) for collision resistance.
    """
    identity_hash = hashlib.sha256(identity.encode()).hexdigest()[:32]
    return f"{prefix}:{route}:{identity_hash}"


def _error_for(decision: Decision) -> RateLimiterException:
    if decision.store_error:
        return BucketStoreError()
    return RateLimitExceededError(reset_seconds=decision.reset_seconds)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce per-route token bucket limits."""

    def __init__(
        self,
        app,
        evaluator: RateLimitEvaluator,
        routes: RouteLimitTable,
        metrics: RateLimiterMetrics,
        key_prefix: str = "bucket",
        identity_header: str = "X-USER-ID",
        trust_forwarded_for: bool = False,
    ):
        super().__init__(app)
        self.evaluator = evaluator
        self.routes = routes
        self.metrics = metrics
        self.key_prefix = key_prefix
        self.identity_header = identity_header
        self.trust_forwarded_for = trust_forwarded_for

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        lookup = self.routes.lookup(request.url.path)
        if not isinstance(lookup, Gated):
            return await call_next(request)

        route = lookup.route
        identity = resolve_identity(request, self.identity_header, self.trust_forwarded_for)
        key = make_bucket_key(self.key_prefix, route, identity)

        start = time.perf_counter()
        decision = await self.evaluator.evaluate(key, lookup.limit)
        duration = time.perf_counter() - start

        self.metrics.record_decision(route, decision, duration)
        headers = decision.headers()

        if not decision.allowed:
            error = _error_for(decision)
            if decision.store_error:
                logger.warning(
                    "Rejecting request: rate limiter unavailable",
                    extra=get_log_context(
                        route=route,
                        bucket_key=key,
                        failure_mode=lookup.limit.failure_mode.value,
                        status_code=error.status_code,
                        duration_ms=round(duration * 1000, 2),
                    ),
                )
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_response(),
                headers=headers,
            )

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response
