"""Metrics for rate limit decisions.

Counters, a duration histogram and token gauges, all labelled by route,
exported in Prometheus text format on ``GET /metrics``.
"""

from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from ratelimiter.app.services.token_bucket.models import Decision

router = APIRouter()


class RateLimiterMetrics:
    """Rate limiter metrics bound to one registry.

    Each instance gets its own CollectorRegistry unless one is passed in,
    so several applications (e.g. in tests) can coexist in one process.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.allowed = Counter(
            "rate_limiter_requests_allowed",
            "Number of requests allowed by rate limiter",
            ["route"],
            registry=self.registry,
        )
        self.rate_limited = Counter(
            "rate_limiter_requests_blocked",
            "Number of requests blocked by rate limiter",
            ["route"],
            registry=self.registry,
        )
        self.store_errors = Counter(
            "rate_limiter_store_errors",
            "Number of shared bucket store errors encountered",
            ["route"],
            registry=self.registry,
        )
        self.fail_open = Counter(
            "rate_limiter_fail_open_invoked",
            "Number of times fail-open was invoked",
            ["route"],
            registry=self.registry,
        )
        self.fail_closed = Counter(
            "rate_limiter_fail_closed_invoked",
            "Number of times fail-closed was invoked",
            ["route"],
            registry=self.registry,
        )
        self.check_duration = Histogram(
            "rate_limiter_check_duration_seconds",
            "Duration of rate limiter check",
            ["route"],
            registry=self.registry,
            buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
        )
        self.tokens_remaining = Gauge(
            "rate_limiter_tokens_remaining",
            "Tokens remaining after the last check",
            ["route"],
            registry=self.registry,
        )
        self.tokens_limit = Gauge(
            "rate_limiter_tokens_limit",
            "Configured bucket capacity",
            ["route"],
            registry=self.registry,
        )
        self.usage_percent = Gauge(
            "rate_limiter_usage_percent",
            "Share of the bucket in use after the last check",
            ["route"],
            registry=self.registry,
        )

    def record_allowed(self, route: str) -> None:
        self.allowed.labels(route=route).inc()

    def record_rate_limited(self, route: str) -> None:
        self.rate_limited.labels(route=route).inc()

    def record_store_error(self, route: str) -> None:
        self.store_errors.labels(route=route).inc()

    def record_fail_open(self, route: str) -> None:
        self.fail_open.labels(route=route).inc()

    def record_fail_closed(self, route: str) -> None:
        self.fail_closed.labels(route=route).inc()

    def record_check_duration(self, route: str, seconds: float) -> None:
        self.check_duration.labels(route=route).observe(seconds)

    def record_remaining_tokens(self, route: str, remaining: int, limit: int) -> None:
        """Update token gauges; usage is 0 when the limit is 0."""
        self.tokens_remaining.labels(route=route).set(remaining)
        self.tokens_limit.labels(route=route).set(limit)
        usage = (limit - remaining) * 100.0 / limit if limit > 0 else 0.0
        self.usage_percent.labels(route=route).set(usage)

    def record_decision(self, route: str, decision: Decision, seconds: float) -> None:
        """Record everything one evaluation produced."""
        self.record_check_duration(route, seconds)
        self.record_remaining_tokens(route, decision.remaining, decision.limit)
        if decision.store_error:
            self.record_store_error(route)
            if decision.allowed:
                self.record_fail_open(route)
            else:
                self.record_fail_closed(route)
        if decision.allowed:
            self.record_allowed(route)
        elif not decision.store_error:
            self.record_rate_limited(route)

    def get_sample(self, name: str, route: str) -> float:
        """Current value of a sample for ``route`` (0.0 if never recorded)."""
        value = self.registry.get_sample_value(name, {"route": route})
        return value if value is not None else 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)


@router.get("/metrics")
async def prometheus_metrics(request: Request) -> Response:
    """Prometheus-compatible metrics endpoint."""
    metrics: RateLimiterMetrics = request.app.state.metrics
    return Response(content=metrics.render(), media_type=CONTENT_TYPE_LATEST)
