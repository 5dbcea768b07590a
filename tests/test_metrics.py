"""Tests for rate limiter metrics."""

import pytest

from ratelimiter.app.api.metrics import RateLimiterMetrics
from ratelimiter.app.services.token_bucket import Decision


@pytest.fixture
def metrics():
    return RateLimiterMetrics()


def sample(metrics: RateLimiterMetrics, name: str, route: str = "/api/otp") -> float:
    return metrics.get_sample(name, route)


class TestRecordDecision:

    def test_allowed_decision(self, metrics):
        decision = Decision(allowed=True, remaining=2, limit=3, reset_seconds=20)
        metrics.record_decision("/api/otp", decision, 0.002)

        assert sample(metrics, "rate_limiter_requests_allowed_total") == 1
        assert sample(metrics, "rate_limiter_requests_blocked_total") == 0
        assert sample(metrics, "rate_limiter_tokens_remaining") == 2
        assert sample(metrics, "rate_limiter_tokens_limit") == 3
        assert sample(metrics, "rate_limiter_usage_percent") == pytest.approx(100 / 3)
        assert sample(metrics, "rate_limiter_check_duration_seconds_count") == 1

    def test_rate_limited_decision(self, metrics):
        decision = Decision(allowed=False, remaining=0, limit=3, reset_seconds=20)
        metrics.record_decision("/api/otp", decision, 0.001)

        assert sample(metrics, "rate_limiter_requests_blocked_total") == 1
        assert sample(metrics, "rate_limiter_requests_allowed_total") == 0
        assert sample(metrics, "rate_limiter_store_errors_total") == 0
        assert sample(metrics, "rate_limiter_usage_percent") == 100

    def test_fail_open_decision(self, metrics):
        decision = Decision(
            allowed=True, remaining=0, limit=10, reset_seconds=6, store_error=True
        )
        metrics.record_decision("/api/data", decision, 0.5)

        assert sample(metrics, "rate_limiter_store_errors_total", "/api/data") == 1
        assert sample(metrics, "rate_limiter_fail_open_invoked_total", "/api/data") == 1
        assert sample(metrics, "rate_limiter_fail_closed_invoked_total", "/api/data") == 0
        assert sample(metrics, "rate_limiter_requests_allowed_total", "/api/data") == 1

    def test_fail_closed_decision_is_not_a_rate_limit(self, metrics):
        decision = Decision(
            allowed=False, remaining=0, limit=3, reset_seconds=20, store_error=True
        )
        metrics.record_decision("/api/otp", decision, 0.5)

        assert sample(metrics, "rate_limiter_store_errors_total") == 1
        assert sample(metrics, "rate_limiter_fail_closed_invoked_total") == 1
        assert sample(metrics, "rate_limiter_requests_blocked_total") == 0
        assert sample(metrics, "rate_limiter_requests_allowed_total") == 0

    def test_routes_are_labelled_separately(self, metrics):
        allowed = Decision(allowed=True, remaining=1, limit=3, reset_seconds=20)
        metrics.record_decision("/api/otp", allowed, 0.001)
        metrics.record_decision("/api/otp", allowed, 0.001)
        metrics.record_decision("/api/data", allowed, 0.001)

        assert sample(metrics, "rate_limiter_requests_allowed_total", "/api/otp") == 2
        assert sample(metrics, "rate_limiter_requests_allowed_total", "/api/data") == 1


class TestGauges:

    def test_zero_limit_reports_zero_usage(self, metrics):
        metrics.record_remaining_tokens("/x", 0, 0)
        assert sample(metrics, "rate_limiter_usage_percent", "/x") == 0.0

    def test_unrecorded_sample_is_zero(self, metrics):
        assert sample(metrics, "rate_limiter_requests_allowed_total", "/never") == 0.0


class TestRegistry:

    def test_instances_do_not_share_counters(self):
        first = RateLimiterMetrics()
        second = RateLimiterMetrics()
        first.record_allowed("/api/data")

        assert first.get_sample("rate_limiter_requests_allowed_total", "/api/data") == 1
        assert second.get_sample("rate_limiter_requests_allowed_total", "/api/data") == 0

    def test_render_prometheus_text(self, metrics):
        metrics.record_rate_limited("/api/data")
        text = metrics.render().decode()

        assert "# HELP rate_limiter_requests_blocked_total" in text
        assert 'rate_limiter_requests_blocked_total{route="/api/data"} 1.0' in text
