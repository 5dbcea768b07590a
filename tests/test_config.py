"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from ratelimiter.app.core.config import RouteLimitConfig, Settings
from ratelimiter.app.services.token_bucket import FailureMode


class TestSettingsDefaults:

    def test_default_values(self):
        settings = Settings(_env_file=None)
        assert settings.redis_enabled is True
        assert settings.redis_url == "redis://localhost:6379/0"
        assert settings.store_timeout_seconds == 0.5
        assert settings.bucket_key_prefix == "bucket"
        assert settings.identity_header == "X-USER-ID"
        assert settings.trust_forwarded_for is False
        assert settings.negative_cache_max_entries == 10000
        assert settings.log_format == "text"

    def test_default_routes(self):
        routes = Settings(_env_file=None).rate_limit_routes

        data = routes["/api/data"]
        assert data.capacity == 10
        assert data.refill_rate == pytest.approx(10 / 60)
        assert data.failure_mode is FailureMode.FAIL_OPEN

        otp = routes["/api/otp"]
        assert otp.capacity == 3
        assert otp.refill_rate == pytest.approx(0.05)
        assert otp.failure_mode is FailureMode.FAIL_CLOSED


class TestSettingsFromEnvironment:

    def test_scalar_values_from_env(self, monkeypatch):
        monkeypatch.setenv("REDIS_ENABLED", "false")
        monkeypatch.setenv("STORE_TIMEOUT_SECONDS", "0.25")
        monkeypatch.setenv("IDENTITY_HEADER", "X-API-KEY")

        settings = Settings(_env_file=None)
        assert settings.redis_enabled is False
        assert settings.store_timeout_seconds == 0.25
        assert settings.identity_header == "X-API-KEY"

    def test_route_table_from_json(self, monkeypatch):
        monkeypatch.setenv(
            "RATE_LIMIT_ROUTES",
            '{"/api/search": {"capacity": 5, "refill_rate": 1, "failure_mode": "fail-closed"}}',
        )

        routes = Settings(_env_file=None).rate_limit_routes
        assert list(routes) == ["/api/search"]
        assert routes["/api/search"].capacity == 5
        assert routes["/api/search"].failure_mode is FailureMode.FAIL_CLOSED


class TestSettingsValidation:

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_format="xml")

    def test_log_format_is_normalized(self):
        assert Settings(_env_file=None, log_format=" JSON ").log_format == "json"

    @pytest.mark.parametrize(
        "field",
        ["redis_socket_timeout", "store_timeout_seconds", "negative_cache_sweep_interval_seconds"],
    )
    def test_non_positive_timeouts_rejected(self, field):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: 0})

    def test_max_entries_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, negative_cache_max_entries=0)

    def test_route_must_start_with_slash(self):
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None,
                rate_limit_routes={"api/data": {"capacity": 1, "refill_rate": 1}},
            )


class TestRouteLimitConfig:

    @pytest.mark.parametrize("value", ["FAIL_OPEN", "fail_open", "fail-open", " Fail-Open "])
    def test_failure_mode_spellings(self, value):
        cfg = RouteLimitConfig(capacity=1, refill_rate=1, failure_mode=value)
        assert cfg.failure_mode is FailureMode.FAIL_OPEN

    def test_failure_mode_defaults_to_open(self):
        assert RouteLimitConfig(capacity=1, refill_rate=1).failure_mode is FailureMode.FAIL_OPEN

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"capacity": 0, "refill_rate": 1},
            {"capacity": 1, "refill_rate": 0},
            {"capacity": 1, "refill_rate": -0.5},
            {"capacity": 1, "refill_rate": 1, "failure_mode": "retry"},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            RouteLimitConfig(**kwargs)
