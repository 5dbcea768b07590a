from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ratelimiter.app.services.token_bucket.models import FailureMode


class RouteLimitConfig(BaseModel):
    """Token bucket definition for one route, as read from configuration."""

    capacity: int = Field(gt=0)
    refill_rate: float = Field(gt=0)  # tokens per second
    failure_mode: FailureMode = FailureMode.FAIL_OPEN

    @field_validator("failure_mode", mode="before")
    @classmethod
    def normalize_failure_mode(cls, v: Any) -> Any:
        # Tolerate "fail_open" / "fail-open" spellings from env files.
        if isinstance(v, str):
            return v.strip().upper().replace("-", "_")
        return v


def _default_routes() -> dict[str, RouteLimitConfig]:
    return {
        "/api/data": RouteLimitConfig(
            capacity=10, refill_rate=10 / 60, failure_mode=FailureMode.FAIL_OPEN
        ),
        "/api/otp": RouteLimitConfig(
            capacity=3, refill_rate=3 / 60, failure_mode=FailureMode.FAIL_CLOSED
        ),
    }


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    The route table is read from ``RATE_LIMIT_ROUTES`` as a JSON object, e.g.
    ``{"/api/data": {"capacity": 10, "refill_rate": 0.1667}}``.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Shared bucket store (Redis)
    redis_enabled: bool = True  # False = per-process in-memory buckets
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 0.5
    store_timeout_seconds: float = 0.5  # Upper bound on one atomic store call

    # Bucket key derivation
    bucket_key_prefix: str = "bucket"
    identity_header: str = "X-USER-ID"
    trust_forwarded_for: bool = False

    # Local negative cache
    negative_cache_max_entries: int = 10000
    negative_cache_sweep_interval_seconds: float = 30.0

    # Per-route limits
    rate_limit_routes: dict[str, RouteLimitConfig] = Field(
        default_factory=_default_routes
    )

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    @field_validator(
        "redis_socket_timeout",
        "store_timeout_seconds",
        "negative_cache_sweep_interval_seconds",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Validate timeout and interval values are positive."""
        if v <= 0:
            raise ValueError("Timeout and interval values must be positive")
        return v

    @field_validator("negative_cache_max_entries")
    @classmethod
    def validate_max_entries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("negative_cache_max_entries must be at least 1")
        return v

    @field_validator("rate_limit_routes")
    @classmethod
    def validate_route_paths(
        cls, v: dict[str, RouteLimitConfig]
    ) -> dict[str, RouteLimitConfig]:
        for route in v:
            if not route.startswith("/"):
                raise ValueError(f"Route '{route}' must start with '/'")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
