"""Data models for the token bucket rate limiter."""

import math
from dataclasses import dataclass
from enum import Enum


class FailureMode(str, Enum):
    """What to do with a request when the shared store is unreachable."""

    FAIL_OPEN = "FAIL_OPEN"
    FAIL_CLOSED = "FAIL_CLOSED"


@dataclass(frozen=True)
class Limit:
    """Token bucket definition for one route.

    Attributes:
        capacity: Maximum number of tokens in the bucket
        refill_rate: Tokens added per second
        failure_mode: Disposition of requests when the store call fails
    """
    capacity: int
    refill_rate: float
    failure_mode: FailureMode = FailureMode.FAIL_OPEN

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        if self.refill_rate <= 0:
            raise ValueError("refill_rate must be positive")

    @property
    def reset_seconds(self) -> int:
        """Seconds needed to regain one token."""
        return max(1, math.ceil(round(1 / self.refill_rate, 9)))

    @property
    def state_ttl_seconds(self) -> int:
        """Lifetime of idle bucket state in the store.

        After this long without traffic the bucket is full again, so
        letting the key expire is indistinguishable from keeping it.
        """
        return math.ceil(round(self.capacity / self.refill_rate, 9)) + 1


@dataclass(frozen=True)
class ConsumeResult:
    """Reply of the atomic refill-and-consume operation."""
    allowed: bool
    remaining: int = 0


@dataclass(frozen=True)
class Decision:
    """Outcome of one rate limit evaluation.

    Attributes:
        allowed: Whether the request may proceed
        remaining: Whole tokens left after this request
        limit: Configured bucket capacity
        reset_seconds: Seconds needed to regain one token
        store_error: True when the store was unreachable and the
            failure policy decided instead of the bucket
    """
    allowed: bool
    remaining: int
    limit: int
    reset_seconds: int
    store_error: bool = False

    @property
    def usage_percent(self) -> float:
        if self.limit <= 0:
            return 0.0
        return (self.limit - self.remaining) * 100.0 / self.limit

    def headers(self) -> dict[str, str]:
        """Informational headers sent on every gated response."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_seconds),
        }
