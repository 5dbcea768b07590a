"""Shared fixtures for rate limiter tests."""

import math
from unittest.mock import MagicMock

import pytest

from ratelimiter.app.exceptions import BucketStoreError
from ratelimiter.app.services.token_bucket import (
    TOKEN_BUCKET_SCRIPT,
    BucketStore,
    ConsumeResult,
    InMemoryBucketStore,
    Limit,
)


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingStore(BucketStore):
    """Wraps a store and counts consume calls that reach it."""

    name = "counting"

    def __init__(self, inner: BucketStore | None = None):
        self.inner = inner or InMemoryBucketStore()
        self.calls = 0

    async def consume(self, key: str, limit: Limit, now: float) -> ConsumeResult:
        self.calls += 1
        return await self.inner.consume(key, limit, now)


class FailingStore(BucketStore):
    """Store whose every call fails like an unreachable Redis."""

    name = "failing"

    def __init__(self, error_type: str = "connection_error"):
        self.error_type = error_type
        self.calls = 0

    async def consume(self, key: str, limit: Limit, now: float) -> ConsumeResult:
        self.calls += 1
        raise BucketStoreError(self.error_type, "store unreachable")

    async def ping(self) -> bool:
        return False


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def counting_store():
    return CountingStore()


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def mock_redis():
    """Mock async Redis client that executes the token bucket script in Python.

    Bucket hashes live in ``redis.hashes``; ``redis.ttls`` records the
    EXPIRE value last applied per key.
    """
    redis = MagicMock()
    redis.hashes = {}
    redis.ttls = {}
    redis.eval_calls = []

    async def mock_eval(script, num_keys, *args):
        assert script == TOKEN_BUCKET_SCRIPT
        assert num_keys == 1
        redis.eval_calls.append(args)
        key = args[0]
        capacity = float(args[1])
        refill_rate = float(args[2])
        now = float(args[3])
        ttl = int(args[4])

        state = redis.hashes.get(key)
        if state is None:
            tokens, last_refill = capacity, now
        else:
            tokens, last_refill = float(state["tokens"]), float(state["ts"])

        elapsed = max(0.0, now - last_refill)
        refilled = min(capacity, tokens + elapsed * refill_rate)
        stamp = max(last_refill, now)
        redis.ttls[key] = ttl

        if refilled >= 1:
            left = refilled - 1
            redis.hashes[key] = {"tokens": str(left), "ts": str(stamp)}
            return [1, math.floor(left)]
        redis.hashes[key] = {"tokens": str(refilled), "ts": str(stamp)}
        return [0, 0]

    async def mock_ping():
        return True

    async def mock_aclose():
        redis.closed = True

    redis.eval = mock_eval
    redis.ping = mock_ping
    redis.aclose = mock_aclose
    redis.closed = False
    return redis
