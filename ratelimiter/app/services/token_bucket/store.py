"""Shared bucket store backends.

The store owns the authoritative bucket state and performs the atomic
refill-and-consume operation. ``RedisBucketStore`` is the distributed
backend; ``InMemoryBucketStore`` runs the same algorithm in-process for
single-instance deployments and tests.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import redis
import redis.asyncio as aioredis

from ratelimiter.app.exceptions import BucketStoreError

from .models import ConsumeResult, Limit
from .redis_lua import TOKEN_BUCKET_SCRIPT

logger = logging.getLogger(__name__)


class BucketStore(ABC):
    """Abstract base class for shared bucket stores."""

    name: str = "abstract"

    @abstractmethod
    async def consume(self, key: str, limit: Limit, now: float) -> ConsumeResult:
        """Refill the bucket for ``key`` up to ``now`` and take one token.

        Args:
            key: Bucket key
            limit: Capacity and refill rate of the bucket
            now: Current time in seconds

        Returns:
            ConsumeResult telling whether a token was taken

        Raises:
            BucketStoreError: If the store could not answer
        """
        pass

    async def ping(self) -> bool:
        """Check that the store is reachable."""
        return True

    async def close(self) -> None:
        """Release store resources."""


class RedisBucketStore(BucketStore):
    """Redis-backed bucket store shared by every instance.

    Each consume is one EVAL of ``TOKEN_BUCKET_SCRIPT`` bounded by
    ``timeout`` seconds.
    """

    name = "redis"

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: str = "redis://localhost:6379/0",
        timeout: float = 0.5,
        socket_timeout: float = 0.5,
    ) -> None:
        """Initialize the Redis bucket store.

        Args:
            redis_client: Optional Redis client instance
            redis_url: Redis connection URL
            timeout: Upper bound on one atomic store call in seconds
            socket_timeout: Socket connect/read timeout for the client
        """
        self._redis = redis_client
        self._redis_url = redis_url
        self._timeout = timeout
        self._socket_timeout = socket_timeout

    def _get_redis(self) -> Any:
        """Get or create Redis client."""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._redis_url,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
        return self._redis

    async def consume(self, key: str, limit: Limit, now: float) -> ConsumeResult:
        try:
            redis_client = self._get_redis()
            reply = await asyncio.wait_for(
                redis_client.eval(
                    TOKEN_BUCKET_SCRIPT,
                    1,  # Number of keys
                    key,  # KEYS[1]
                    limit.capacity,  # ARGV[1]
                    limit.refill_rate,  # ARGV[2]
                    now,  # ARGV[3]
                    limit.state_ttl_seconds,  # ARGV[4]
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Bucket store call timed out after {self._timeout}s for {key}")
            raise BucketStoreError("timeout", str(e)) from e
        except redis.ConnectionError as e:
            logger.error(f"Redis connection failed: {e}")
            raise BucketStoreError("connection_error", str(e)) from e
        except redis.TimeoutError as e:
            logger.warning(f"Redis timeout: {e}")
            raise BucketStoreError("timeout", str(e)) from e
        except redis.RedisError as e:
            logger.error(f"Redis error: {e}")
            raise BucketStoreError("redis_error", str(e)) from e
        except Exception as e:
            logger.exception(f"Unexpected bucket store error: {e}")
            raise BucketStoreError("unexpected", str(e)) from e

        return self._parse_reply(reply)

    @staticmethod
    def _parse_reply(reply: Any) -> ConsumeResult:
        """Turn the script's ``{allowed, remaining}`` reply into a result."""
        try:
            allowed = int(reply[0]) == 1
            remaining = int(reply[1])
        except (TypeError, ValueError, IndexError) as e:
            logger.error(f"Malformed token bucket reply: {reply!r}")
            raise BucketStoreError("protocol_error", f"malformed reply: {reply!r}") from e
        if not allowed:
            return ConsumeResult(allowed=False, remaining=0)
        return ConsumeResult(allowed=True, remaining=max(0, remaining))

    async def ping(self) -> bool:
        try:
            redis_client = self._get_redis()
            return bool(await asyncio.wait_for(redis_client.ping(), timeout=self._timeout))
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except Exception as e:
                logger.warning(f"Error closing Redis connection: {e}")
            self._redis = None


@dataclass
class TokenBucket:
    """Token bucket state for the in-memory store."""
    tokens: float
    last_refill: float


class InMemoryBucketStore(BucketStore):
    """Per-process bucket store.

    Limits are not shared between instances; suitable for single-instance
    deployments and tests only. Buckets idle longer than their refill
    time are dropped by ``cleanup``.
    """

    name = "memory"

    def __init__(self) -> None:
        self._buckets: dict[str, TokenBucket] = {}
        self._expires_at: dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def consume(self, key: str, limit: Limit, now: float) -> ConsumeResult:
        async with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or self._expires_at.get(key, math.inf) <= now:
                bucket = TokenBucket(tokens=float(limit.capacity), last_refill=now)
                self._buckets[key] = bucket

            elapsed = max(0.0, now - bucket.last_refill)
            refilled = min(float(limit.capacity), bucket.tokens + elapsed * limit.refill_rate)
            bucket.last_refill = max(bucket.last_refill, now)
            # Expiry is measured from the non-decreasing stamp, never from a lagging now
            self._expires_at[key] = bucket.last_refill + limit.state_ttl_seconds

            if refilled >= 1:
                bucket.tokens = refilled - 1
                return ConsumeResult(allowed=True, remaining=math.floor(bucket.tokens))

            bucket.tokens = refilled
            return ConsumeResult(allowed=False, remaining=0)

    async def cleanup(self, now: float) -> int:
        """Remove buckets whose state has expired.

        Returns:
            Number of buckets removed
        """
        async with self._lock:
            expired = [key for key, at in self._expires_at.items() if at <= now]
            for key in expired:
                self._buckets.pop(key, None)
                self._expires_at.pop(key, None)
            return len(expired)


def create_bucket_store(
    redis_enabled: bool,
    redis_url: str,
    timeout: float,
    socket_timeout: float,
) -> BucketStore:
    """Create the bucket store selected by configuration."""
    if redis_enabled:
        logger.info("Using Redis bucket store")
        return RedisBucketStore(
            redis_url=redis_url, timeout=timeout, socket_timeout=socket_timeout
        )
    logger.warning(
        "Redis disabled: using in-memory bucket store, limits are per-process"
    )
    return InMemoryBucketStore()
