"""Rate limit evaluator.

Turns a bucket key and its Limit into a Decision:

1. A live local negative cache entry denies without contacting the store.
2. Otherwise the store's atomic refill-and-consume decides; a denial is
   remembered locally for ``LOCAL_REJECT_TTL_MS``.
3. If the store call fails, the route's failure policy decides and the
   negative cache is left untouched.

No step retries; every call produces exactly one Decision.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from ratelimiter.app.exceptions import BucketStoreError

from .failure_policy import apply_failure_policy
from .models import Decision, Limit
from .negative_cache import LOCAL_REJECT_TTL_MS, LocalNegativeCache
from .store import BucketStore, InMemoryBucketStore

logger = logging.getLogger(__name__)


class RateLimitEvaluator:
    """Distributed token bucket decision engine.

    Owns its local negative cache, so separate evaluators never share
    suppression state. Optionally runs a background task that sweeps
    expired negative cache entries.
    """

    SWEEP_INTERVAL_SECONDS = 30.0

    def __init__(
        self,
        store: BucketStore,
        negative_cache: Optional[LocalNegativeCache] = None,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    ) -> None:
        """Initialize the evaluator.

        Args:
            store: Shared bucket store holding authoritative state
            negative_cache: Local cache of denied keys (created if omitted)
            clock: Returns the current time in seconds
            sweep_interval: Seconds between background sweeps
        """
        self._store = store
        self._clock = clock
        self._negative_cache = (
            negative_cache if negative_cache is not None else LocalNegativeCache(clock=clock)
        )
        self._sweep_interval = sweep_interval
        self._sweep_task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def store(self) -> BucketStore:
        return self._store

    @property
    def negative_cache(self) -> LocalNegativeCache:
        return self._negative_cache

    async def evaluate(self, key: str, limit: Limit) -> Decision:
        """Decide whether the request identified by ``key`` may proceed."""
        reset_seconds = limit.reset_seconds

        if self._negative_cache.get(key) is not None:
            return Decision(
                allowed=False,
                remaining=0,
                limit=limit.capacity,
                reset_seconds=reset_seconds,
            )

        now = self._clock()
        try:
            result = await self._store.consume(key, limit, now)
        except BucketStoreError as e:
            return apply_failure_policy(key, limit, e)

        if result.allowed:
            return Decision(
                allowed=True,
                remaining=result.remaining,
                limit=limit.capacity,
                reset_seconds=reset_seconds,
            )

        self._negative_cache.put(key, int(now * 1000) + LOCAL_REJECT_TTL_MS)
        logger.debug(f"Bucket {key} exhausted, suppressing locally for {LOCAL_REJECT_TTL_MS}ms")
        return Decision(
            allowed=False,
            remaining=0,
            limit=limit.capacity,
            reset_seconds=reset_seconds,
        )

    async def sweep(self) -> int:
        """Drop expired local state.

        Returns:
            Number of entries removed
        """
        removed = self._negative_cache.cleanup_expired()
        if isinstance(self._store, InMemoryBucketStore):
            removed += await self._store.cleanup(self._clock())
        return removed

    async def start_sweeper(self) -> None:
        """Start the periodic sweep of expired local state."""
        if self._sweep_task is not None:
            return
        self._shutdown_event = asyncio.Event()
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info("Started negative cache sweeper")

    async def stop_sweeper(self) -> None:
        """Stop the periodic sweep task."""
        if self._sweep_task is None:
            return
        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._sweep_task, timeout=5.0)
        except asyncio.TimeoutError:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
        self._sweep_task = None
        logger.info("Stopped negative cache sweeper")

    async def _sweep_loop(self) -> None:
        """Background loop for periodic sweeping."""
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self._sweep_interval,
                )
            except asyncio.TimeoutError:
                pass
            if self._shutdown_event.is_set():
                break
            try:
                removed = await self.sweep()
                if removed:
                    logger.debug(f"Swept {removed} expired entries")
            except Exception as e:
                logger.error(f"Error during negative cache sweep: {e}")

    async def close(self) -> None:
        """Stop background work and release the store."""
        await self.stop_sweeper()
        await self._store.close()
