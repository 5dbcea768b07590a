"""Local negative cache for recently denied bucket keys.

After the shared store denies a key, repeat checks for that key are
answered locally for a fixed window instead of hitting the store again.
Entries are hints only: losing one costs a store round-trip, never an
incorrect allow.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

# Fixed suppression window after a denial, independent of the refill rate
LOCAL_REJECT_TTL_MS = 3000


class LocalNegativeCache:
    """Thread-safe mapping of bucket key to reject-until timestamp (ms).

    Memory bounds:
    - Expired entries are dropped lazily on ``get``
    - ``cleanup_expired`` removes every expired entry (run periodically)
    - At most ``max_entries`` keys are kept; the oldest writes are
      evicted first when the limit is reached
    """

    DEFAULT_MAX_ENTRIES = 10000

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            max_entries: Maximum number of keys held
            clock: Returns the current time in seconds
        """
        self._entries: OrderedDict[str, int] = OrderedDict()
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def get(self, key: str) -> Optional[int]:
        """Return the reject-until timestamp for ``key`` if still live."""
        now_ms = self._now_ms()
        with self._lock:
            reject_until = self._entries.get(key)
            if reject_until is None:
                return None
            if now_ms >= reject_until:
                del self._entries[key]
                return None
            return reject_until

    def put(self, key: str, reject_until: int) -> None:
        """Record that ``key`` is denied until ``reject_until`` (ms)."""
        with self._lock:
            self._entries[key] = reject_until
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def cleanup_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed
        """
        now_ms = self._now_ms()
        with self._lock:
            expired = [key for key, until in self._entries.items() if now_ms >= until]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
