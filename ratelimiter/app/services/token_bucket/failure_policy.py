"""Disposition of requests when the shared bucket store is unreachable."""

import logging

from ratelimiter.app.exceptions import BucketStoreError

from .models import Decision, FailureMode, Limit

logger = logging.getLogger(__name__)


def apply_failure_policy(key: str, limit: Limit, error: BucketStoreError) -> Decision:
    """Decide a request whose store call failed.

    FAIL_OPEN lets the request through, FAIL_CLOSED denies it. Either way
    the decision is flagged with ``store_error`` so it is never mistaken
    for an enforced limit.
    """
    allowed = limit.failure_mode is FailureMode.FAIL_OPEN
    if allowed:
        logger.warning(
            f"Rate limiting fail-open triggered due to {error.error_type}. "
            "Request allowed without rate limit check.",
            extra={"bucket_key": key, "error_type": error.error_type,
                   "failure_mode": limit.failure_mode.value},
        )
    else:
        logger.warning(
            f"Rate limiting fail-closed triggered due to {error.error_type}. "
            "Request denied.",
            extra={"bucket_key": key, "error_type": error.error_type,
                   "failure_mode": limit.failure_mode.value},
        )
    return Decision(
        allowed=allowed,
        remaining=0,
        limit=limit.capacity,
        reset_seconds=limit.reset_seconds,
        store_error=True,
    )
