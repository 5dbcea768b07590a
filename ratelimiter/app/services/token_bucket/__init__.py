"""Distributed token bucket rate limiting.

Authoritative bucket state lives in Redis and is updated by a Lua script,
so limits hold across every instance. A local negative cache shields the
store from callers retrying right after a denial.
"""

from .evaluator import RateLimitEvaluator
from .failure_policy import apply_failure_policy
from .models import ConsumeResult, Decision, FailureMode, Limit
from .negative_cache import LOCAL_REJECT_TTL_MS, LocalNegativeCache
from .redis_lua import TOKEN_BUCKET_SCRIPT
from .store import (
    BucketStore,
    InMemoryBucketStore,
    RedisBucketStore,
    create_bucket_store,
)

__all__ = [
    "ConsumeResult",
    "Decision",
    "FailureMode",
    "Limit",
    "LOCAL_REJECT_TTL_MS",
    "LocalNegativeCache",
    "TOKEN_BUCKET_SCRIPT",
    "BucketStore",
    "InMemoryBucketStore",
    "RedisBucketStore",
    "create_bucket_store",
    "apply_failure_policy",
    "RateLimitEvaluator",
]
