"""
Counter store layer.

Provides the shared key-value store used for rate counters, warning
counters, timeout records and the IP deny list, plus the window limiters
built on top of it.
"""

from chatguard.store.base import CounterStore, StoreError
from chatguard.store.memory import InMemoryCounterStore
from chatguard.store.ratelimit import (
    FixedWindowLimiter,
    RateLimitResult,
    SlidingWindowLimiter,
    format_time_remaining,
    parse_duration,
)

__all__ = [
    "CounterStore",
    "StoreError",
    "InMemoryCounterStore",
    "FixedWindowLimiter",
    "SlidingWindowLimiter",
    "RateLimitResult",
    "format_time_remaining",
    "parse_duration",
    "create_store",
]


def create_store(backend: str, url: str = "") -> CounterStore:
    """
    Create a counter store by backend name.

    Args:
        backend: "memory" or "redis"
        url: Connection URL for network backends

    Raises:
        ValueError: If the backend is unknown
    """
    if backend == "memory":
        return InMemoryCounterStore()
    if backend == "redis":
        from chatguard.store.redis_store import RedisCounterStore

        return RedisCounterStore.from_url(url)
    raise ValueError(
        f"Unknown store backend: '{backend}'. Available backends: memory, redis"
    )
