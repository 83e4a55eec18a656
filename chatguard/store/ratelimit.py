"""
Window-based rate limiters over a CounterStore.

Two algorithms are provided:
- FixedWindowLimiter: one counter per (identifier, window bucket)
- SlidingWindowLimiter: current bucket plus the previous bucket weighted by
  how much of it still overlaps the sliding window

Keys follow ``<prefix>:<identifier>:<bucket>``; each bucket expires on its own.
"""

import math
import re
import time
from dataclasses import dataclass
from typing import Callable

from chatguard.store.base import CounterStore

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)\s*$", re.IGNORECASE)

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


def parse_duration(value: str) -> float:
    """Parse a duration such as "1 h", "24h", "30 m" or "10s" into seconds.

    Raises:
        ValueError: If the string is not a recognised duration
    """
    match = _DURATION_RE.match(value)
    if not match:
        raise ValueError(
            f"Invalid duration: '{value}'. Expected e.g. '10 s', '30 m', '1 h', '1 d'"
        )
    amount, unit = match.groups()
    seconds = float(amount) * _UNIT_SECONDS[unit.lower()]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: '{value}'")
    return seconds


def format_time_remaining(milliseconds: float) -> str:
    """Human-readable remaining time, rounded up to the largest whole unit."""
    seconds = math.ceil(milliseconds / 1000)

    if seconds < 60:
        return f"{seconds} seconds"
    if seconds < 3600:
        return f"{math.ceil(seconds / 60)} minutes"
    if seconds < 86400:
        return f"{math.ceil(seconds / 3600)} hours"
    return f"{math.ceil(seconds / 86400)} days"


@dataclass
class RateLimitResult:
    """Outcome of consuming one token from a limiter."""

    success: bool
    limit: int
    remaining: int
    count: int
    reset: float  # epoch seconds when the current window ends

    def ms_until_reset(self, now: float) -> float:
        return max(0.0, (self.reset - now) * 1000)


class FixedWindowLimiter:
    """
    Fixed-window limiter: at most ``limit`` events per ``window_seconds``.

    Usage:
        limiter = FixedWindowLimiter(store, limit=20, window_seconds=3600, prefix="ratelimit:user")
        result = await limiter.limit(user_id)
        if not result.success:
            ...
    """

    def __init__(
        self,
        store: CounterStore,
        limit: int,
        window_seconds: float,
        prefix: str,
        clock: Callable[[], float] = time.time,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.store = store
        self.limit_value = limit
        self.window_seconds = window_seconds
        self.prefix = prefix
        self._clock = clock

    def _bucket(self, now: float) -> int:
        return int(now // self.window_seconds)

    def _key(self, identifier: str, bucket: int) -> str:
        return f"{self.prefix}:{identifier}:{bucket}"

    async def limit(self, identifier: str) -> RateLimitResult:
        """Consume one token for identifier."""
        now = self._clock()
        bucket = self._bucket(now)
        count = await self.store.incr(
            self._key(identifier, bucket), ttl_seconds=self.window_seconds
        )
        return RateLimitResult(
            success=count <= self.limit_value,
            limit=self.limit_value,
            remaining=max(0, self.limit_value - count),
            count=count,
            reset=(bucket + 1) * self.window_seconds,
        )

    async def peek(self, identifier: str) -> int:
        """Current window count for identifier, without consuming a token."""
        raw = await self.store.get(self._key(identifier, self._bucket(self._clock())))
        return int(raw) if raw else 0

    async def reset(self, identifier: str) -> None:
        """Drop the current window's counter for identifier."""
        bucket = self._bucket(self._clock())
        await self.store.delete(self._key(identifier, bucket))


class SlidingWindowLimiter(FixedWindowLimiter):
    """
    Sliding-window limiter approximated from two fixed buckets.

    The effective count is ``previous * overlap + current`` where overlap is
    the fraction of the previous bucket still inside the sliding window.
    """

    async def limit(self, identifier: str) -> RateLimitResult:
        now = self._clock()
        bucket = self._bucket(now)
        elapsed = now - bucket * self.window_seconds

        # Buckets must outlive their own window to serve as "previous"
        current = await self.store.incr(
            self._key(identifier, bucket), ttl_seconds=self.window_seconds * 2
        )
        previous_raw = await self.store.get(self._key(identifier, bucket - 1))
        previous = int(previous_raw) if previous_raw else 0

        overlap = 1 - (elapsed / self.window_seconds)
        weighted = previous * overlap + current
        count = math.ceil(weighted)

        return RateLimitResult(
            success=weighted <= self.limit_value,
            limit=self.limit_value,
            remaining=max(0, self.limit_value - count),
            count=count,
            reset=(bucket + 1) * self.window_seconds,
        )

    async def reset(self, identifier: str) -> None:
        bucket = self._bucket(self._clock())
        await self.store.delete(self._key(identifier, bucket))
        await self.store.delete(self._key(identifier, bucket - 1))
