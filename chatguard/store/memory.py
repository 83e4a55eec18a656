"""
In-process counter store.

Suitable for a single worker, the CLI, and tests. Operations never await
internally, so each one is atomic with respect to the event loop.
"""

import heapq
import time
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from chatguard.store.base import CounterStore, StoreError

_Value = Union[int, str, Set[str]]


class InMemoryCounterStore(CounterStore):
    """Dictionary-backed CounterStore.

    Expired keys are dropped when read, and swept from an expiry heap on
    every call, so buckets that are never read again do not accumulate.

    Args:
        clock: Returns the current time in seconds. Injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        # key -> (value, expires_at or None)
        self._data: Dict[str, Tuple[_Value, Optional[float]]] = {}
        # (expires_at, key); entries go stale when a key is rewritten or deleted
        self._expiries: List[Tuple[float, str]] = []

    def _sweep(self) -> None:
        now = self._clock()
        while self._expiries and self._expiries[0][0] <= now:
            expires_at, key = heapq.heappop(self._expiries)
            entry = self._data.get(key)
            if entry is not None and entry[1] == expires_at:
                del self._data[key]

    def _put(self, key: str, value: _Value, expires_at: Optional[float]) -> None:
        if expires_at is not None and (key not in self._data or self._data[key][1] != expires_at):
            heapq.heappush(self._expiries, (expires_at, key))
        self._data[key] = (value, expires_at)

    def _live(self, key: str) -> Optional[Tuple[_Value, Optional[float]]]:
        self._sweep()
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    def _expiry(self, ttl_seconds: Optional[float]) -> Optional[float]:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    async def incr(self, key: str, ttl_seconds: Optional[float] = None) -> int:
        entry = self._live(key)
        if entry is None:
            self._put(key, 1, self._expiry(ttl_seconds))
            return 1

        value, expires_at = entry
        if not isinstance(value, int):
            raise StoreError(f"Key '{key}' does not hold a counter")
        self._put(key, value + 1, expires_at)
        return value + 1

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        if entry is None:
            return None
        value = entry[0]
        if isinstance(value, set):
            raise StoreError(f"Key '{key}' holds a set")
        return str(value)

    async def set(
        self, key: str, value: str, ttl_seconds: Optional[float] = None
    ) -> None:
        self._sweep()
        self._put(key, value, self._expiry(ttl_seconds))

    async def delete(self, key: str) -> None:
        self._sweep()
        self._data.pop(key, None)

    def __len__(self) -> int:
        """Number of stored keys, including expired ones not yet swept."""
        return len(self._data)

    async def ttl(self, key: str) -> Optional[float]:
        entry = self._live(key)
        if entry is None or entry[1] is None:
            return None
        return max(0.0, entry[1] - self._clock())

    def _set_for(self, key: str) -> Set[str]:
        entry = self._live(key)
        if entry is None:
            members: Set[str] = set()
            self._put(key, members, None)
            return members
        if not isinstance(entry[0], set):
            raise StoreError(f"Key '{key}' does not hold a set")
        return entry[0]

    async def sadd(self, key: str, member: str) -> None:
        self._set_for(key).add(member)

    async def srem(self, key: str, member: str) -> None:
        self._set_for(key).discard(member)

    async def sismember(self, key: str, member: str) -> bool:
        return member in self._set_for(key)

    async def smembers(self, key: str) -> Set[str]:
        return set(self._set_for(key))
