"""
Counter store protocol.

The counter store is the only shared mutable state of the preflight
pipeline. Every operation is a single atomic step on the backing store,
so concurrent requests from the same IP or user cannot race past a limit.
"""

from abc import ABC, abstractmethod
from typing import Optional, Set


class StoreError(Exception):
    """Error raised when the backing store cannot be reached or fails."""
    pass


class CounterStore(ABC):
    """
    Base class for key-value stores used by rate limiters and abuse mitigation.

    Keys are plain strings namespaced by prefix, e.g. ``ratelimit:user:<id>:<bucket>``,
    ``timeout:<ip>`` or ``ip:denylist``.
    """

    @abstractmethod
    async def incr(self, key: str, ttl_seconds: Optional[float] = None) -> int:
        """
        Atomically increment a counter.

        The TTL is applied only when the increment creates the key, which is
        what gives fixed-window semantics.

        Args:
            key: Counter key
            ttl_seconds: Expiry applied on creation

        Returns:
            Counter value after the increment
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a string value, or None if missing or expired."""
        ...

    @abstractmethod
    async def set(
        self, key: str, value: str, ttl_seconds: Optional[float] = None
    ) -> None:
        """Set a string value, optionally expiring after ttl_seconds."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""
        ...

    @abstractmethod
    async def ttl(self, key: str) -> Optional[float]:
        """Remaining lifetime in seconds, or None if the key has no expiry or is missing."""
        ...

    @abstractmethod
    async def sadd(self, key: str, member: str) -> None:
        """Add a member to a set."""
        ...

    @abstractmethod
    async def srem(self, key: str, member: str) -> None:
        """Remove a member from a set."""
        ...

    @abstractmethod
    async def sismember(self, key: str, member: str) -> bool:
        """Check set membership."""
        ...

    @abstractmethod
    async def smembers(self, key: str) -> Set[str]:
        """Get all members of a set."""
        ...

    async def close(self) -> None:
        """
        Release connections.

        Override in subclasses that hold network resources.
        """
        pass
