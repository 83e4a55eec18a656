"""
Redis-backed counter store.

Uses ``redis.asyncio``. INCR and PTTL run in one MULTI/EXEC transaction; a
counter found without an expiry gets one right after, so a window left
without a TTL is repaired by its next increment. Works with any Redis
server version (no EXPIRE NX).
"""

import logging
from typing import Any, Optional, Set

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from chatguard.store.base import CounterStore, StoreError

logger = logging.getLogger(__name__)


class RedisCounterStore(CounterStore):
    """CounterStore on top of a Redis server.

    Example:
        store = RedisCounterStore.from_url("redis://localhost:6379/0")
        count = await store.incr("ratelimit:user:abc:123", ttl_seconds=3600)
    """

    def __init__(self, client: Any):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCounterStore":
        """Create a store from a redis:// or rediss:// URL."""
        client = aioredis.from_url(url, decode_responses=True)
        logger.info(f"RedisCounterStore connected to {_redact(url)}")
        return cls(client)

    async def incr(self, key: str, ttl_seconds: Optional[float] = None) -> int:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.pttl(key)
                count, remaining_ms = await pipe.execute()
            # -1: the key has no expiry yet
            if ttl_seconds is not None and remaining_ms == -1:
                await self._client.expire(key, max(1, int(ttl_seconds)))
            return int(count)
        except RedisError as e:
            raise StoreError(f"Redis INCR failed for '{key}': {e}") from e

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise StoreError(f"Redis GET failed for '{key}': {e}") from e

    async def set(
        self, key: str, value: str, ttl_seconds: Optional[float] = None
    ) -> None:
        try:
            if ttl_seconds is None:
                await self._client.set(key, value)
            else:
                await self._client.set(key, value, ex=max(1, int(ttl_seconds)))
        except RedisError as e:
            raise StoreError(f"Redis SET failed for '{key}': {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise StoreError(f"Redis DEL failed for '{key}': {e}") from e

    async def ttl(self, key: str) -> Optional[float]:
        try:
            remaining_ms = await self._client.pttl(key)
        except RedisError as e:
            raise StoreError(f"Redis PTTL failed for '{key}': {e}") from e
        # -2: missing key, -1: no expiry
        if remaining_ms is None or remaining_ms < 0:
            return None
        return remaining_ms / 1000.0

    async def sadd(self, key: str, member: str) -> None:
        try:
            await self._client.sadd(key, member)
        except RedisError as e:
            raise StoreError(f"Redis SADD failed for '{key}': {e}") from e

    async def srem(self, key: str, member: str) -> None:
        try:
            await self._client.srem(key, member)
        except RedisError as e:
            raise StoreError(f"Redis SREM failed for '{key}': {e}") from e

    async def sismember(self, key: str, member: str) -> bool:
        try:
            return bool(await self._client.sismember(key, member))
        except RedisError as e:
            raise StoreError(f"Redis SISMEMBER failed for '{key}': {e}") from e

    async def smembers(self, key: str) -> Set[str]:
        try:
            return set(await self._client.smembers(key))
        except RedisError as e:
            raise StoreError(f"Redis SMEMBERS failed for '{key}': {e}") from e

    async def close(self) -> None:
        await self._client.aclose()
        logger.debug("RedisCounterStore connection closed")


def _redact(url: str) -> str:
    """Hide credentials in a connection URL for logging."""
    if "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.split('@', 1)[1]}"
