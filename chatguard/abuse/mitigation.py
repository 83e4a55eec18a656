"""
Abuse mitigation: warnings → timeouts → deny list.

Each IP accumulates warnings in a fixed window. Reaching the warning limit
puts the IP in a timeout whose duration doubles with every repeat inside the
timeout window, capped at the configured maximum. Timeout records live in the
counter store with a TTL equal to their duration.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from chatguard.config.settings import AbuseConfig
from chatguard.store.base import CounterStore
from chatguard.store.ratelimit import FixedWindowLimiter, parse_duration

logger = logging.getLogger(__name__)

WARNING_PREFIX = "ratelimit:warning"
TIMEOUT_COUNTER_PREFIX = "ratelimit:timeout"
TIMEOUT_KEY_PREFIX = "timeout:"
DENY_LIST_KEY = "ip:denylist"


@dataclass
class TimeoutRecord:
    """An active timeout for one IP."""

    until: datetime
    reason: str
    timeout_count: int

    def minutes_remaining(self, now: datetime) -> int:
        remaining = (self.until - now).total_seconds()
        return max(0, -(-int(remaining) // 60))

    def to_json(self) -> str:
        return json.dumps(
            {
                "until": self.until.isoformat(),
                "reason": self.reason,
                "timeoutCount": self.timeout_count,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "TimeoutRecord":
        data = json.loads(raw)
        return cls(
            until=datetime.fromisoformat(data["until"]),
            reason=data.get("reason", ""),
            timeout_count=int(data.get("timeoutCount", 1)),
        )


class AbuseMitigation(ABC):
    """
    Capability the orchestrator and checks use to record abuse.

    Only increment_warning_count is required by the preflight pipeline;
    the rest serve rate-limit checks, the service and the CLI, which
    depend on this interface rather than on AbuseMitigator.
    """

    @abstractmethod
    async def increment_warning_count(self, ip: str, reason: str) -> int:
        """Record one warning for ip and return the window's warning count."""
        ...

    @abstractmethod
    async def put_ip_in_timeout(self, ip: str, reason: str) -> TimeoutRecord:
        """Put ip in timeout with escalating duration."""
        ...

    @abstractmethod
    async def get_timeout(self, ip: str) -> Optional[TimeoutRecord]:
        """Return the active timeout for ip, if any."""
        ...

    @abstractmethod
    async def warnings_used(self, ip: str) -> int:
        """Warnings recorded for ip in the current window."""
        ...

    @abstractmethod
    async def is_ip_denied(self, ip: str) -> bool:
        """Check the deny list."""
        ...

    # Administration (CLI)

    @abstractmethod
    async def clear_timeout(self, ip: str) -> None:
        """Lift the timeout and reset the warning count for ip."""
        ...

    @abstractmethod
    async def add_to_deny_list(self, ip: str) -> None:
        ...

    @abstractmethod
    async def remove_from_deny_list(self, ip: str) -> None:
        ...

    @abstractmethod
    async def denied_ips(self) -> List[str]:
        """All denied IPs, sorted."""
        ...


class AbuseMitigator(AbuseMitigation):
    """
    Store-backed AbuseMitigation.

    Example:
        mitigator = AbuseMitigator(store, AbuseConfig())
        await mitigator.increment_warning_count("203.0.113.7", "blacklisted_keywords")
    """

    def __init__(
        self,
        store: CounterStore,
        config: Optional[AbuseConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.config = config or AbuseConfig()
        self._clock = clock
        self.warning_limiter = FixedWindowLimiter(
            store,
            limit=self.config.warning_limit,
            window_seconds=parse_duration(self.config.warning_window),
            prefix=WARNING_PREFIX,
            clock=clock,
        )
        self.timeout_limiter = FixedWindowLimiter(
            store,
            limit=self.config.timeout_limit,
            window_seconds=parse_duration(self.config.timeout_window),
            prefix=TIMEOUT_COUNTER_PREFIX,
            clock=clock,
        )

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def timeout_minutes(self, timeout_count: int) -> int:
        """Duration for the Nth timeout: base × 2^(N-1), capped at max."""
        exponent = max(0, timeout_count - 1)
        return min(
            self.config.base_timeout_minutes * (2**exponent),
            self.config.max_timeout_minutes,
        )

    async def increment_warning_count(self, ip: str, reason: str) -> int:
        result = await self.warning_limiter.limit(ip)
        logger.info(
            f"Warning {result.count}/{result.limit} recorded for {ip} ({reason})"
        )
        if result.count >= self.config.warning_limit:
            await self.put_ip_in_timeout(ip, reason)
        return result.count

    async def put_ip_in_timeout(self, ip: str, reason: str) -> TimeoutRecord:
        counter = await self.timeout_limiter.limit(ip)
        # Uncapped count keeps escalating past timeout_limit until the max duration
        timeout_count = counter.count
        minutes = self.timeout_minutes(timeout_count)

        record = TimeoutRecord(
            until=datetime.fromtimestamp(
                self._clock() + minutes * 60, tz=timezone.utc
            ),
            reason=reason,
            timeout_count=timeout_count,
        )
        await self.store.set(
            f"{TIMEOUT_KEY_PREFIX}{ip}", record.to_json(), ttl_seconds=minutes * 60
        )
        await self.warning_limiter.reset(ip)

        logger.warning(
            f"IP {ip} put in timeout for {minutes} minutes "
            f"(timeout #{timeout_count}, reason: {reason})"
        )

        if self.config.auto_deny_list and not counter.success:
            await self.add_to_deny_list(ip)
            logger.warning(f"IP {ip} added to deny list after {timeout_count} timeouts")

        return record

    async def get_timeout(self, ip: str) -> Optional[TimeoutRecord]:
        key = f"{TIMEOUT_KEY_PREFIX}{ip}"
        raw = await self.store.get(key)
        if raw is None:
            return None

        record = TimeoutRecord.from_json(raw)
        if record.until <= self._now():
            await self.store.delete(key)
            return None
        return record

    async def clear_timeout(self, ip: str) -> None:
        await self.store.delete(f"{TIMEOUT_KEY_PREFIX}{ip}")
        await self.warning_limiter.reset(ip)
        logger.info(f"Timeout cleared for {ip}")

    async def warnings_used(self, ip: str) -> int:
        return await self.warning_limiter.peek(ip)

    async def add_to_deny_list(self, ip: str) -> None:
        await self.store.sadd(DENY_LIST_KEY, ip)

    async def remove_from_deny_list(self, ip: str) -> None:
        await self.store.srem(DENY_LIST_KEY, ip)

    async def is_ip_denied(self, ip: str) -> bool:
        try:
            return await self.store.sismember(DENY_LIST_KEY, ip)
        except Exception as e:
            # Fail open
            logger.error(f"Deny list lookup failed for {ip}: {e}", exc_info=True)
            return False

    async def denied_ips(self) -> List[str]:
        return sorted(await self.store.smembers(DENY_LIST_KEY))
