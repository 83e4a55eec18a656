"""
Rate limit checks.

- rate_limit_user: fixed window per user id
- rate_limit_global: hourly and daily fixed windows shared by every caller
- ip_rate_limit: timeout gate plus a sliding window per client IP
"""

import math
import time
from datetime import datetime, timezone
from typing import Annotated, Callable, List

from pydantic import AfterValidator, Field

from chatguard.abuse.mitigation import AbuseMitigation
from chatguard.preflight.check import CheckConfig, PreflightCheck
from chatguard.preflight.types import CheckResult, PreflightParams, Severity
from chatguard.store.base import CounterStore
from chatguard.store.ratelimit import (
    FixedWindowLimiter,
    SlidingWindowLimiter,
    format_time_remaining,
    parse_duration,
)

USER_PREFIX = "ratelimit:user"
GLOBAL_HOURLY_PREFIX = "ratelimit:global:hourly"
GLOBAL_DAILY_PREFIX = "ratelimit:global:daily"
IP_PREFIX = "ratelimit:ip"
GLOBAL_IDENTIFIER = "global"
UNKNOWN_IP = "unknown"


def _check_duration(value: str) -> str:
    parse_duration(value)
    return value


Duration = Annotated[str, AfterValidator(_check_duration)]


class UserRateLimitConfig(CheckConfig):
    user_limit: int = Field(default=20, ge=1)
    user_duration: Duration = "1 h"
    skip_anonymous_users: bool = False
    anonymous_user_ids: List[str] = Field(default_factory=lambda: ["anonymous", "unknown"])


class GlobalRateLimitConfig(CheckConfig):
    hourly_limit: int = Field(default=100, ge=1)
    hourly_duration: Duration = "1 h"
    daily_limit: int = Field(default=500, ge=1)
    daily_duration: Duration = "24 h"
    check_hourly: bool = True
    check_daily: bool = True


class IpRateLimitConfig(CheckConfig):
    limit: int = Field(default=50, ge=1)
    window: Duration = "1 h"


class _StoreBackedCheck(PreflightCheck):
    def __init__(self, store: CounterStore, clock: Callable[[], float] = time.time):
        self.store = store
        self._clock = clock


class UserRateLimitCheck(_StoreBackedCheck):
    name = "rate_limit_user"
    tier = 3
    description = "Checks if the user rate limit has been exceeded"
    config_model = UserRateLimitConfig

    async def evaluate(self, params: PreflightParams) -> CheckResult:
        config: UserRateLimitConfig = params.check_config or self.config_model()
        user_id = params.user_id

        if config.skip_anonymous_users and (
            not user_id or user_id in config.anonymous_user_ids
        ):
            return CheckResult(
                passed=True,
                code="rate_limit_user_skipped",
                message="Rate limit check skipped for anonymous user",
            )

        limiter = FixedWindowLimiter(
            self.store,
            limit=config.user_limit,
            window_seconds=parse_duration(config.user_duration),
            prefix=USER_PREFIX,
            clock=self._clock,
        )
        result = await limiter.limit(user_id)

        if not result.success:
            time_remaining = format_time_remaining(result.ms_until_reset(self._clock()))
            params.logger.warning(
                f"User rate limit exceeded for {user_id} "
                f"({result.count}/{result.limit}, resets in {time_remaining})"
            )
            return CheckResult(
                passed=False,
                code="rate_limit_user",
                message="User rate limit exceeded",
                severity=Severity.WARNING,
                details={
                    "limit": result.limit,
                    "remaining": result.remaining,
                    "timeRemaining": time_remaining,
                },
            )

        return CheckResult(
            passed=True,
            code="rate_limit_user_ok",
            message="User rate limit check passed",
            details={"limit": result.limit, "remaining": result.remaining},
        )


class GlobalRateLimitCheck(_StoreBackedCheck):
    name = "rate_limit_global"
    tier = 3
    description = "Checks if the global rate limit has been exceeded"
    config_model = GlobalRateLimitConfig

    async def evaluate(self, params: PreflightParams) -> CheckResult:
        config: GlobalRateLimitConfig = params.check_config or self.config_model()

        windows = []
        if config.check_hourly:
            windows.append(
                ("hourly", config.hourly_limit, config.hourly_duration, GLOBAL_HOURLY_PREFIX)
            )
        if config.check_daily:
            windows.append(
                ("daily", config.daily_limit, config.daily_duration, GLOBAL_DAILY_PREFIX)
            )

        for label, limit, duration, prefix in windows:
            limiter = FixedWindowLimiter(
                self.store,
                limit=limit,
                window_seconds=parse_duration(duration),
                prefix=prefix,
                clock=self._clock,
            )
            result = await limiter.limit(GLOBAL_IDENTIFIER)
            if result.success:
                continue

            time_remaining = format_time_remaining(result.ms_until_reset(self._clock()))
            params.logger.warning(
                f"Global {label} rate limit exceeded ({result.count}/{result.limit})"
            )
            return CheckResult(
                passed=False,
                code=f"rate_limit_global_{label}",
                message=f"Global {label} rate limit exceeded",
                severity=Severity.WARNING,
                details={
                    "limit": result.limit,
                    "remaining": result.remaining,
                    "timeRemaining": time_remaining,
                },
            )

        return CheckResult(
            passed=True,
            code="rate_limit_global_ok",
            message="Global rate limits not exceeded",
        )


class IpRateLimitCheck(_StoreBackedCheck):
    """
    Per-IP gate.

    Blocks IPs with an active timeout, then consumes one request from the
    IP's sliding window. Exceeding the window counts as an abuse warning.
    """

    name = "ip_rate_limit"
    tier = 1
    description = "IP rate limiting with timeout enforcement"
    config_model = IpRateLimitConfig

    def __init__(
        self,
        store: CounterStore,
        mitigation: AbuseMitigation,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(store, clock)
        self.mitigation = mitigation

    async def evaluate(self, params: PreflightParams) -> CheckResult:
        config: IpRateLimitConfig = params.check_config or self.config_model()
        ip = params.ip
        log = params.logger

        if not ip or ip == UNKNOWN_IP:
            return CheckResult(
                passed=True,
                code="ip_rate_limit_skipped",
                message="Rate limit check skipped for unknown IP",
            )

        timeout = await self.mitigation.get_timeout(ip)
        if timeout is not None:
            now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
            minutes = timeout.minutes_remaining(now)
            log.warning(
                f"IP {ip} in timeout for {minutes} more minutes ({timeout.reason})"
            )
            return CheckResult(
                passed=False,
                code="ip_in_timeout",
                message="Too many warnings, please try again later",
                severity=Severity.ERROR,
                details={
                    "timeRemaining": minutes,
                    "reason": timeout.reason,
                    "timeoutCount": timeout.timeout_count,
                },
            )

        limiter = SlidingWindowLimiter(
            self.store,
            limit=config.limit,
            window_seconds=parse_duration(config.window),
            prefix=IP_PREFIX,
            clock=self._clock,
        )
        result = await limiter.limit(ip)

        if not result.success:
            minutes = math.ceil(result.ms_until_reset(self._clock()) / 60000)
            log.warning(f"IP rate limit exceeded for {ip} ({result.count}/{result.limit})")
            try:
                await self.mitigation.increment_warning_count(ip, "rate_limit_exceeded")
            except Exception as e:
                log.error(f"Failed to record warning for {ip}: {e}", exc_info=True)
            return CheckResult(
                passed=False,
                code="ip_rate_limit_exceeded",
                message="Rate limit exceeded, please try again later",
                severity=Severity.ERROR,
                details={
                    "limit": result.limit,
                    "remaining": result.remaining,
                    "timeRemaining": minutes,
                },
            )

        warnings_used = await self.mitigation.warnings_used(ip)
        return CheckResult(
            passed=True,
            code="ip_rate_limit_passed",
            message="IP rate limit check passed",
            details={"warningsUsed": warnings_used, "remaining": result.remaining},
        )
