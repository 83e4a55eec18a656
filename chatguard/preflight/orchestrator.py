"""
Preflight orchestrator.

Runs the registered checks tier by tier against the last user message,
stopping at the first failure. Failures with abuse-related codes are
reported to the abuse mitigation layer as warnings against the client IP.
"""

import logging
import time
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from chatguard.abuse.mitigation import AbuseMitigation
from chatguard.config.settings import PreflightConfig
from chatguard.preflight.check import PreflightCheck
from chatguard.preflight.policy import DEFAULT_WARNING_CODES
from chatguard.preflight.registry import CheckRegistry
from chatguard.preflight.types import (
    ChatInput,
    CheckResult,
    CheckRunRecord,
    Message,
    PreflightOptions,
    PreflightParams,
    PreflightResult,
    Severity,
)

logger = logging.getLogger(__name__)

UNKNOWN_IP = "unknown"


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000)


def normalize_messages(chat_input: ChatInput) -> Tuple[List[Message], str]:
    """
    Split input into (messages, last user message).

    A string is a single user message. For a message list, the last entry
    with role "user" is the one checked; entries may be Message objects or
    dicts with role/content keys.
    """
    if isinstance(chat_input, str):
        return [Message(role="user", content=chat_input)], chat_input

    messages: List[Message] = []
    for item in chat_input:
        if isinstance(item, Message):
            messages.append(item)
        else:
            messages.append(
                Message(role=str(item.get("role", "")), content=item.get("content") or "")
            )

    last_message = ""
    for message in reversed(messages):
        if message.role == "user":
            last_message = message.content if isinstance(message.content, str) else ""
            break
    return messages, last_message


class PreflightOrchestrator:
    """
    Tiered check runner.

    Usage:
        orchestrator = PreflightOrchestrator(registry, mitigation=mitigator)
        result = await orchestrator.run_preflight_checks("user-1", "Explain recursion", ip="203.0.113.7")
        if not result.passed:
            ...

    Args:
        registry: Registered checks
        mitigation: Receives warnings for abuse-related failures
        defaults: Configured defaults for tiers, enabled checks and options
        tracer: Optional PreflightTracer
    """

    def __init__(
        self,
        registry: CheckRegistry,
        mitigation: Optional[AbuseMitigation] = None,
        defaults: Optional[PreflightConfig] = None,
        tracer: Optional[Any] = None,
    ):
        self.registry = registry
        self.mitigation = mitigation
        self.defaults = defaults or PreflightConfig()
        self.tracer = tracer

        logger.info(
            f"PreflightOrchestrator initialized with {len(registry)} checks: "
            f"{', '.join(registry.names())}"
        )

    def _is_enabled(self, check: PreflightCheck, overrides: Optional[Dict[str, bool]]) -> bool:
        if overrides and check.name in overrides:
            return bool(overrides[check.name])
        if check.name in self.defaults.checks:
            return bool(self.defaults.checks[check.name])
        return check.enabled

    def _warning_codes(self, options: PreflightOptions) -> FrozenSet[str]:
        if options.warning_codes is not None:
            return frozenset(options.warning_codes)
        if self.defaults.warning_codes is not None:
            return frozenset(self.defaults.warning_codes)
        return DEFAULT_WARNING_CODES

    async def _run_check(
        self,
        check: PreflightCheck,
        params: PreflightParams,
        options: PreflightOptions,
        log: logging.Logger,
    ) -> CheckRunRecord:
        start = time.perf_counter()
        try:
            call_config = (options.check_config or {}).get(check.name)
            params.check_config = check.build_config(
                self.defaults.check_config.get(check.name), call_config
            )
            log.debug(f"Running preflight check: {check.name} (tier {check.tier})")
            result = await check.run(params)
        except Exception as e:
            log.error(f"Error in preflight check '{check.name}': {e}", exc_info=True)
            result = CheckResult(
                passed=False,
                code="check_error",
                message=f"Error in {check.name}: {e}",
                severity=Severity.ERROR,
                details={"error": str(e)},
            )

        elapsed = _elapsed_ms(start)
        result.execution_time_ms = elapsed

        if result.passed:
            log.debug(
                f"Preflight check passed: {check.name} ({result.code}, {elapsed}ms)"
            )
        else:
            log.warning(
                f"Preflight check failed: {check.name} ({result.code}): {result.message}",
                extra={
                    "check_name": check.name,
                    "code": result.code,
                    "severity": Severity(result.severity).value,
                    "execution_time_ms": elapsed,
                },
            )

        if self.tracer is not None:
            self.tracer.log_check_result(check.name, check.tier, result)

        return CheckRunRecord(check_name=check.name, result=result, execution_time_ms=elapsed)

    async def _record_warning(
        self, ip: Optional[str], result: CheckResult, options: PreflightOptions, log: logging.Logger
    ) -> None:
        if self.mitigation is None or not ip or ip == UNKNOWN_IP:
            return
        if result.code not in self._warning_codes(options):
            return
        try:
            await self.mitigation.increment_warning_count(ip, result.code)
            log.debug(f"Incremented warning count for {ip} ({result.code})")
        except Exception as e:
            log.error(f"Failed to increment warning count for {ip}: {e}", exc_info=True)

    async def run_preflight_checks(
        self,
        user_id: str,
        chat_input: ChatInput,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        options: Optional[PreflightOptions] = None,
    ) -> PreflightResult:
        """
        Run all requested tiers of checks.

        Never raises: unexpected errors become a ``system_error`` result.
        """
        start = time.perf_counter()
        options = options or PreflightOptions()
        log = options.logger or logger

        try:
            result = await self._run(user_id, chat_input, ip, user_agent, options, log, start)
        except Exception as e:
            log.error(f"Unexpected error in preflight checks: {e}", exc_info=True)
            elapsed = _elapsed_ms(start)
            result = PreflightResult(
                passed=False,
                failed_check="system_error",
                result=CheckResult(
                    passed=False,
                    code="system_error",
                    message=str(e) or "Unknown error during preflight checks",
                    severity=Severity.ERROR,
                    execution_time_ms=elapsed,
                ),
                execution_time_ms=elapsed,
            )

        if self.tracer is not None:
            try:
                self.tracer.log_preflight_result(user_id, ip, result)
            except Exception as e:
                log.error(f"Failed to trace preflight result: {e}")

        return result

    async def _run(
        self,
        user_id: str,
        chat_input: ChatInput,
        ip: Optional[str],
        user_agent: Optional[str],
        options: PreflightOptions,
        log: logging.Logger,
        start: float,
    ) -> PreflightResult:
        messages, last_message = normalize_messages(chat_input)

        if not last_message:
            log.warning(f"Empty input provided to preflight checks (user={user_id}, ip={ip})")
            elapsed = _elapsed_ms(start)
            return PreflightResult(
                passed=False,
                failed_check="empty_input",
                result=CheckResult(
                    passed=False,
                    code="empty_input",
                    message="No valid user message provided",
                    severity=Severity.ERROR,
                    execution_time_ms=elapsed,
                ),
                execution_time_ms=elapsed,
            )

        params = PreflightParams(
            user_id=user_id,
            messages=messages,
            last_message=last_message,
            ip=ip,
            user_agent=user_agent,
            conversation_context=options.conversation_context,
            logger=log,
        )

        run_all = (
            options.run_all_checks
            if options.run_all_checks is not None
            else self.defaults.run_all_checks
        )
        include_all = (
            options.include_all_results
            if options.include_all_results is not None
            else self.defaults.include_all_results
        )
        tiers: Sequence[int] = sorted(set(options.tiers or self.defaults.tiers))

        log.info(f"Starting preflight checks (user={user_id}, ip={ip}, tiers={list(tiers)})")

        records: List[CheckRunRecord] = []
        for tier in tiers:
            checks = [
                c for c in self.registry.get_by_tier(tier)
                if self._is_enabled(c, options.checks)
            ]
            if not checks:
                log.debug(f"No checks to run for tier {tier}")
                continue

            first_failure: Optional[CheckRunRecord] = None
            for check in checks:
                record = await self._run_check(check, params, options, log)
                records.append(record)

                if record.result.passed:
                    continue

                await self._record_warning(ip, record.result, options, log)
                if first_failure is None:
                    first_failure = record
                if not run_all:
                    break

            if first_failure is not None:
                elapsed = _elapsed_ms(start)
                log.info(
                    f"Preflight checks failed at tier {tier}: "
                    f"{first_failure.check_name} ({first_failure.result.code}, {elapsed}ms)"
                )
                return PreflightResult(
                    passed=False,
                    failed_check=first_failure.check_name,
                    result=first_failure.result,
                    check_results=records if (include_all or run_all) else None,
                    execution_time_ms=elapsed,
                )

        elapsed = _elapsed_ms(start)
        log.info(f"All preflight checks passed (user={user_id}, {elapsed}ms)")
        return PreflightResult(
            passed=True,
            check_results=records if include_all else None,
            execution_time_ms=elapsed,
        )
