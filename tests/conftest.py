"""Pytest fixtures for chatguard tests."""

import logging
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatguard.abuse.mitigation import AbuseMitigator
from chatguard.config.settings import AbuseConfig
from chatguard.preflight.check import CheckConfig, PreflightCheck
from chatguard.preflight.types import CheckResult, PreflightParams, Severity
from chatguard.store.memory import InMemoryCounterStore

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock in epoch seconds."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCheck(PreflightCheck):
    """Check returning a fixed result and counting its calls."""

    config_model = CheckConfig

    def __init__(
        self,
        name: str,
        tier: int = 1,
        passed: bool = True,
        code: Optional[str] = None,
        severity: Severity = Severity.INFO,
        raises: Optional[Exception] = None,
        enabled: bool = True,
    ):
        self.name = name
        self.tier = tier
        self.enabled = enabled
        self.description = f"fake {name}"
        self._passed = passed
        self._code = code or (f"{name}_passed" if passed else f"{name}_failed")
        self._severity = severity
        self._raises = raises
        self.call_count = 0
        self.last_params: Optional[PreflightParams] = None

    async def evaluate(self, params: PreflightParams) -> CheckResult:
        self.call_count += 1
        self.last_params = params
        if self._raises is not None:
            raise self._raises
        return CheckResult(
            passed=self._passed,
            code=self._code,
            message="ok" if self._passed else "blocked",
            severity=self._severity,
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def abuse_config() -> AbuseConfig:
    return AbuseConfig()


@pytest.fixture
def mitigator(store, abuse_config, clock) -> AbuseMitigator:
    return AbuseMitigator(store, abuse_config, clock=clock)


@pytest.fixture
def mock_mitigation():
    """AbuseMitigation double with no timeouts and no denied IPs."""
    mitigation = MagicMock()
    mitigation.increment_warning_count = AsyncMock(return_value=1)
    mitigation.put_ip_in_timeout = AsyncMock()
    mitigation.get_timeout = AsyncMock(return_value=None)
    mitigation.warnings_used = AsyncMock(return_value=0)
    mitigation.is_ip_denied = AsyncMock(return_value=False)
    return mitigation


@pytest.fixture
def make_params():
    """Build PreflightParams for a single user message."""

    def _make(
        text: str,
        check_config=None,
        user_id: str = "user-1",
        ip: Optional[str] = "203.0.113.7",
        conversation_context=None,
    ) -> PreflightParams:
        from chatguard.preflight.types import Message

        return PreflightParams(
            user_id=user_id,
            messages=[Message(role="user", content=text)],
            last_message=text,
            ip=ip,
            check_config=check_config,
            conversation_context=conversation_context,
            logger=logging.getLogger("chatguard.tests"),
        )

    return _make


@pytest.fixture
def fake_check():
    """The FakeCheck class, for building checks inline."""
    return FakeCheck
