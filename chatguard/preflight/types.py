"""
Core types for the preflight pipeline.

Defines the enums and dataclasses passed between the orchestrator,
the checks and the presentation layer.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class Severity(str, Enum):
    """How serious a check outcome is."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Message:
    """One chat message."""

    role: str  # user | assistant | system
    content: str


@dataclass
class ConversationContext:
    """What the conversation is about. Used for relevance scoring."""

    system_prompt: Optional[str] = None
    purpose: Optional[str] = None
    app_name: Optional[str] = None


@dataclass
class CheckResult:
    """Result returned by a check."""

    passed: bool
    code: str
    message: str
    severity: Severity = Severity.INFO
    details: Optional[Dict[str, Any]] = None  # camelCase keys, rendered by the display layer
    execution_time_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "passed": self.passed,
            "code": self.code,
            "message": self.message,
            "severity": Severity(self.severity).value,
        }
        if self.details is not None:
            data["details"] = self.details
        if self.execution_time_ms is not None:
            data["execution_time_ms"] = self.execution_time_ms
        return data


@dataclass
class CheckRunRecord:
    """One check's outcome inside a preflight run."""

    check_name: str
    result: CheckResult
    execution_time_ms: float


@dataclass
class PreflightParams:
    """Input handed to every check. Built fresh for each run."""

    user_id: str
    messages: List[Message]
    last_message: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    check_config: Any = None  # the check's resolved CheckConfig instance
    conversation_context: Optional[ConversationContext] = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("chatguard.preflight"))


@dataclass
class PreflightOptions:
    """Per-call overrides. None fields fall back to the configured defaults."""

    tiers: Optional[List[int]] = None
    checks: Optional[Dict[str, bool]] = None
    check_config: Optional[Dict[str, Dict[str, Any]]] = None
    run_all_checks: Optional[bool] = None
    include_all_results: Optional[bool] = None
    conversation_context: Optional[ConversationContext] = None
    logger: Optional[logging.Logger] = None
    warning_codes: Optional[List[str]] = None


@dataclass
class PreflightResult:
    """Outcome of a full preflight run."""

    passed: bool
    failed_check: Optional[str] = None
    result: Optional[CheckResult] = None
    check_results: Optional[List[CheckRunRecord]] = None
    execution_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "passed": self.passed,
            "failed_check": self.failed_check,
            "result": self.result.to_dict() if self.result else None,
            "execution_time_ms": self.execution_time_ms,
        }
        if self.check_results is not None:
            data["check_results"] = [
                {
                    "check_name": record.check_name,
                    "result": record.result.to_dict(),
                    "execution_time_ms": record.execution_time_ms,
                }
                for record in self.check_results
            ]
        return data


ChatInput = Union[str, List[Message], List[Dict[str, Any]]]
