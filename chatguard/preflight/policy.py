"""
Failure policy table.

Decides what a check's result is when the check itself breaks (store down,
moderation API unreachable, malformed LLM output). Checks listed here are
resolved by PreflightCheck.run(); anything else propagates to the
orchestrator and becomes a blocking ``check_error``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet

from chatguard.preflight.types import Severity


class FailureMode(Enum):
    """Outcome of a check that raised."""

    FAIL_OPEN = "fail_open"      # Let the request through
    FAIL_CLOSED = "fail_closed"  # Block the request


@dataclass(frozen=True)
class FailurePolicy:
    mode: FailureMode
    error_code: str
    message: str
    severity: Severity


FAILURE_POLICIES: Dict[str, FailurePolicy] = {
    "input_sanitization": FailurePolicy(
        FailureMode.FAIL_CLOSED,
        "sanitization_error",
        "Error during input sanitization",
        Severity.ERROR,
    ),
    "blacklist_keywords": FailurePolicy(
        FailureMode.FAIL_CLOSED,
        "blacklist_check_error",
        "Error checking for blacklisted content",
        Severity.ERROR,
    ),
    "language_check": FailurePolicy(
        FailureMode.FAIL_OPEN,
        "language_check_error",
        "Error checking input language",
        Severity.WARNING,
    ),
    "content_moderation": FailurePolicy(
        FailureMode.FAIL_OPEN,
        "moderation_error",
        "Error checking content moderation",
        Severity.ERROR,
    ),
    "ai_content_analysis": FailurePolicy(
        FailureMode.FAIL_OPEN,
        "content_analysis_error",
        "Error during content analysis",
        Severity.WARNING,
    ),
    "rate_limit_user": FailurePolicy(
        FailureMode.FAIL_OPEN,
        "rate_limit_user_error",
        "Error checking user rate limit",
        Severity.WARNING,
    ),
    "rate_limit_global": FailurePolicy(
        FailureMode.FAIL_OPEN,
        "rate_limit_error",
        "Error checking global rate limit",
        Severity.WARNING,
    ),
    "ip_rate_limit": FailurePolicy(
        FailureMode.FAIL_OPEN,
        "ip_rate_limit_error",
        "Error checking IP rate limit",
        Severity.WARNING,
    ),
}

# Failure codes that count as an abuse warning against the client IP
DEFAULT_WARNING_CODES: FrozenSet[str] = frozenset(
    {
        "blacklisted_keywords",
        "moderation_flagged",
        "ethical_concerns",
        "extremely_negative",
    }
)
