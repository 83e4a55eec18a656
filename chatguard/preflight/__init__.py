"""
Preflight content-safety pipeline.

Tiered checks run against the last user message before it is sent to a
completion model:

    Tier 1: IP gate, length, sanitization, blacklist, language (local, cheap)
    Tier 2: content moderation (external API)
    Tier 3: global and per-user rate limits (counter store)
    Tier 4: AI content analysis (LLM call)
"""

from chatguard.preflight.check import CheckConfig, PreflightCheck
from chatguard.preflight.display import ErrorAction, ErrorDisplay, ErrorDisplayMapper
from chatguard.preflight.orchestrator import PreflightOrchestrator
from chatguard.preflight.policy import DEFAULT_WARNING_CODES, FAILURE_POLICIES, FailureMode
from chatguard.preflight.registry import CheckRegistry
from chatguard.preflight.types import (
    CheckResult,
    CheckRunRecord,
    ConversationContext,
    Message,
    PreflightOptions,
    PreflightParams,
    PreflightResult,
    Severity,
)

__all__ = [
    "CheckConfig",
    "CheckRegistry",
    "CheckResult",
    "CheckRunRecord",
    "ConversationContext",
    "DEFAULT_WARNING_CODES",
    "ErrorAction",
    "ErrorDisplay",
    "ErrorDisplayMapper",
    "FAILURE_POLICIES",
    "FailureMode",
    "Message",
    "PreflightCheck",
    "PreflightOptions",
    "PreflightOrchestrator",
    "PreflightParams",
    "PreflightResult",
    "Severity",
]
