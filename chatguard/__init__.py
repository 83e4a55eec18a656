"""
chatguard - Preflight content-safety checks for chat completions.

Validates a user's chat input through a tiered chain of checks before it
reaches a generative model, and escalates repeat offenders from warnings
to timeouts to an IP deny list.

Quick Start:
    ```python
    from chatguard import GuardSettings, PreflightService

    service = PreflightService.from_settings(GuardSettings())
    result = await service.run_preflight_checks(
        user_id="user-123",
        chat_input=[{"role": "user", "content": "Explain how DNS works"}],
        ip="203.0.113.7",
    )
    if not result.passed:
        payload = service.display.handle_preflight_error(result.result)
    ```

    Or from the command line:
    ```bash
    chatguard check "Explain how DNS works" --tier 1
    ```
"""

__version__ = "0.1.0"

from chatguard.config.settings import GuardSettings

from chatguard.preflight import (
    CheckRegistry,
    CheckResult,
    ConversationContext,
    ErrorDisplayMapper,
    Message,
    PreflightCheck,
    PreflightOptions,
    PreflightOrchestrator,
    PreflightResult,
    Severity,
)

from chatguard.service import PreflightService, extract_client_info

__all__ = [
    # Version
    "__version__",
    # Configuration
    "GuardSettings",
    # Service
    "PreflightService",
    "extract_client_info",
    # Preflight
    "CheckRegistry",
    "CheckResult",
    "ConversationContext",
    "ErrorDisplayMapper",
    "Message",
    "PreflightCheck",
    "PreflightOptions",
    "PreflightOrchestrator",
    "PreflightResult",
    "Severity",
]
