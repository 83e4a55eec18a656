"""
User-facing error presentation.

Maps a failed CheckResult to a title, description and severity for the
chat UI, and to the JSON payload returned by API routes.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from chatguard.preflight.types import CheckResult, Severity


@dataclass
class ErrorAction:
    label: str
    href: str


@dataclass
class ErrorDisplay:
    title: str
    description: str
    severity: str = "error"
    action: Optional[ErrorAction] = None


DisplayFactory = Callable[[CheckResult], ErrorDisplay]


def _detail(result: CheckResult, key: str, fallback: Any) -> Any:
    value = (result.details or {}).get(key)
    return value if value else fallback


def _busy(result: CheckResult) -> ErrorDisplay:
    return ErrorDisplay(
        title="Service is busy",
        description="Our AI service is experiencing high demand. Please try again in a few minutes.",
        severity="warning",
    )


DEFAULT_ERROR_DISPLAYS: Dict[str, DisplayFactory] = {
    # Rate limits
    "rate_limit_global": _busy,
    "rate_limit_global_hourly": _busy,
    "rate_limit_global_daily": lambda r: ErrorDisplay(
        title="Service is busy",
        description=(
            "Our AI service has reached its daily capacity. "
            f"Please try again in {_detail(r, 'timeRemaining', 'a few hours')}."
        ),
        severity="warning",
    ),
    "rate_limit_user": lambda r: ErrorDisplay(
        title="Usage limit reached",
        description=(
            "You've reached the maximum number of requests. "
            f"Please try again in {_detail(r, 'timeRemaining', 'a few minutes')}."
        ),
        severity="warning",
    ),
    "ip_rate_limit_exceeded": lambda r: ErrorDisplay(
        title="Too many requests",
        description=(
            "You're sending requests too quickly. "
            f"Please try again in {_detail(r, 'timeRemaining', 'a few')} minutes."
        ),
        severity="warning",
    ),
    "ip_in_timeout": lambda r: ErrorDisplay(
        title="Temporarily restricted",
        description=(
            "Too many of your recent messages were flagged. "
            f"Please try again in {_detail(r, 'timeRemaining', 'a few')} minutes."
        ),
        severity="error",
    ),
    "ip_denied": lambda r: ErrorDisplay(
        title="Access denied",
        description="Requests from your network are not accepted.",
        severity="error",
    ),
    # Content
    "moderation_flagged": lambda r: ErrorDisplay(
        title="Content policy violation",
        description="Your message contains content that violates our usage policies.",
        severity="error",
    ),
    "blacklisted_keywords": lambda r: ErrorDisplay(
        title="Prohibited content",
        description="Your message contains terms that are not allowed on our platform.",
        severity="error",
    ),
    "jailbreak_attempt": lambda r: ErrorDisplay(
        title="Request not allowed",
        description="Your message appears to be trying to bypass the assistant's guidelines.",
        severity="error",
    ),
    "ethical_concerns": lambda r: ErrorDisplay(
        title="Request not allowed",
        description="Your message raises ethical concerns and cannot be processed.",
        severity="error",
    ),
    "content_unsafe": lambda r: ErrorDisplay(
        title="Content policy violation",
        description="Your message could not be processed safely.",
        severity="error",
    ),
    "extremely_negative": lambda r: ErrorDisplay(
        title="Negative content detected",
        description="Please rephrase your message with a more neutral or positive tone.",
        severity="warning",
    ),
    "potential_xss": lambda r: ErrorDisplay(
        title="Unsafe input",
        description="Your message contains markup or script content that is not allowed.",
        severity="error",
    ),
    "potential_sqli": lambda r: ErrorDisplay(
        title="Unsafe input",
        description="Your message contains patterns that are not allowed.",
        severity="error",
    ),
    # Input
    "input_too_short": lambda r: ErrorDisplay(
        title="Message too short",
        description="Please provide a more detailed message for the AI to process.",
        severity="info",
    ),
    "input_too_long": lambda r: ErrorDisplay(
        title="Message too long",
        description=(
            f"Your message exceeds the {_detail(r, 'maxLength', 'maximum')} "
            "character limit. Please shorten it."
        ),
        severity="info",
    ),
    "non_english_input": lambda r: ErrorDisplay(
        title="Language not supported",
        description="Currently, only English language is supported.",
        severity="info",
    ),
    "not_relevant": lambda r: ErrorDisplay(
        title="Context switch detected",
        description="Your message seems unrelated to the previous conversation.",
        severity="info",
        action=ErrorAction(label="Start a new chat", href="/"),
    ),
    # Fallback
    "default": lambda r: ErrorDisplay(
        title="Request cannot be processed",
        description=r.message or "Something went wrong. Please try again later.",
        severity="error",
    ),
}


class _KeepMissing(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def display_from_template(title: str, description: str, severity: str = "error") -> DisplayFactory:
    """
    Build a factory from text templates.

    ``{name}`` placeholders are filled from the result's details; unknown
    placeholders are left as-is.
    """

    def factory(result: CheckResult) -> ErrorDisplay:
        values = _KeepMissing(result.details or {})
        return ErrorDisplay(
            title=title.format_map(values),
            description=description.format_map(values),
            severity=severity,
        )

    return factory


class ErrorDisplayMapper:
    """
    Resolves the display for a failed check.

    Usage:
        mapper = ErrorDisplayMapper({"rate_limit_user": my_factory})
        payload = mapper.handle_preflight_error(result.result)
    """

    def __init__(self, custom: Optional[Mapping[str, DisplayFactory]] = None):
        self.displays: Dict[str, DisplayFactory] = {**DEFAULT_ERROR_DISPLAYS, **(custom or {})}
        if "default" not in self.displays:
            raise ValueError("Error displays must include a 'default' entry")

    @classmethod
    def from_settings(cls, display: Mapping[str, Any]) -> "ErrorDisplayMapper":
        """Build from the settings ``display`` section (DisplayEntry values)."""
        custom = {
            code: display_from_template(entry.title, entry.description, entry.severity)
            for code, entry in display.items()
        }
        return cls(custom)

    def get_display(self, result: CheckResult) -> ErrorDisplay:
        factory = self.displays.get(result.code) or self.displays["default"]
        return factory(result)

    def handle_preflight_error(self, result: CheckResult) -> Dict[str, Any]:
        """API error payload for a failed check."""
        display = self.get_display(result)
        payload = {
            "error": display.title,
            "message": display.description,
            "code": result.code,
            "details": result.details,
            "severity": Severity(display.severity).value,
        }
        if display.action is not None:
            payload["action"] = {"label": display.action.label, "href": display.action.href}
        return payload
