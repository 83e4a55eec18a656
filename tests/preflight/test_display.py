import pytest

from chatguard.config.settings import DisplayEntry
from chatguard.preflight.display import (
    DEFAULT_ERROR_DISPLAYS,
    ErrorDisplay,
    ErrorDisplayMapper,
    display_from_template,
)
from chatguard.preflight.types import CheckResult, Severity


def failed(code, details=None, message="blocked"):
    return CheckResult(passed=False, code=code, message=message, severity=Severity.ERROR, details=details)


class TestDefaultDisplays:

    @pytest.mark.parametrize(
        "code",
        [
            "rate_limit_global_hourly",
            "rate_limit_global_daily",
            "rate_limit_user",
            "ip_rate_limit_exceeded",
            "ip_in_timeout",
            "ip_denied",
            "moderation_flagged",
            "blacklisted_keywords",
            "jailbreak_attempt",
            "ethical_concerns",
            "content_unsafe",
            "extremely_negative",
            "potential_xss",
            "potential_sqli",
            "input_too_short",
            "input_too_long",
            "non_english_input",
            "not_relevant",
        ],
    )
    def test_failure_codes_have_displays(self, code):
        assert code in DEFAULT_ERROR_DISPLAYS

    def test_time_remaining_interpolated(self):
        display = ErrorDisplayMapper().get_display(
            failed("rate_limit_user", {"timeRemaining": "12 minutes"})
        )
        assert display.title == "Usage limit reached"
        assert "12 minutes" in display.description
        assert display.severity == "warning"

    def test_missing_detail_uses_fallback(self):
        display = ErrorDisplayMapper().get_display(failed("ip_in_timeout"))
        assert "a few minutes" in display.description

    def test_input_too_long_uses_max_length(self):
        display = ErrorDisplayMapper().get_display(failed("input_too_long", {"maxLength": 500}))
        assert "500 character limit" in display.description

    def test_unknown_code_falls_back_to_default(self):
        display = ErrorDisplayMapper().get_display(failed("check_error", message="Error in x"))

        assert display.title == "Request cannot be processed"
        assert display.description == "Error in x"


class TestErrorDisplayMapper:

    def test_custom_display_overrides_default(self):
        mapper = ErrorDisplayMapper(
            {"blacklisted_keywords": lambda r: ErrorDisplay("Nope", "Not here.", "warning")}
        )
        assert mapper.get_display(failed("blacklisted_keywords")).title == "Nope"

    def test_handle_preflight_error_payload(self):
        result = failed("input_too_short", {"minLength": 4, "actualLength": 2})

        payload = ErrorDisplayMapper().handle_preflight_error(result)

        assert payload == {
            "error": "Message too short",
            "message": "Please provide a more detailed message for the AI to process.",
            "code": "input_too_short",
            "details": {"minLength": 4, "actualLength": 2},
            "severity": "info",
        }

    def test_action_included_when_set(self):
        payload = ErrorDisplayMapper().handle_preflight_error(failed("not_relevant"))

        assert payload["action"] == {"label": "Start a new chat", "href": "/"}

    def test_unemitted_codes_have_no_entry(self):
        assert "negative_sentiment" not in DEFAULT_ERROR_DISPLAYS
        assert "repetitive_input" not in DEFAULT_ERROR_DISPLAYS

    def test_from_settings(self):
        mapper = ErrorDisplayMapper.from_settings(
            {
                "rate_limit_user": DisplayEntry(
                    title="Slow down",
                    description="Try again in {timeRemaining}. Limit {limit}/{window}.",
                    severity="warning",
                )
            }
        )

        display = mapper.get_display(
            failed("rate_limit_user", {"timeRemaining": "3 minutes", "limit": 20})
        )

        assert display.title == "Slow down"
        assert display.description == "Try again in 3 minutes. Limit 20/{window}."
        assert display.severity == "warning"

    def test_default_entry_can_be_replaced(self):
        mapper = ErrorDisplayMapper({"default": display_from_template("Oops", "Try later")})
        assert mapper.get_display(failed("whatever")).title == "Oops"
