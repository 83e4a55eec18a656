"""
Input sanitization check.

Screens for script injection and SQL keyword patterns, plus any
caller-supplied regular expressions.
"""

import re
from typing import List

from pydantic import Field

from chatguard.preflight.check import CheckConfig, PreflightCheck
from chatguard.preflight.types import CheckResult, PreflightParams, Severity

XSS_PATTERN = re.compile(r"<script|javascript:|onerror=|onclick=|onload=", re.IGNORECASE)
SQLI_PATTERN = re.compile(
    r"(\s|;)(select|insert|update|delete|drop|alter|create)\s", re.IGNORECASE
)


class InputSanitizationConfig(CheckConfig):
    check_xss: bool = Field(default=True, alias="checkXSS")
    check_sqli: bool = Field(default=True, alias="checkSQLi")
    additional_patterns: List[str] = Field(default_factory=list)


class InputSanitizationCheck(PreflightCheck):
    name = "input_sanitization"
    tier = 1
    description = "Checks input for potentially dangerous patterns"
    config_model = InputSanitizationConfig

    async def evaluate(self, params: PreflightParams) -> CheckResult:
        config: InputSanitizationConfig = params.check_config or self.config_model()
        text = params.last_message
        log = params.logger

        if not text or not text.strip():
            return CheckResult(
                passed=True,
                code="sanitization_skipped",
                message="No content to sanitize",
            )

        if config.check_xss and XSS_PATTERN.search(text):
            log.warning("Input sanitization: potential XSS detected")
            return CheckResult(
                passed=False,
                code="potential_xss",
                message="Input contains potentially unsafe script elements",
                severity=Severity.ERROR,
            )

        if config.check_sqli and SQLI_PATTERN.search(text):
            log.warning("Input sanitization: potential SQL injection pattern detected")
            return CheckResult(
                passed=False,
                code="potential_sqli",
                message="Input contains potentially unsafe SQL patterns",
                severity=Severity.ERROR,
            )

        for pattern in config.additional_patterns:
            try:
                compiled = re.compile(pattern)
            except re.error as e:
                log.error(f"Input sanitization: invalid regex pattern {pattern!r}: {e}")
                continue

            if compiled.search(text):
                log.warning(f"Input sanitization: custom pattern matched {pattern!r}")
                return CheckResult(
                    passed=False,
                    code="custom_pattern_matched",
                    message="Input matched a custom security pattern",
                    severity=Severity.ERROR,
                    details={"pattern": pattern},
                )

        return CheckResult(
            passed=True,
            code="sanitization_passed",
            message="Input appears safe",
        )
