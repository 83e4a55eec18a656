"""Input length check."""

from chatguard.preflight.check import CheckConfig, PreflightCheck
from chatguard.preflight.types import CheckResult, PreflightParams, Severity


class InputLengthConfig(CheckConfig):
    min_length: int = 4
    max_length: int = 1000


class InputLengthCheck(PreflightCheck):
    """Rejects inputs shorter than min_length (trimmed) or longer than max_length (raw)."""

    name = "input_length"
    tier = 1
    description = "Checks if the input meets the length requirements"
    config_model = InputLengthConfig

    async def evaluate(self, params: PreflightParams) -> CheckResult:
        config: InputLengthConfig = params.check_config or self.config_model()
        text = params.last_message or ""

        params.logger.debug(
            f"Running input length check (min={config.min_length}, "
            f"max={config.max_length}, length={len(text)})"
        )

        if len(text.strip()) < config.min_length:
            return CheckResult(
                passed=False,
                code="input_too_short",
                message="Input is too short",
                severity=Severity.INFO,
                details={"minLength": config.min_length, "actualLength": len(text)},
            )

        if len(text) > config.max_length:
            return CheckResult(
                passed=False,
                code="input_too_long",
                message="Input exceeds maximum length",
                severity=Severity.INFO,
                details={"maxLength": config.max_length, "actualLength": len(text)},
            )

        return CheckResult(
            passed=True,
            code="input_length_valid",
            message="Input length is valid",
        )
