"""
Base class for preflight checks.

All checks inherit from PreflightCheck and implement evaluate().
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from chatguard.preflight.policy import FAILURE_POLICIES, FailureMode
from chatguard.preflight.types import CheckResult, PreflightParams


class CheckConfig(BaseModel):
    """
    Base for per-check options.

    Options are accepted under their snake_case field name or the camelCase
    alias callers use (``max_length`` / ``maxLength``). Unknown options are
    rejected.
    """

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        frozen=True,
        alias_generator=to_camel,
    )


class PreflightCheck(ABC):
    """
    Base class for all preflight checks.

    A check has:
    - name: Unique identifier, also the key for config and failure policy
    - tier: 1 (cheap, local) to 4 (expensive, LLM)
    - config_model: CheckConfig subclass holding its options and defaults

    Example:
        class InputLengthCheck(PreflightCheck):
            name = "input_length"
            tier = 1
            config_model = InputLengthConfig

            async def evaluate(self, params):
                ...
    """

    name: str = ""
    tier: int = 1
    description: str = ""
    enabled: bool = True
    configurable: bool = True
    config_model: Type[CheckConfig] = CheckConfig

    @property
    def default_config(self) -> Dict[str, Any]:
        """Default options keyed by their camelCase names."""
        return self.config_model().model_dump(by_alias=True)

    def build_config(self, *overrides: Optional[Dict[str, Any]]) -> CheckConfig:
        """
        Merge option overrides over the defaults, later overrides winning.

        Raises:
            pydantic.ValidationError: On unknown options or wrong types
        """
        # alias or field name -> field name, so snake and camel keys merge
        names = {}
        for field_name, info in self.config_model.model_fields.items():
            names[field_name] = field_name
            if info.alias:
                names[info.alias] = field_name

        merged: Dict[str, Any] = {}
        for override in overrides:
            if not override:
                continue
            for key, value in override.items():
                merged[names.get(key, key)] = value

        return self.config_model.model_validate(merged)

    async def run(self, params: PreflightParams) -> CheckResult:
        """
        Evaluate the check, resolving internal errors by its failure policy.

        Checks without a failure policy let exceptions propagate.
        """
        policy = FAILURE_POLICIES.get(self.name)
        if policy is None:
            return await self.evaluate(params)

        try:
            return await self.evaluate(params)
        except Exception as e:
            params.logger.error(
                f"Check '{self.name}' failed ({policy.mode.value}): {e}",
                exc_info=True,
            )
            return CheckResult(
                passed=policy.mode is FailureMode.FAIL_OPEN,
                code=policy.error_code,
                message=policy.message,
                severity=policy.severity,
                details={"error": str(e)},
            )

    @abstractmethod
    async def evaluate(self, params: PreflightParams) -> CheckResult:
        """
        Run the check against params.last_message.

        params.check_config holds this check's resolved config_model instance.
        """
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, tier={self.tier})"
