"""
Content moderation check.

Sends the input to an external moderation model. Flagged categories
matching a strict prefix always block; configurable categories block only
at or above the score threshold.
"""

from typing import List, Optional

from pydantic import Field

from chatguard.llm.moderation import ModerationClient
from chatguard.preflight.check import CheckConfig, PreflightCheck
from chatguard.preflight.types import CheckResult, PreflightParams, Severity


class ModerationConfig(CheckConfig):
    model: Optional[str] = None  # None uses the client's model
    strict_categories: List[str] = Field(
        default_factory=lambda: ["sexual", "hate", "violence", "self-harm", "harassment"]
    )
    configurable_categories: List[str] = Field(
        default_factory=lambda: [
            "sexual/minors",
            "hate/threatening",
            "violence/graphic",
            "self-harm/intent",
            "harassment/threatening",
        ]
    )
    threshold: float = Field(default=0.8, ge=0.0, le=1.0)


class ContentModerationCheck(PreflightCheck):
    name = "content_moderation"
    tier = 2
    description = "Checks content for policy violations using a moderation model"
    config_model = ModerationConfig

    def __init__(self, client: ModerationClient):
        self.client = client

    async def evaluate(self, params: PreflightParams) -> CheckResult:
        config: ModerationConfig = params.check_config or self.config_model()
        text = params.last_message
        log = params.logger

        if not text or not text.strip():
            return CheckResult(
                passed=True,
                code="moderation_skipped",
                message="No content to moderate",
            )

        client = self.client
        if config.model and config.model != client.model:
            client = ModerationClient(model=config.model, timeout=client.timeout)

        outcome = await client.moderate(text)
        if outcome is None:
            log.warning("Content moderation: no results returned, allowing request")
            return CheckResult(
                passed=True,
                code="moderation_no_results",
                message="Unable to verify content safety",
                severity=Severity.ERROR,
            )

        if outcome.flagged:
            flagged = [c for c, hit in outcome.categories.items() if hit]

            strict = [
                c for c in flagged
                if any(c.startswith(prefix) for prefix in config.strict_categories)
            ]
            over_threshold = [
                c for c in flagged
                if c in config.configurable_categories
                and outcome.scores.get(c, 0.0) >= config.threshold
            ]
            violations = list(dict.fromkeys(strict + over_threshold))

            if violations:
                log.warning(
                    f"Content moderation: content flagged for {', '.join(violations)}"
                )
                return CheckResult(
                    passed=False,
                    code="moderation_flagged",
                    message="Content violates usage policies",
                    severity=Severity.ERROR,
                    details={
                        "flaggedCategories": violations,
                        "scores": {c: outcome.scores.get(c, 0.0) for c in flagged},
                    },
                )

            log.info(
                f"Content moderation: flagged {flagged} but below configured thresholds"
            )

        return CheckResult(
            passed=True,
            code="moderation_passed",
            message="Content passed moderation",
        )
