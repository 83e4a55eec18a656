"""
Blacklisted keywords check.

Two passes over the input:
1. Profanity dictionary (better_profanity) and jailbreak phrases on word boundaries
2. Phrases matched as substrings of the normalized input (lowercased,
   whitespace, underscores, hyphens, dots and commas removed), which catches
   spaced-out or punctuated variants like "j.a.i.l-break"

The matched term is logged but never returned to the caller.
"""

import re
from typing import Callable, List, Optional, Pattern

from pydantic import Field

from chatguard.preflight.check import CheckConfig, PreflightCheck
from chatguard.preflight.types import CheckResult, PreflightParams, Severity

JAILBREAK_PHRASES: List[str] = [
    "system prompt",
    "prompt injection",
    "ignore previous instructions",
    "ignore all instructions",
    "disregard previous",
    "your real instructions",
    "your actual instructions",
    "your true instructions",
    "bypass",
    "jailbreak",
    "ignore all previous",
    "developer mode",
    "unrestricted assistant",
    "jailbreak mode",
    "do anything now",
    "forget all restrictions",
    "roleplay as",
    "DAN mode",
    "data analysis mode",
    "super user mode",
    "sudo mode",
    "override security",
    "unlimited mode",
    "confidential mode",
    "be free to",
    "admin mode",
    "secret mode",
    "you are now free",
    "you can do anything",
    "no ethical constraints",
    "no moral constraints",
    "pretend to be",
    "act as if",
    "ignore your programming",
    "ignore your training",
    "ignore your guidelines",
    "ignore previous prompt",
    "you are an AI that",
    "your knowledge cutoff",
    "simulate a different AI",
    "you are a different AI",
    "you are no longer",
    "break character",
    "ignore safety",
    "ignore content policy",
    "ignore security measures",
    "escape your restrictions",
    "escape your constraints",
    "override ethics",
]

_SEPARATORS = re.compile(r"[\s_\-.,]+")

# Shorter normalized terms would substring-match ordinary words
MIN_NORMALIZED_TERM = 3


def normalize(text: str) -> str:
    return _SEPARATORS.sub("", text.lower())


def _default_profanity_detector(text: str) -> bool:
    # better_profanity loads its word list on first use
    from better_profanity import profanity

    return profanity.contains_profanity(text)


class BlacklistConfig(CheckConfig):
    additional_terms: List[str] = Field(default_factory=list)
    check_profanity: bool = True


class BlacklistKeywordsCheck(PreflightCheck):
    """
    Blocks profanity and known jailbreak phrasing.

    Args:
        profanity_detector: Callable returning True when text is profane.
            Defaults to better_profanity.
    """

    name = "blacklist_keywords"
    tier = 1
    description = "Checks for blacklisted or prohibited keywords in the input"
    config_model = BlacklistConfig

    def __init__(self, profanity_detector: Optional[Callable[[str], bool]] = None):
        self._profanity_detector = profanity_detector or _default_profanity_detector

    @staticmethod
    def _phrase_pattern(terms: List[str]) -> Optional[Pattern[str]]:
        if not terms:
            return None
        alternation = "|".join(re.escape(t) for t in terms)
        return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)

    async def evaluate(self, params: PreflightParams) -> CheckResult:
        config: BlacklistConfig = params.check_config or self.config_model()
        text = params.last_message

        if not text or not text.strip():
            return CheckResult(
                passed=True,
                code="blacklist_check_skipped",
                message="No content to check",
            )

        terms = JAILBREAK_PHRASES + [t for t in config.additional_terms if t.strip()]

        if config.check_profanity and self._profanity_detector(text):
            params.logger.warning("Blacklisted keywords check: profanity detected")
            return self._blocked("Profanity or blacklisted keywords detected")

        pattern = self._phrase_pattern(terms)
        match = pattern.search(text) if pattern else None
        if match:
            params.logger.warning(
                f"Blacklisted keywords check: phrase match {match.group(0)!r}"
            )
            return self._blocked("Profanity or blacklisted keywords detected")

        normalized = normalize(text)
        for term in terms:
            normalized_term = normalize(term)
            if len(normalized_term) >= MIN_NORMALIZED_TERM and normalized_term in normalized:
                params.logger.warning(
                    f"Blacklisted keywords check: partial match for {term!r}"
                )
                return self._blocked("Prohibited content pattern detected")

        return CheckResult(
            passed=True,
            code="blacklist_check_passed",
            message="No blacklisted keywords detected",
        )

    @staticmethod
    def _blocked(reason: str) -> CheckResult:
        return CheckResult(
            passed=False,
            code="blacklisted_keywords",
            message="Input contains prohibited words or phrases",
            severity=Severity.ERROR,
            details={"reason": reason},
        )
