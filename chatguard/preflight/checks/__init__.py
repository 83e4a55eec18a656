"""
Built-in preflight checks.

build_default_checks() returns them in registration order, which is the
execution order within each tier.
"""

import time
from typing import Callable, List, Optional

from chatguard.abuse.mitigation import AbuseMitigation
from chatguard.llm.client import LLMClient
from chatguard.llm.moderation import ModerationClient
from chatguard.preflight.check import PreflightCheck
from chatguard.preflight.checks.blacklist_keywords import BlacklistKeywordsCheck
from chatguard.preflight.checks.content_analysis import ContentAnalysisCheck
from chatguard.preflight.checks.content_moderation import ContentModerationCheck
from chatguard.preflight.checks.input_length import InputLengthCheck
from chatguard.preflight.checks.input_sanitization import InputSanitizationCheck
from chatguard.preflight.checks.language import LanguageCheck
from chatguard.preflight.checks.rate_limit import (
    GlobalRateLimitCheck,
    IpRateLimitCheck,
    UserRateLimitCheck,
)
from chatguard.store.base import CounterStore

__all__ = [
    "BlacklistKeywordsCheck",
    "ContentAnalysisCheck",
    "ContentModerationCheck",
    "GlobalRateLimitCheck",
    "InputLengthCheck",
    "InputSanitizationCheck",
    "IpRateLimitCheck",
    "LanguageCheck",
    "UserRateLimitCheck",
    "build_default_checks",
]


def build_default_checks(
    store: CounterStore,
    mitigation: AbuseMitigation,
    llm_client: LLMClient,
    moderation_client: ModerationClient,
    profanity_detector: Optional[Callable[[str], bool]] = None,
    language_detector: Optional[Callable] = None,
    clock: Callable[[], float] = time.time,
) -> List[PreflightCheck]:
    """Instantiate the built-in checks with their collaborators."""
    return [
        IpRateLimitCheck(store, mitigation, clock=clock),
        InputLengthCheck(),
        InputSanitizationCheck(),
        BlacklistKeywordsCheck(profanity_detector=profanity_detector),
        LanguageCheck(detector=language_detector),
        ContentModerationCheck(moderation_client),
        GlobalRateLimitCheck(store, clock=clock),
        UserRateLimitCheck(store, clock=clock),
        ContentAnalysisCheck(llm_client),
    ]
