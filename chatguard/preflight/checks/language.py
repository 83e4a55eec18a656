"""
Language check.

Accepts English input. Short inputs, common imperative phrasing and code
snippets pass without detection. Otherwise the input passes when either
langdetect's top guess is an allowed language with enough confidence, or
enough of its words are in an English dictionary.
"""

import re
from functools import lru_cache
from typing import Callable, FrozenSet, List, Optional, Tuple

from pydantic import Field

from chatguard.preflight.check import CheckConfig, PreflightCheck
from chatguard.preflight.types import CheckResult, PreflightParams

COMMON_ENGLISH_PATTERNS = [
    re.compile(r"^(write|create|generate|explain|help|tell|show)", re.IGNORECASE),
    re.compile(r"\b(code|function|api|app|application|website|blog|article)\b", re.IGNORECASE),
    re.compile(r"\b(i need|i want|i would like|can you|please)\b", re.IGNORECASE),
    re.compile(r"\b(this is|that is|it is|what is|how to)\b", re.IGNORECASE),
]

CODE_PATTERNS = [
    re.compile(r"```[\s\S]*?```"),  # markdown code block
    re.compile(r"<[a-z]+[^>]*>[\s\S]*?</[a-z]+>"),  # html element
    re.compile(r"function\s+\w+\s*\([^)]*\)\s*{"),  # js function
    re.compile(r"\b(?:const|let|var)\s+\w+\s*="),  # js declaration
    re.compile(r"import\s+.*?from\s+['\"].*?['\"]"),  # js import
    re.compile(r"class\s+\w+(\s+extends\s+\w+)?(\s+implements\s+\w+)?\s*{"),
]

SHORT_INPUT_WORDS = 5

# (language code, probability), most likely first
Detection = List[Tuple[str, float]]


def _default_detector(text: str) -> Detection:
    from langdetect import DetectorFactory, detect_langs
    from langdetect.lang_detect_exception import LangDetectException

    # Deterministic results for the same input
    DetectorFactory.seed = 0
    try:
        return [(guess.lang, guess.prob) for guess in detect_langs(text)]
    except LangDetectException:
        # No detectable features (digits, punctuation only)
        return []


@lru_cache(maxsize=1)
def _default_vocabulary() -> FrozenSet[str]:
    from english_words import get_english_words_set

    return frozenset(get_english_words_set(["web2"], lower=True))


class LanguageConfig(CheckConfig):
    min_confidence: float = 0.5
    min_english_percentage: float = 30
    allow_code_snippets: bool = True
    additional_allowed_languages: List[str] = Field(default_factory=list)


class LanguageCheck(PreflightCheck):
    """
    Rejects input that is not in English.

    Args:
        detector: Returns ranked (language, probability) guesses. Defaults to langdetect.
        vocabulary: Set of lowercase English words. Defaults to the english-words web2 list.
    """

    name = "language_check"
    tier = 1
    description = "Checks if the input is in English language"
    config_model = LanguageConfig

    def __init__(
        self,
        detector: Optional[Callable[[str], Detection]] = None,
        vocabulary: Optional[FrozenSet[str]] = None,
    ):
        self._detector = detector or _default_detector
        self._vocabulary = vocabulary

    @property
    def vocabulary(self) -> FrozenSet[str]:
        if self._vocabulary is None:
            self._vocabulary = _default_vocabulary()
        return self._vocabulary

    async def evaluate(self, params: PreflightParams) -> CheckResult:
        config: LanguageConfig = params.check_config or self.config_model()
        text = params.last_message
        log = params.logger

        if not text or not text.strip():
            return CheckResult(
                passed=True,
                code="language_check_skipped",
                message="No content to check",
            )

        if any(p.search(text) for p in COMMON_ENGLISH_PATTERNS):
            log.debug("Language check: common English pattern detected")
            return CheckResult(
                passed=True,
                code="language_check_pattern_match",
                message="Common English pattern detected",
            )

        words = [w for w in text.lower().split() if len(w) > 1]
        if len(words) <= SHORT_INPUT_WORDS:
            return CheckResult(
                passed=True,
                code="language_check_short_input",
                message="Input too short for reliable language detection",
            )

        if config.allow_code_snippets and any(p.search(text) for p in CODE_PATTERNS):
            log.debug("Language check: code snippet detected")
            return CheckResult(
                passed=True,
                code="language_check_code_detected",
                message="Code snippet detected, skipping strict language check",
            )

        vocabulary = self.vocabulary
        english_count = sum(1 for w in words if w.strip(".,!?;:\"'()") in vocabulary)
        english_percentage = english_count / len(words) * 100

        guesses = self._detector(text)
        top_language, confidence = guesses[0] if guesses else ("unknown", 0.0)
        allowed = ["en"] + list(config.additional_allowed_languages)

        details = {
            "detectedLanguage": top_language,
            "confidence": confidence,
            "englishPercentage": round(english_percentage, 2),
        }
        log.debug(
            f"Language check: top={top_language} ({confidence:.2f}), "
            f"english={english_percentage:.1f}% of {len(words)} words"
        )

        if (
            top_language in allowed and confidence >= config.min_confidence
        ) or english_percentage >= config.min_english_percentage:
            return CheckResult(
                passed=True,
                code="language_check_passed",
                message="Input language is acceptable",
                details=details,
            )

        return CheckResult(
            passed=False,
            code="non_english_input",
            message="Input must be in English",
            details=details,
        )
