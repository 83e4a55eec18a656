"""LLM and moderation clients."""

from chatguard.llm.client import LLMClient, LLMClientError
from chatguard.llm.moderation import ModerationClient, ModerationOutcome

__all__ = [
    "LLMClient",
    "LLMClientError",
    "ModerationClient",
    "ModerationOutcome",
]
