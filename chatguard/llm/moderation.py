"""
Moderation client.

Calls an external moderation endpoint through litellm.amoderation and
normalizes the first result into a ModerationOutcome.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from chatguard.llm.client import LLMClientError

logger = logging.getLogger(__name__)


@dataclass
class ModerationOutcome:
    """Normalized moderation verdict for one input."""

    flagged: bool
    categories: Dict[str, bool] = field(default_factory=dict)
    scores: Dict[str, float] = field(default_factory=dict)


class ModerationClient:
    """
    Async wrapper around litellm.amoderation.

    Example:
        client = ModerationClient()
        outcome = await client.moderate("some user text")
        if outcome and outcome.flagged:
            ...
    """

    def __init__(self, model: str = "omni-moderation-latest", timeout: float = 10.0):
        self.model = model
        self.timeout = timeout

    async def moderate(self, text: str) -> Optional[ModerationOutcome]:
        """
        Moderate text.

        Returns:
            The outcome for the first result, or None if the provider
            returned no results

        Raises:
            LLMClientError: If the call fails
        """
        import litellm

        try:
            response = await litellm.amoderation(
                input=text, model=self.model, timeout=self.timeout
            )
        except Exception as e:
            raise LLMClientError(f"Moderation call failed: {e}") from e

        results = _get(response, "results") or []
        if not results:
            logger.warning("Moderation returned no results")
            return None

        first = results[0]
        return ModerationOutcome(
            flagged=bool(_get(first, "flagged")),
            categories={k: bool(v) for k, v in _as_dict(_get(first, "categories")).items()},
            scores={
                k: float(v)
                for k, v in _as_dict(_get(first, "category_scores")).items()
                if v is not None
            },
        )


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _as_dict(value: Any) -> Dict[str, Any]:
    """Convert a pydantic model or mapping of category values to a dict.

    Category names such as ``self-harm/intent`` are field aliases on the
    provider's models, so models are dumped by alias.
    """
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    if hasattr(value, "model_dump"):
        return value.model_dump(by_alias=True)
    return dict(value)
