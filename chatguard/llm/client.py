"""
JSON completions for the AI content analysis check.

One litellm.acompletion call per analysis. Failures surface as
LLMClientError and are resolved by the check's failure policy; nothing
here retries.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


class LLMClientError(Exception):
    """The model call failed or did not return a JSON object."""


def parse_json_object(content: str) -> Dict[str, Any]:
    """Parse a JSON object, tolerating a surrounding markdown fence."""
    text = _FENCE.sub("", content.strip()).strip()
    if not text:
        raise LLMClientError("Empty response from LLM")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON from LLM: {e} (content: {text[:200]!r})")
        raise LLMClientError(f"Invalid JSON response: {e}") from e
    if not isinstance(data, dict):
        raise LLMClientError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def _message_text(response: Any) -> str:
    choices = getattr(response, "choices", None)
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    return (getattr(message, "content", None) or "") if message else ""


class LLMClient:
    """
    Async JSON-mode wrapper over litellm.

    Example:
        client = LLMClient(model="groq/llama-3.1-8b-instant")
        verdict = await client.complete_json(
            system_prompt="Return a JSON safety analysis",
            user_prompt="Analyze: Hello world",
        )
    """

    def __init__(
        self,
        model: str = "groq/llama-3.1-8b-instant",
        temperature: float = 0.0,
        max_tokens: int = 1024,
        timeout: float = 10.0,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Ask the model for a JSON object.

        Raises:
            LLMClientError: If the call fails or the reply is not a JSON object
        """
        import litellm

        extra: Dict[str, Any] = {"user": user_id} if user_id else {}
        try:
            response = await litellm.acompletion(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
                response_format={"type": "json_object"},
                num_retries=0,
                **extra,
            )
        except Exception as e:
            raise LLMClientError(f"LLM call to {self.model} failed: {e}") from e

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(f"{self.model} used {getattr(usage, 'total_tokens', '?')} tokens")

        return parse_json_object(_message_text(response))
