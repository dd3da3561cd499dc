"""
TCG Appraiser — Reasoning service

The reasoning adapter depends only on the ReasoningService protocol: send
a system prompt and a user prompt, get text back. AnthropicReasoningService
is the production implementation on the Anthropic Messages API.
"""

from __future__ import annotations

from typing import Optional, Protocol

import anthropic
import structlog

from appraiser.config import settings
from appraiser.errors import ReasoningError

logger = structlog.get_logger(__name__)


class ReasoningService(Protocol):
    async def invoke(self, system: str, prompt: str) -> str:
        ...


class AnthropicReasoningService:
    """
    Usage:
        service = AnthropicReasoningService()
        text = await service.invoke(system_prompt, user_prompt)
    """

    def __init__(
        self,
        client: Optional[anthropic.AsyncAnthropic] = None,
        model_id: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> None:
        self._client = client
        self._model_id = model_id or settings.REASONING_MODEL_ID
        self._max_tokens = max_tokens or settings.REASONING_MAX_TOKENS
        self._temperature = settings.REASONING_TEMPERATURE if temperature is None else temperature

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            if not settings.ANTHROPIC_API_KEY:
                raise ReasoningError("ANTHROPIC_API_KEY is not configured")
            # The adapter enforces the call deadline; no SDK-level retries.
            self._client = anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY, max_retries=0)
        return self._client

    async def invoke(self, system: str, prompt: str) -> str:
        client = self._get_client()
        try:
            response = await client.messages.create(
                model=self._model_id,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise ReasoningError(f"Reasoning call failed: {e}", model=self._model_id) from e

        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        if not text.strip():
            raise ReasoningError("Reasoning response contained no text", model=self._model_id)

        logger.debug(
            "reasoning_invoke_complete",
            model=self._model_id,
            input_tokens=getattr(response.usage, "input_tokens", None),
            output_tokens=getattr(response.usage, "output_tokens", None),
        )
        return text
