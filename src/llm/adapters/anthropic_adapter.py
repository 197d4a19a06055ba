# src/llm/adapters/anthropic_adapter.py — v2
"""Anthropic Claude adapter implementing BaseLLMClient.

Uses the official anthropic SDK. SDK errors are mapped onto the
provider-neutral RateLimited / GenerationFailed types so the retry policy
never has to know about the SDK.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import anthropic

from docbrief.llm.base_client import BaseLLMClient, GenerationFailed, RateLimited
from docbrief.llm.models import LLMResponse, Message

logger = logging.getLogger(__name__)


class AnthropicAdapter(BaseLLMClient):
    """Adapter for Anthropic Claude models."""

    def __init__(
        self,
        model: str = "claude-3-haiku-20240307",
        api_key: str | None = None,
        max_retries: int = 0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        # SDK-level retries are off; retry/backoff is owned by llm.retry.
        self._max_retries = max_retries
        self.__client: anthropic.AsyncAnthropic | None = None  # Lazy initialization

    @property
    def _client(self) -> anthropic.AsyncAnthropic:
        """Lazy-init Anthropic client (only on first API call)."""
        if self.__client is None:
            self.__client = anthropic.AsyncAnthropic(
                api_key=self._api_key or "",
                max_retries=self._max_retries,
            )
        return self.__client

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 200,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Text completion via Anthropic Messages API."""
        kwargs = self._build_kwargs(messages, system, max_tokens, temperature)

        start = time.monotonic()
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            raise RateLimited(str(e)) from e
        except anthropic.APIStatusError as e:
            if e.status_code == 429:
                raise RateLimited(str(e)) from e
            raise GenerationFailed(str(e), status_code=e.status_code) from e
        except anthropic.APIError as e:
            raise GenerationFailed(str(e)) from e
        latency_ms = int((time.monotonic() - start) * 1000)

        content = self._extract_content(response)
        if not content.strip():
            raise GenerationFailed("model returned empty content")

        return LLMResponse(
            content=content,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=response.model,
            provider="anthropic",
            latency_ms=latency_ms,
            raw_response=response,
        )

    @property
    def provider_name(self) -> str:
        return "anthropic"

    # --- Internal helpers ---

    def _build_kwargs(
        self,
        messages: list[Message],
        system: str | None,
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [self._to_api_message(m) for m in messages],
        }
        if system:
            kwargs["system"] = system
        return kwargs

    @staticmethod
    def _to_api_message(m: Message) -> dict[str, Any]:
        return {"role": m.role, "content": m.content}

    @staticmethod
    def _extract_content(response: Any) -> str:
        """Extract text from Anthropic response content blocks."""
        for block in response.content:
            if getattr(block, "type", None) == "text":
                return block.text
        return ""
