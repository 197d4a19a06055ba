# src/llm/base_client.py — v1
"""Abstract LLM client interface and provider error types."""

from __future__ import annotations

from abc import ABC, abstractmethod

from docbrief.llm.models import LLMResponse, Message


class GenerationFailed(Exception):
    """The provider rejected or failed the request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RateLimited(GenerationFailed):
    """The provider signalled too many requests (HTTP 429)."""

    def __init__(self, message: str = "rate limited") -> None:
        super().__init__(message, status_code=429)


class BaseLLMClient(ABC):
    """Unified interface for text-generation providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 200,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Text completion.

        Raises:
            RateLimited: On an explicit too-many-requests signal.
            GenerationFailed: On any other provider failure.
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier."""
