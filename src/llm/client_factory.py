# src/llm/client_factory.py — v3
"""Factory: instantiate the generation client from settings."""

from __future__ import annotations

import logging

from docbrief.config.settings import Settings
from docbrief.llm.adapters.anthropic_adapter import AnthropicAdapter
from docbrief.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)


def create_llm_client(settings: Settings) -> BaseLLMClient:
    """Build the configured generation client.

    The SDK's own retries are disabled; retry and backoff are owned by
    RateLimitedClient.
    """
    logger.debug("Creating LLM client: provider=anthropic, model=%s", settings.llm_model)
    return AnthropicAdapter(
        model=settings.llm_model,
        api_key=settings.anthropic_api_key,
        max_retries=0,
    )
