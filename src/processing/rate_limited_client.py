# src/processing/rate_limited_client.py — v1
"""Per-item processing: fetch, classify, generate with retry.

process() turns one WorkItem into exactly one ProcessedResult and never
raises for per-item problems:

    excluded directory      -> Skipped("excluded directory")
    fetch error             -> Failed("content unavailable: ...")
    binary content          -> Skipped("unreadable")
    empty content           -> Skipped("empty content")
    retries exhausted       -> Failed("api failure after retries")
    generation ok           -> Succeeded(output_text)

Inter-item pacing is the caller's job; ItemOutcome.remote_called tells it
whether a generation call was made.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from docbrief.config.settings import Settings
from docbrief.core.models import Failed, ProcessedResult, Skipped, Succeeded, WorkItem
from docbrief.llm.base_client import BaseLLMClient
from docbrief.llm.deadline import bounded_call
from docbrief.llm.models import LLMResponse, Message
from docbrief.llm.retry import BackoffPolicy, LLMRetryExhausted, with_retry
from docbrief.processing.classifier import is_probably_binary, to_text
from docbrief.processing.prompts import PromptBuilder
from docbrief.storage.base_content_source import BaseContentSource, ContentUnavailable
from docbrief.tracking.run_stats import RunStats

logger = logging.getLogger(__name__)

REASON_EXCLUDED = "excluded directory"
REASON_UNREADABLE = "unreadable"
REASON_EMPTY = "empty content"
REASON_RETRIES_EXHAUSTED = "api failure after retries"


@dataclass(frozen=True)
class ItemOutcome:
    """Result of one item plus whether the remote service was called."""

    result: ProcessedResult
    remote_called: bool


class RateLimitedClient:
    """Fetch, classify and summarise one work item at a time."""

    def __init__(
        self,
        source: BaseContentSource,
        llm: BaseLLMClient,
        settings: Settings,
        stats: RunStats | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._llm = llm
        self._settings = settings
        self._stats = stats or RunStats()
        self._sleep = sleep
        self._policy = BackoffPolicy(
            max_attempts=settings.retry_budget,
            rate_limit_step_s=settings.rate_limit_backoff_s,
            fixed_delay_s=settings.retry_delay_s,
        )
        self._prompts = PromptBuilder(
            style=settings.prompt_style,
            max_input_chars=settings.max_input_chars,
        )
        self._skip_dirs = [d.lower() for d in settings.skip_directories_list]

    @property
    def stats(self) -> RunStats:
        return self._stats

    def is_excluded(self, directory_path: str) -> bool:
        """True if the directory contains any configured skip fragment."""
        directory = directory_path.lower()
        return any(fragment in directory for fragment in self._skip_dirs)

    async def process(self, item: WorkItem) -> ItemOutcome:
        name, directory = item.display_name, item.directory_path

        if self.is_excluded(directory):
            logger.info("Skipping excluded directory: %s", directory)
            return ItemOutcome(
                Skipped(display_name=name, directory_path=directory, reason=REASON_EXCLUDED),
                remote_called=False,
            )

        # 1. Bounded content fetch, no retry
        start = time.monotonic()
        try:
            fetched = await self._source.fetch(item.source_ref, self._settings.max_content_bytes)
        except ContentUnavailable as e:
            logger.error("Failed to download %s: %s", item.source_ref, e.detail)
            return ItemOutcome(
                Failed(
                    display_name=name,
                    directory_path=directory,
                    reason=f"content unavailable: {e.detail}",
                ),
                remote_called=False,
            )
        self._stats.record_download(int((time.monotonic() - start) * 1000))

        # 2. Binary/text classification
        if is_probably_binary(fetched.data, self._settings.binary_threshold):
            logger.info("Binary or unreadable content: %s", name)
            return ItemOutcome(
                Skipped(display_name=name, directory_path=directory, reason=REASON_UNREADABLE),
                remote_called=False,
            )
        text = to_text(fetched.data, self._settings.max_text_chars)
        if not text:
            logger.info("Empty content: %s", name)
            return ItemOutcome(
                Skipped(display_name=name, directory_path=directory, reason=REASON_EMPTY),
                remote_called=False,
            )

        # 3-4. Generation with deadline and retry
        output = await self._generate(name, text)
        if output is None:
            return ItemOutcome(
                Failed(display_name=name, directory_path=directory, reason=REASON_RETRIES_EXHAUSTED),
                remote_called=True,
            )
        return ItemOutcome(
            Succeeded(display_name=name, directory_path=directory, output_text=output),
            remote_called=True,
        )

    async def _generate(self, name: str, text: str) -> str | None:
        """Return normalised model output, or None once retries are exhausted."""
        prompt = self._prompts.build(name, text)
        attempts = 0

        async def attempt() -> LLMResponse:
            nonlocal attempts
            attempts += 1
            logger.debug(
                "Attempt %d/%d - sending %d chars",
                attempts, self._policy.max_attempts, min(len(text), self._settings.max_input_chars),
            )
            outcome = await bounded_call(
                lambda: self._llm.complete(
                    messages=[Message(role="user", content=prompt)],
                    max_tokens=self._settings.llm_max_tokens,
                    temperature=self._settings.llm_temperature,
                ),
                self._settings.llm_timeout_s,
            )
            return outcome.unwrap()

        start = time.monotonic()
        try:
            response = await with_retry(
                attempt, label=name, policy=self._policy, sleep=self._sleep,
            )
        except LLMRetryExhausted as e:
            logger.error("Generation failed for %s: %s", name, e)
            return None
        finally:
            self._stats.record_api_call(int((time.monotonic() - start) * 1000), attempts)

        output = self._prompts.normalize(response.content)
        logger.info("Output generated for %s (%dms)", name, response.latency_ms)
        return output
