# src/llm/retry.py — v2
"""Retry policy for generation calls.

Two backoff policies, chosen by failure class:
  rate_limit: wait attempt × rate_limit_step_s (10s, 20s, ...).
  anything else: wait fixed_delay_s.
No wait follows the last attempt.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from docbrief.llm.base_client import RateLimited
from docbrief.llm.deadline import GenerationTimeout

logger = logging.getLogger(__name__)


class LLMRetryExhausted(Exception):
    """All attempts failed for one generation call."""

    def __init__(self, label: str, error_type: str, attempts: int, last_error: Exception):
        self.label = label
        self.error_type = error_type
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"'{label}' failed after {attempts} attempts ({error_type}): {last_error}"
        )


@dataclass(frozen=True)
class BackoffPolicy:
    """Attempt budget and per-class delays."""

    max_attempts: int = 3
    rate_limit_step_s: float = 10.0
    fixed_delay_s: float = 5.0

    def delay_for(self, error_type: str, attempt: int) -> float:
        """Delay before the attempt following attempt (1-based)."""
        if error_type == "rate_limit":
            return attempt * self.rate_limit_step_s
        return self.fixed_delay_s


def classify_error(error: Exception) -> str:
    """Classify an exception into rate_limit, timeout or error."""
    if isinstance(error, RateLimited) or getattr(error, "status_code", None) == 429:
        return "rate_limit"
    msg = str(error).lower()
    if "429" in msg or "too many requests" in msg:
        return "rate_limit"
    if isinstance(error, (GenerationTimeout, asyncio.TimeoutError)):
        return "timeout"
    return "error"


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    label: str = "unknown",
    policy: BackoffPolicy | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> Any:
    """Execute an async function with the backoff policy.

    Args:
        fn: Coroutine function, called afresh for every attempt.
        label: Name used in log lines and in the exhaustion error.
        policy: Backoff policy, defaults to BackoffPolicy().
        sleep: Awaitable sleep, injectable for tests.

    Raises:
        LLMRetryExhausted: If every attempt failed.
    """
    policy = policy or BackoffPolicy()
    attempt = 0

    while True:
        attempt += 1
        try:
            return await fn(*args, **kwargs)
        except Exception as e:
            error_type = classify_error(e)
            if attempt >= policy.max_attempts:
                raise LLMRetryExhausted(label, error_type, attempt, e) from e

            delay = policy.delay_for(error_type, attempt)
            logger.warning(
                "'%s': %s (attempt %d/%d), retrying in %.1fs",
                label, error_type, attempt, policy.max_attempts, delay,
            )
            await sleep(delay)
