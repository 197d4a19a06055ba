# src/llm/deadline.py — v1
"""Deadline-bounded remote call.

bounded_call races one call against a timer and folds the outcome into a
CallResult. A timer win is a GenerationTimeout, never a partial success;
the losing call is cancelled.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")


class GenerationTimeout(Exception):
    """The call did not finish before its deadline."""

    def __init__(self, timeout_s: float) -> None:
        self.timeout_s = timeout_s
        super().__init__(f"call timed out after {timeout_s:.1f}s")


@dataclass(frozen=True)
class CallResult(Generic[T]):
    """Either value or error is set, never both."""

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


async def bounded_call(
    factory: Callable[[], Awaitable[T]],
    timeout_s: float | None,
) -> CallResult[T]:
    """Run factory() with an overall deadline.

    Args:
        factory: Zero-argument callable returning the awaitable to run.
        timeout_s: Deadline in seconds; None disables it.

    Returns:
        CallResult holding the value, the call's own exception, or a
        GenerationTimeout.
    """
    try:
        value = await asyncio.wait_for(factory(), timeout=timeout_s)
    except asyncio.TimeoutError:
        return CallResult(error=GenerationTimeout(timeout_s or 0.0))
    except Exception as e:
        return CallResult(error=e)
    return CallResult(value=value)
