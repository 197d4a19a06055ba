# src/processing/classifier.py — v1
"""Binary/text classification of fetched content.

A content prefix is binary when more than `threshold` of its characters
are control characters below 32, TAB, LF and CR excepted. The ratio is
taken over decoded characters, not raw bytes.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

DEFAULT_BINARY_THRESHOLD = 0.3
_ALLOWED_CONTROL = frozenset((9, 10, 13))


def count_non_printable(text: str) -> int:
    return sum(1 for ch in text if ord(ch) < 32 and ord(ch) not in _ALLOWED_CONTROL)


def non_printable_ratio(text: str) -> float:
    """Fraction of control characters in text (0.0 for empty text)."""
    if not text:
        return 0.0
    return count_non_printable(text) / len(text)


def decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def is_probably_binary(data: bytes, threshold: float = DEFAULT_BINARY_THRESHOLD) -> bool:
    """Return True if the decoded content exceeds the non-printable threshold.

    Comparison is strict: exactly `threshold` still counts as text.
    """
    text = decode(data)
    non_printable = count_non_printable(text)
    binary = non_printable > len(text) * threshold
    logger.debug(
        "Text analysis: %d non-printable chars out of %d total%s",
        non_printable, len(text), " (binary)" if binary else "",
    )
    return binary


def to_text(data: bytes, max_chars: int) -> str:
    """Decode content and keep at most max_chars characters."""
    return decode(data)[:max_chars]
