# src/storage/base_content_source.py — v1
"""Abstract content source interface for work item bodies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from docbrief.core.models import SourceRef


class ContentUnavailable(Exception):
    """The object body could not be retrieved."""

    def __init__(self, ref: SourceRef, detail: str) -> None:
        self.ref = ref
        self.detail = detail
        super().__init__(f"Failed to download {ref}: {detail}")


@dataclass(frozen=True)
class FetchedContent:
    """Body prefix read from the store.

    total_bytes counts everything read, including the tail of the chunk
    that crossed the ceiling.
    """

    data: bytes
    total_bytes: int
    truncated: bool = False


class BaseContentSource(ABC):
    """Unified interface for object body retrieval."""

    @abstractmethod
    async def fetch(self, ref: SourceRef, max_bytes: int) -> FetchedContent:
        """Read at most max_bytes of the object.

        Reading stops once the ceiling is exceeded; the result is then a
        truncated prefix, not a failure.

        Raises:
            ContentUnavailable: On any retrieval error.
        """
