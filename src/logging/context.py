# src/logging/context.py — v2
"""Contextual logging: tag records with the catalog and the item in flight."""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

_catalog: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "catalog", default=None
)
_item_index: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "item_index", default=None
)
_item_name: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "item_name", default=None
)


@dataclass
class LogContext:
    """Snapshot of current logging context."""

    catalog: str | None = None
    item_index: int | None = None
    item_name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    return LogContext(
        catalog=_catalog.get(),
        item_index=_item_index.get(),
        item_name=_item_name.get(),
    )


def set_catalog_context(source_identity: str) -> None:
    """Set run-level context (called once per run)."""
    _catalog.set(source_identity)


@contextmanager
def item_context(index: int, name: str) -> Iterator[None]:
    """Tag every record emitted inside the block with the current item."""
    index_token = _item_index.set(index)
    name_token = _item_name.set(name)
    try:
        yield
    finally:
        _item_index.reset(index_token)
        _item_name.reset(name_token)


def clear_context() -> None:
    """Reset all context variables."""
    _catalog.set(None)
    _item_index.set(None)
    _item_name.set(None)
