# src/catalog/base_catalog.py — v1
"""Abstract work catalog interface and catalog-level errors.

A catalog is the finite, ordered list of objects a run must process. Its
source identity is the token that ties a checkpoint to it.
"""

from __future__ import annotations

import hashlib
import re
from abc import ABC, abstractmethod
from pathlib import Path

from docbrief.core.models import WorkItem

_DATE_TOKEN = re.compile(r"(\d{8})")


class CatalogUnavailable(Exception):
    """The backing listing cannot be read."""


class CatalogMalformed(Exception):
    """The listing was read but required fields are absent."""


class CatalogChanged(Exception):
    """A checkpoint matches the catalog identity but not its contents."""


class BaseCatalog(ABC):
    """Unified interface for work catalogs."""

    @property
    @abstractmethod
    def source_identity(self) -> str:
        """Token identifying this catalog instance (e.g. a date)."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Where the catalog was loaded from, recorded in checkpoints."""

    @abstractmethod
    def list(self) -> list[WorkItem]:
        """Return every work item, in processing order.

        Raises:
            CatalogUnavailable: If the listing cannot be read.
            CatalogMalformed: If required fields are missing.
        """


def derive_source_identity(path: str | Path) -> str:
    """Extract the 8-digit date token from a catalog file name, else its stem."""
    name = Path(path).name
    match = _DATE_TOKEN.search(name)
    if match:
        return match.group(1)
    return Path(path).stem


def catalog_fingerprint(items: list[WorkItem]) -> str:
    """Stable digest of the ordered source refs of a catalog."""
    digest = hashlib.sha256()
    for item in items:
        digest.update(item.source_ref.container.encode("utf-8"))
        digest.update(b"\x00")
        digest.update(item.source_ref.path.encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()[:16]
