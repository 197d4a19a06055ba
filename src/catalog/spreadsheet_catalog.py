# src/catalog/spreadsheet_catalog.py — v1
"""Spreadsheet-backed work catalog (xlsx sheet or csv file).

Expected columns: Bucket, Key, Size. One row per object. Rows keep the
order they have in the file.
"""

from __future__ import annotations

import logging
from pathlib import Path

import polars as pl

from docbrief.catalog.base_catalog import (
    BaseCatalog,
    CatalogMalformed,
    CatalogUnavailable,
    derive_source_identity,
)
from docbrief.core.models import WorkItem

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("Bucket", "Key")
SIZE_COLUMN = "Size"


class SpreadsheetCatalog(BaseCatalog):
    """Catalog read from a tabular report produced by the bucket scan."""

    def __init__(self, path: str | Path, sheet: str = "Uploads") -> None:
        self._path = Path(path)
        self._sheet = sheet
        self._items: list[WorkItem] | None = None

    @property
    def source_identity(self) -> str:
        return derive_source_identity(self._path)

    @property
    def location(self) -> str:
        return str(self._path)

    @property
    def path(self) -> Path:
        return self._path

    def list(self) -> list[WorkItem]:
        if self._items is None:
            self._items = self._load()
        return list(self._items)

    def _load(self) -> list[WorkItem]:
        df = self._read_frame()
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise CatalogMalformed(
                f"{self._path.name}: missing required column(s): {', '.join(missing)}"
            )

        has_size = SIZE_COLUMN in df.columns
        items: list[WorkItem] = []
        for idx, row in enumerate(df.iter_rows(named=True)):
            bucket = _clean(row.get("Bucket"))
            key = _clean(row.get("Key"))
            if not bucket or not key:
                raise CatalogMalformed(
                    f"{self._path.name}: row {idx + 2} has an empty Bucket or Key"
                )
            size = _to_int(row.get(SIZE_COLUMN)) if has_size else 0
            items.append(WorkItem.from_key(bucket, key, size))

            if (idx + 1) % 100 == 0:
                logger.debug("Parsed %d catalog entries...", idx + 1)

        logger.info(
            "Loaded catalog %s: %d item(s), identity=%s",
            self._path.name, len(items), self.source_identity,
        )
        return items

    def _read_frame(self) -> pl.DataFrame:
        if not self._path.is_file():
            raise CatalogUnavailable(f"Catalog not found: {self._path}")
        try:
            if self._path.suffix.lower() == ".csv":
                return pl.read_csv(self._path, infer_schema_length=0)
            return pl.read_excel(self._path, sheet_name=self._sheet)
        except Exception as exc:
            raise CatalogUnavailable(
                f"Failed to read catalog {self._path.name}: {exc}"
            ) from exc


def find_latest_catalog(reports_dir: Path, prefix: str = "s3_daily_uploads_") -> Path | None:
    """Return the newest catalog in reports_dir by name, or None."""
    if not reports_dir.is_dir():
        return None
    candidates = sorted(
        p for p in reports_dir.iterdir()
        if p.is_file()
        and p.name.startswith(prefix)
        and p.suffix.lower() in (".xlsx", ".csv")
    )
    return candidates[-1] if candidates else None


def _clean(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _to_int(value: object) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
