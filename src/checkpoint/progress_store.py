# src/checkpoint/progress_store.py — v1
"""File-backed checkpoint holding every result produced so far.

The file, when present and parseable, always holds a strict prefix of a
complete run. Writes go to a temp file in the same directory and are
swapped in with os.replace, so a crash mid-write leaves the previous
checkpoint intact (see output.atomic).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from docbrief.core.models import SNAPSHOT_SCHEMA_VERSION, ProgressSnapshot
from docbrief.output.atomic import write_atomic

logger = logging.getLogger(__name__)


class ProgressCorrupt(Exception):
    """Checkpoint file exists but cannot be parsed. Never discarded silently."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Checkpoint {path} is corrupt: {detail}")


class ProgressSchemaMismatch(ProgressCorrupt):
    """Checkpoint was written by an incompatible schema version."""

    def __init__(self, path: Path, found: object) -> None:
        self.found = found
        super().__init__(
            path,
            f"schemaVersion {found!r} does not match expected {SNAPSHOT_SCHEMA_VERSION}",
        )


class ProgressStore:
    """Load, atomically save, and delete the run checkpoint."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> ProgressSnapshot | None:
        """Return the stored snapshot, or None when there is no checkpoint.

        Raises:
            ProgressCorrupt: If the file exists but is not a valid snapshot.
            ProgressSchemaMismatch: If the file has another schema version.
        """
        if not self._path.is_file():
            return None

        try:
            raw = self._path.read_text(encoding="utf-8")
            data = json.loads(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProgressCorrupt(self._path, str(e)) from e

        if not isinstance(data, dict):
            raise ProgressCorrupt(self._path, "top-level value is not an object")

        version = data.get("schemaVersion")
        if version != SNAPSHOT_SCHEMA_VERSION:
            raise ProgressSchemaMismatch(self._path, version)

        try:
            snapshot = ProgressSnapshot.model_validate(data)
        except ValidationError as e:
            raise ProgressCorrupt(self._path, str(e)) from e

        logger.debug(
            "Loaded checkpoint %s: %d result(s), identity=%s",
            self._path, snapshot.last_processed_index, snapshot.source_identity,
        )
        return snapshot

    def save(self, snapshot: ProgressSnapshot) -> None:
        """Replace the checkpoint with snapshot in one atomic step.

        Raises:
            OSError: If the write or rename fails. The previous file is kept.
        """
        snapshot.saved_at = datetime.now(timezone.utc)
        payload = snapshot.model_dump_json(indent=2, by_alias=True)
        write_atomic(self._path, payload.encode("utf-8"))

        logger.debug(
            "Checkpoint saved: %s (%d result(s))",
            self._path, snapshot.last_processed_index,
        )

    def clear(self) -> bool:
        """Delete the checkpoint. Returns True if a file was removed."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Checkpoint removed: %s", self._path)
        return True
