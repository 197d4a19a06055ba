# src/output/result_sink.py — v1
"""Final artifact: build in memory, write once atomically, clear checkpoint.

The artifact is a single-sheet workbook (or csv) with one row per work
item, in processing order, named after the catalog's source identity.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Sequence

import polars as pl

from docbrief.checkpoint.progress_store import ProgressStore
from docbrief.core.models import ArtifactRow, FinalArtifact, ProcessedResult
from docbrief.output.atomic import write_atomic

logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = "file_summaries_"
ARTIFACT_SHEET = "File Summaries"
NAME_COLUMN = "File Name"
DIRECTORY_COLUMN = "File Directory"
OUTPUT_COLUMNS = {
    "briefing": "Briefing by LLM",
    "question": "Question Generated by LLM",
}
_COLUMN_WIDTHS_CHARS = (30, 50, 100)


class ArtifactWriteError(Exception):
    """The final artifact could not be written. The checkpoint is kept."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Failed to write artifact {path}: {detail}")


class ResultSink:
    """Turn the full result sequence into the final artifact."""

    def __init__(
        self,
        store: ProgressStore,
        reports_dir: Path,
        artifact_format: str = "xlsx",
        prompt_style: str = "briefing",
    ) -> None:
        if artifact_format not in ("xlsx", "csv"):
            raise ValueError(f"Unsupported artifact format: {artifact_format!r}")
        self._store = store
        self._reports_dir = Path(reports_dir)
        self._format = artifact_format
        self._output_column = OUTPUT_COLUMNS.get(prompt_style, OUTPUT_COLUMNS["briefing"])

    def artifact_path(self, source_identity: str) -> Path:
        return self._reports_dir / f"{ARTIFACT_PREFIX}{source_identity}.{self._format}"

    @staticmethod
    def build(results: Sequence[ProcessedResult], source_identity: str) -> FinalArtifact:
        """Materialize rows in input order; no re-sorting."""
        rows = [
            ArtifactRow(
                display_name=r.display_name,
                directory_path=r.directory_path,
                output_text=r.output_text,
            )
            for r in results
        ]
        return FinalArtifact(source_identity=source_identity, rows=rows)

    def persist(self, artifact: FinalArtifact) -> Path:
        """Write the artifact in one atomic step.

        Raises:
            ArtifactWriteError: If rendering or writing fails.
        """
        path = self.artifact_path(artifact.source_identity)
        try:
            payload = self._render(artifact)
            write_atomic(path, payload)
        except Exception as e:
            raise ArtifactWriteError(path, str(e)) from e

        logger.info("Artifact written: %s (%d rows)", path, len(artifact.rows))
        return path

    def finalize(self, results: Sequence[ProcessedResult], source_identity: str) -> Path:
        """Build, persist, then delete the checkpoint.

        The checkpoint is only cleared after the artifact is durably written.
        """
        artifact = self.build(results, source_identity)
        path = self.persist(artifact)
        self._store.clear()
        return path

    def _to_frame(self, artifact: FinalArtifact) -> pl.DataFrame:
        return pl.DataFrame(
            {
                NAME_COLUMN: [r.display_name for r in artifact.rows],
                DIRECTORY_COLUMN: [r.directory_path for r in artifact.rows],
                self._output_column: [r.output_text for r in artifact.rows],
            },
            schema={
                NAME_COLUMN: pl.Utf8,
                DIRECTORY_COLUMN: pl.Utf8,
                self._output_column: pl.Utf8,
            },
        )

    def _render(self, artifact: FinalArtifact) -> bytes:
        df = self._to_frame(artifact)
        buffer = io.BytesIO()
        if self._format == "csv":
            df.write_csv(buffer)
        else:
            widths = dict(zip(df.columns, _COLUMN_WIDTHS_CHARS))
            df.write_excel(
                buffer,
                worksheet=ARTIFACT_SHEET,
                column_widths={col: w * 7 for col, w in widths.items()},
                autofit=False,
            )
        return buffer.getvalue()
