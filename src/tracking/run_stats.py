# src/tracking/run_stats.py — v1
"""Running statistics for one batch run.

Accumulates download and generation counts and timings plus per-status
result counts. The runner logs a summary every stats_interval items and
once at the end.
"""

from __future__ import annotations

import logging
import time

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class RunStatsSummary(BaseModel):
    """Point-in-time view of RunStats."""

    items_processed: int
    succeeded: int
    skipped: int
    failed: int
    downloads: int
    avg_download_ms: float
    api_calls: int
    api_retries: int
    avg_api_ms: float
    elapsed_s: float


class RunStats:
    """Mutable accumulator owned by a single run."""

    def __init__(self) -> None:
        self._started = time.monotonic()
        self.succeeded = 0
        self.skipped = 0
        self.failed = 0
        self.downloads = 0
        self.download_ms = 0
        self.api_calls = 0
        self.api_retries = 0
        self.api_ms = 0

    def record_download(self, elapsed_ms: int) -> None:
        self.downloads += 1
        self.download_ms += elapsed_ms

    def record_api_call(self, elapsed_ms: int, attempts: int = 1) -> None:
        self.api_calls += 1
        self.api_retries += max(attempts - 1, 0)
        self.api_ms += elapsed_ms

    def record_result(self, status: str) -> None:
        if status == "succeeded":
            self.succeeded += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1

    def snapshot(self) -> RunStatsSummary:
        return RunStatsSummary(
            items_processed=self.succeeded + self.skipped + self.failed,
            succeeded=self.succeeded,
            skipped=self.skipped,
            failed=self.failed,
            downloads=self.downloads,
            avg_download_ms=round(self.download_ms / self.downloads, 1) if self.downloads else 0.0,
            api_calls=self.api_calls,
            api_retries=self.api_retries,
            avg_api_ms=round(self.api_ms / self.api_calls, 1) if self.api_calls else 0.0,
            elapsed_s=round(time.monotonic() - self._started, 1),
        )

    def log_summary(self, label: str = "Statistics") -> RunStatsSummary:
        """Log the current snapshot at INFO and return it."""
        s = self.snapshot()
        logger.info(
            "%s: %d processed (%d ok, %d skipped, %d failed), "
            "%d downloads avg %.0fms, %d API calls avg %.0fms (%d retries), %.1fs elapsed",
            label, s.items_processed, s.succeeded, s.skipped, s.failed,
            s.downloads, s.avg_download_ms, s.api_calls, s.avg_api_ms,
            s.api_retries, s.elapsed_s,
        )
        return s
