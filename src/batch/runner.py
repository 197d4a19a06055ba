# src/batch/runner.py — v2
"""Resumable, checkpointed batch loop.

State machine:

    IDLE -> RESUMING -> PROCESSING <-> CHECKPOINTING
                            |
                            v
                       FINALIZING -> DONE

Items are processed strictly one at a time in catalog order. Every
checkpoint_chunk_size newly produced results the full snapshot is saved;
a failed save is logged and the run continues. Only catalog enumeration
errors, checkpoint corruption, catalog changes under a matching identity
and artifact write errors move the machine to FAILED.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from docbrief.batch.models import RunReport, RunState, StatusReport
from docbrief.catalog.base_catalog import BaseCatalog, CatalogChanged, catalog_fingerprint
from docbrief.checkpoint.progress_store import ProgressStore
from docbrief.config.settings import Settings
from docbrief.core.models import Failed, ProgressSnapshot, WorkItem
from docbrief.logging.context import clear_context, item_context, set_catalog_context
from docbrief.output.result_sink import ResultSink
from docbrief.processing.rate_limited_client import ItemOutcome, RateLimitedClient

logger = logging.getLogger(__name__)


class BatchRunner:
    """Drive a RateLimitedClient over a catalog with durable progress."""

    def __init__(
        self,
        catalog: BaseCatalog,
        store: ProgressStore,
        client: RateLimitedClient,
        sink: ResultSink,
        settings: Settings,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._client = client
        self._sink = sink
        self._settings = settings
        self._sleep = sleep
        self._state = RunState.IDLE
        self._checkpoints_written = 0
        self._checkpoint_failures = 0
        self._unsaved = 0

    @property
    def state(self) -> RunState:
        return self._state

    def _transition(self, new_state: RunState) -> None:
        logger.debug("State %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    async def run(self, fresh: bool = False) -> RunReport:
        """Process every remaining item, write the artifact, clear the checkpoint.

        Args:
            fresh: Ignore any existing checkpoint and start at item 0.

        Returns:
            RunReport for the completed run.

        Raises:
            CatalogUnavailable: If the catalog cannot be read.
            CatalogMalformed: If the catalog lacks required fields.
            ProgressCorrupt: If the checkpoint exists but is unreadable.
            CatalogChanged: If the checkpoint matches the identity but not the contents.
            ArtifactWriteError: If the final artifact cannot be written.
        """
        try:
            return await self._run(fresh)
        finally:
            clear_context()

    async def _run(self, fresh: bool) -> RunReport:
        start = time.monotonic()
        try:
            items = self._catalog.list()
            identity = self._catalog.source_identity
            set_catalog_context(identity)
            logger.info("Catalog %s: %d item(s)", identity, len(items))

            self._transition(RunState.RESUMING)
            snapshot = self._resume(items, identity, fresh)
        except Exception:
            self._transition(RunState.FAILED)
            raise

        resumed_from = snapshot.last_processed_index
        self._transition(RunState.PROCESSING)
        try:
            await self._process_remaining(items, snapshot)
        except (asyncio.CancelledError, KeyboardInterrupt):
            logger.warning(
                "Interrupted after %d/%d item(s)", snapshot.last_processed_index, len(items),
            )
            if self._unsaved:
                self._checkpoint(snapshot)
            self._transition(RunState.FAILED)
            raise

        self._transition(RunState.FINALIZING)
        if self._unsaved:
            # Keep every result durable in case the artifact write fails
            self._checkpoint(snapshot)
        try:
            artifact_path = self._sink.finalize(snapshot.results, identity)
        except Exception:
            self._transition(RunState.FAILED)
            raise

        self._transition(RunState.DONE)
        stats = self._client.stats.log_summary("Final statistics")
        report = RunReport(
            source_identity=identity,
            state=self._state,
            total_items=len(items),
            resumed_from=resumed_from,
            newly_processed=len(items) - resumed_from,
            succeeded=sum(1 for r in snapshot.results if r.status == "succeeded"),
            skipped=sum(1 for r in snapshot.results if r.status == "skipped"),
            failed=sum(1 for r in snapshot.results if r.status == "failed"),
            checkpoints_written=self._checkpoints_written,
            checkpoint_failures=self._checkpoint_failures,
            artifact_path=str(artifact_path),
            duration_seconds=round(time.monotonic() - start, 2),
        )
        logger.info(
            "Run complete: %d item(s) (%d new, %d API calls), artifact %s",
            report.total_items, report.newly_processed, stats.api_calls, artifact_path,
        )
        return report

    def _resume(self, items: list[WorkItem], identity: str, fresh: bool) -> ProgressSnapshot:
        fingerprint = catalog_fingerprint(items)
        empty = ProgressSnapshot(
            source_identity=identity,
            catalog_path=self._catalog.location,
            catalog_fingerprint=fingerprint,
        )

        if fresh:
            logger.info("Fresh run requested, ignoring any existing checkpoint")
            return empty

        existing = self._store.load()
        if existing is None:
            logger.info("No checkpoint found, starting from item 1")
            return empty

        if existing.source_identity != identity:
            logger.warning(
                "Checkpoint belongs to catalog %s, not %s; starting fresh",
                existing.source_identity, identity,
            )
            return empty

        if _catalog_changed(existing, len(items), fingerprint):
            raise CatalogChanged(
                f"Catalog {identity} changed since checkpoint {self._store.path} was "
                f"written ({existing.last_processed_index} result(s) saved, "
                f"{len(items)} item(s) now); run 'clean' or use --fresh"
            )

        logger.info(
            "Resuming from checkpoint: %d/%d item(s) already processed",
            existing.last_processed_index, len(items),
        )
        existing.catalog_path = self._catalog.location
        existing.catalog_fingerprint = fingerprint
        return existing

    async def _process_remaining(self, items: list[WorkItem], snapshot: ProgressSnapshot) -> None:
        total = len(items)
        chunk_size = self._settings.checkpoint_chunk_size
        stats_interval = self._settings.stats_interval

        for index in range(snapshot.last_processed_index, total):
            item = items[index]
            with item_context(index + 1, item.display_name):
                logger.info(
                    "[%d/%d] Processing: %s/%s",
                    index + 1, total, item.directory_path, item.display_name,
                )
                outcome = await self._process_one(item)

            snapshot.results.append(outcome.result)
            snapshot.last_processed_index = len(snapshot.results)
            self._client.stats.record_result(outcome.result.status)
            self._unsaved += 1

            if self._unsaved >= chunk_size:
                self._checkpoint(snapshot)

            if (index + 1) % stats_interval == 0:
                self._client.stats.log_summary(f"Statistics at {index + 1}/{total}")

            if outcome.remote_called and index + 1 < total:
                await self._sleep(self._settings.inter_item_delay_s)

    async def _process_one(self, item: WorkItem) -> ItemOutcome:
        """Per-item errors never escape the loop."""
        try:
            return await self._client.process(item)
        except Exception as e:
            logger.exception("Unexpected error processing %s", item.source_ref)
            return ItemOutcome(
                Failed(
                    display_name=item.display_name,
                    directory_path=item.directory_path,
                    reason=f"unexpected error: {e}",
                ),
                remote_called=False,
            )

    def _checkpoint(self, snapshot: ProgressSnapshot) -> None:
        previous = self._state
        self._transition(RunState.CHECKPOINTING)
        try:
            self._store.save(snapshot)
        except Exception as e:
            self._checkpoint_failures += 1
            logger.error(
                "Checkpoint write failed (%d result(s) held in memory): %s",
                snapshot.last_processed_index, e,
            )
        else:
            self._checkpoints_written += 1
            self._unsaved = 0
            logger.info("Progress saved: %d item(s)", snapshot.last_processed_index)
        finally:
            self._transition(previous)


def query_status(
    store: ProgressStore,
    settings: Settings,
    catalog: BaseCatalog | None = None,
) -> StatusReport:
    """Report progress without touching the checkpoint or the catalog.

    Args:
        store: Checkpoint to inspect (read only).
        settings: Supplies the per-item pacing used for the ETA.
        catalog: Current catalog; totals are unknown without it.

    Raises:
        ProgressCorrupt: If the checkpoint exists but is unreadable.
        CatalogUnavailable: If the catalog cannot be read.
        CatalogMalformed: If the catalog lacks required fields.
    """
    snapshot = store.load()
    report = StatusReport(
        checkpoint_path=str(store.path),
        has_checkpoint=snapshot is not None,
    )
    if snapshot is not None:
        report.checkpoint_identity = snapshot.source_identity
        report.saved_at = snapshot.saved_at
        report.processed = snapshot.last_processed_index

    if catalog is None:
        return report

    items = catalog.list()
    total = len(items)
    report.catalog_identity = catalog.source_identity
    report.total = total
    report.identity_matches = (
        snapshot is not None and snapshot.source_identity == catalog.source_identity
    )
    if not report.identity_matches:
        # A run would start over from item 1
        report.processed = 0
    elif snapshot is not None and _catalog_changed(snapshot, total, catalog_fingerprint(items)):
        # A run would raise CatalogChanged
        report.catalog_changed = True
    report.remaining = max(total - report.processed, 0)
    report.percent = round(report.processed / total * 100, 1) if total else 100.0
    report.eta_seconds = report.remaining * settings.inter_item_delay_s
    return report


def reset(store: ProgressStore) -> bool:
    """Delete the checkpoint unconditionally. Returns True if one existed."""
    return store.clear()


def _catalog_changed(snapshot: ProgressSnapshot, total: int, fingerprint: str) -> bool:
    """True if the snapshot cannot be a prefix of the current catalog."""
    if snapshot.last_processed_index > total:
        return True
    return (
        snapshot.catalog_fingerprint is not None
        and snapshot.catalog_fingerprint != fingerprint
    )
