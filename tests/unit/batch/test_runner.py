# tests/unit/batch/test_runner.py — v2
"""Tests for batch/runner.py — state machine, checkpointing, resume."""

from __future__ import annotations

import asyncio
from pathlib import Path

import polars as pl
import pytest

from conftest import (
    TEXT_A,
    FakeCatalog,
    FakeContentSource,
    FakeLLMClient,
    SleepRecorder,
    make_item,
)
from docbrief.batch.models import RunState
from docbrief.batch.runner import BatchRunner
from docbrief.catalog.base_catalog import CatalogChanged, CatalogUnavailable
from docbrief.checkpoint.progress_store import ProgressCorrupt, ProgressStore
from docbrief.core.models import ProgressSnapshot, Skipped, Succeeded
from docbrief.logging.context import get_context
from docbrief.output.result_sink import ArtifactWriteError, ResultSink
from docbrief.processing.rate_limited_client import RateLimitedClient


class SimulatedKill(BaseException):
    """Stands in for the process being killed mid-item."""


class RecordingStore(ProgressStore):
    """ProgressStore that keeps a copy of every saved snapshot."""

    def __init__(self, path: Path, fail_saves: set[int] | None = None) -> None:
        super().__init__(path)
        self.saved: list[ProgressSnapshot] = []
        self._fail_saves = fail_saves or set()

    def save(self, snapshot: ProgressSnapshot) -> None:
        attempt = len(self.saved) + 1
        self.saved.append(snapshot.model_copy(deep=True))
        if attempt in self._fail_saves:
            raise OSError("disk full")
        super().save(snapshot)


class KillingSource(FakeContentSource):
    """Content source that kills the process when a given path is fetched."""

    def __init__(self, bodies: dict[str, bytes], kill_on: str) -> None:
        super().__init__(bodies)
        self._kill_on = kill_on

    async def fetch(self, ref, max_bytes):
        if ref.path == self._kill_on:
            raise SimulatedKill()
        return await super().fetch(ref, max_bytes)


def _runner(settings, catalog, source, llm, store, sleep=None):
    sleep = sleep or SleepRecorder()
    client = RateLimitedClient(source, llm, settings, sleep=sleep)
    sink = ResultSink(store, settings.reports_dir, artifact_format=settings.artifact_format)
    return BatchRunner(catalog, store, client, sink, settings, sleep=sleep)


def _artifact_rows(path: str) -> list[tuple[str, str, str]]:
    df = pl.read_csv(path, infer_schema_length=0)
    return [tuple(row) for row in df.iter_rows()]


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_text_binary_text(self, settings, store, abc_items, abc_source, sleep):
        catalog = FakeCatalog(abc_items)
        llm = FakeLLMClient()
        runner = _runner(settings, catalog, abc_source, llm, store, sleep)

        report = await runner.run()

        assert runner.state == RunState.DONE
        assert report.state == RunState.DONE
        assert (report.succeeded, report.skipped, report.failed) == (2, 1, 0)
        assert llm.calls == 2
        assert not store.exists()

        rows = _artifact_rows(report.artifact_path)
        assert [r[0] for r in rows] == ["a.txt", "b.bin", "c.txt"]
        assert rows[1][2] == "Binary file or unable to read content"
        assert rows[0][2].startswith("Line 1 about a.txt")
        assert Path(report.artifact_path).name == "file_summaries_20240301.csv"

    @pytest.mark.asyncio
    async def test_pacing_after_remote_calls_only(self, settings, store, abc_items, abc_source, sleep):
        runner = _runner(settings, FakeCatalog(abc_items), abc_source, FakeLLMClient(), store, sleep)
        await runner.run()
        # After A only: B is skipped, C is the final item
        assert sleep.delays == [3.0]

    @pytest.mark.asyncio
    async def test_per_item_errors_never_escape(self, settings, store, sleep):
        items = [make_item("a.txt"), make_item("missing.txt"), make_item("c.txt")]
        source = FakeContentSource({"a.txt": TEXT_A, "c.txt": TEXT_A})
        runner = _runner(settings, FakeCatalog(items), source, FakeLLMClient(), store, sleep)

        report = await runner.run()

        assert report.failed == 1
        assert report.total_items == 3

    @pytest.mark.asyncio
    async def test_unexpected_client_error_becomes_failed(self, settings, store, sleep):
        class BrokenClient(RateLimitedClient):
            async def process(self, item):
                raise RuntimeError("bug")

        items = [make_item("a.txt")]
        client = BrokenClient(FakeContentSource({}), FakeLLMClient(), settings, sleep=sleep)
        sink = ResultSink(store, settings.reports_dir, artifact_format="csv")
        runner = BatchRunner(FakeCatalog(items), store, client, sink, settings, sleep=sleep)

        report = await runner.run()

        assert report.failed == 1
        rows = _artifact_rows(report.artifact_path)
        assert rows[0][2] == "Error generating output (unexpected error: bug)"

    @pytest.mark.asyncio
    async def test_log_context_cleared_after_run(self, settings, store, abc_items, abc_source, sleep):
        runner = _runner(settings, FakeCatalog(abc_items), abc_source, FakeLLMClient(), store, sleep)
        await runner.run()
        assert get_context().as_dict() == {}


class TestCheckpointing:
    @pytest.mark.asyncio
    async def test_snapshots_grow_monotonically(self, make_settings, tmp_path, sleep):
        settings = make_settings(checkpoint_chunk_size=2)
        items = [make_item(f"f{i}.txt") for i in range(7)]
        source = FakeContentSource({f"f{i}.txt": TEXT_A for i in range(7)})
        store = RecordingStore(settings.checkpoint_path)
        runner = _runner(settings, FakeCatalog(items), source, FakeLLMClient(), store, sleep)

        await runner.run()

        indexes = [s.last_processed_index for s in store.saved]
        assert indexes == [2, 4, 6, 7]
        for snap in store.saved:
            assert snap.last_processed_index == len(snap.results)
        for earlier, later in zip(store.saved, store.saved[1:]):
            assert later.results[: len(earlier.results)] == earlier.results

    @pytest.mark.asyncio
    async def test_checkpoint_write_failure_is_not_fatal(self, make_settings, sleep):
        settings = make_settings(checkpoint_chunk_size=1)
        items = [make_item(f"f{i}.txt") for i in range(3)]
        source = FakeContentSource({f"f{i}.txt": TEXT_A for i in range(3)})
        store = RecordingStore(settings.checkpoint_path, fail_saves={1})
        runner = _runner(settings, FakeCatalog(items), source, FakeLLMClient(), store, sleep)

        report = await runner.run()

        assert report.state == RunState.DONE
        assert report.checkpoint_failures == 1
        assert report.checkpoints_written == 2
        # The next successful checkpoint caught up
        assert store.saved[1].last_processed_index == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("interrupt", [asyncio.CancelledError, KeyboardInterrupt])
    async def test_interrupt_saves_unsaved_results(
        self, make_settings, abc_items, abc_source, interrupt,
    ):
        settings = make_settings(checkpoint_chunk_size=10)
        store = RecordingStore(settings.checkpoint_path)

        async def interrupted_sleep(delay: float) -> None:
            raise interrupt()

        runner = _runner(
            settings, FakeCatalog(abc_items), abc_source, FakeLLMClient(), store,
            sleep=interrupted_sleep,
        )

        with pytest.raises(interrupt):
            await runner.run()

        assert runner.state == RunState.FAILED
        assert [s.last_processed_index for s in store.saved] == [1]
        saved = store.load()
        assert saved is not None
        assert saved.last_processed_index == 1
        assert isinstance(saved.results[0], Succeeded)
        assert saved.results[0].display_name == "a.txt"
        assert abc_source.fetched == ["docs/a.txt"]


class TestResume:
    @pytest.mark.asyncio
    async def test_crash_and_resume(self, make_settings, abc_items, abc_source):
        settings = make_settings(checkpoint_chunk_size=1)
        store = ProgressStore(settings.checkpoint_path)
        catalog = FakeCatalog(abc_items)

        # First run: A is processed and checkpointed, then the process dies on B
        killing = KillingSource(
            {"docs/a.txt": TEXT_A}, kill_on="docs/b.bin",
        )
        first_llm = FakeLLMClient(["Original summary of A"])
        runner = _runner(settings, catalog, killing, first_llm, store)
        with pytest.raises(SimulatedKill):
            await runner.run()

        snapshot = store.load()
        assert snapshot is not None
        assert snapshot.last_processed_index == 1

        # Resume: only B and C are processed
        resume_llm = FakeLLMClient()
        report = await _runner(settings, catalog, abc_source, resume_llm, store).run()

        assert abc_source.fetched == ["docs/b.bin", "docs/c.txt"]
        assert resume_llm.calls == 1
        assert report.resumed_from == 1
        assert report.newly_processed == 2
        rows = _artifact_rows(report.artifact_path)
        assert len(rows) == 3
        assert rows[0] == ("a.txt", "docs", "Original summary of A")
        assert not store.exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("crash_after", [0, 1, 2, 3])
    async def test_resume_equivalence(self, make_settings, tmp_path, abc_items, crash_after):
        bodies = {"docs/a.txt": TEXT_A, "docs/b.bin": b"\x00" * 2048, "docs/c.txt": TEXT_A}

        # Uninterrupted reference run
        ref_settings = make_settings(checkpoint_path=tmp_path / "ref" / "p.json",
                                     reports_dir=tmp_path / "ref")
        ref_store = ProgressStore(ref_settings.checkpoint_path)
        ref_report = await _runner(
            ref_settings, FakeCatalog(abc_items), FakeContentSource(bodies),
            FakeLLMClient(), ref_store,
        ).run()

        # Valid checkpoint holding the first crash_after results of a run
        settings = make_settings(checkpoint_chunk_size=1)
        store = ProgressStore(settings.checkpoint_path)
        seeded = ProgressSnapshot(
            source_identity="20240301",
            catalog_path="/reports/s3_daily_uploads_20240301.xlsx",
            results=[],
            last_processed_index=0,
        )
        partial_client = RateLimitedClient(
            FakeContentSource(bodies), FakeLLMClient(), settings, sleep=SleepRecorder(),
        )
        for item in abc_items[:crash_after]:
            seeded.results.append((await partial_client.process(item)).result)
        seeded.last_processed_index = len(seeded.results)
        store.save(seeded)

        source = FakeContentSource(bodies)
        report = await _runner(
            settings, FakeCatalog(abc_items), source, FakeLLMClient(), store,
        ).run()

        assert len(source.fetched) == 3 - crash_after
        assert _artifact_rows(report.artifact_path) == _artifact_rows(ref_report.artifact_path)

    @pytest.mark.asyncio
    async def test_stale_identity_starts_fresh(self, settings, store, abc_items, abc_source):
        store.save(ProgressSnapshot(
            source_identity="20230101",
            results=[Succeeded(display_name="old", directory_path="/", output_text="x")],
            last_processed_index=1,
        ))
        report = await _runner(
            settings, FakeCatalog(abc_items), abc_source, FakeLLMClient(), store,
        ).run()
        assert report.resumed_from == 0
        assert len(abc_source.fetched) == 3

    @pytest.mark.asyncio
    async def test_fresh_ignores_checkpoint(self, settings, store, abc_items, abc_source):
        store.save(ProgressSnapshot(
            source_identity="20240301",
            results=[Succeeded(display_name="a.txt", directory_path="docs", output_text="x")],
            last_processed_index=1,
        ))
        report = await _runner(
            settings, FakeCatalog(abc_items), abc_source, FakeLLMClient(), store,
        ).run(fresh=True)
        assert report.resumed_from == 0
        assert len(abc_source.fetched) == 3

    @pytest.mark.asyncio
    async def test_changed_catalog_fails_fast(self, settings, store, abc_items, abc_source):
        store.save(ProgressSnapshot(
            source_identity="20240301",
            catalog_fingerprint="0000000000000000",
            results=[Skipped(display_name="a.txt", directory_path="docs", reason="unreadable")],
            last_processed_index=1,
        ))
        runner = _runner(settings, FakeCatalog(abc_items), abc_source, FakeLLMClient(), store)
        with pytest.raises(CatalogChanged):
            await runner.run()
        assert runner.state == RunState.FAILED
        assert abc_source.fetched == []
        assert store.exists()

    @pytest.mark.asyncio
    async def test_snapshot_longer_than_catalog(self, settings, store, abc_items, abc_source):
        results = [
            Succeeded(display_name=f"f{i}", directory_path="/", output_text="x")
            for i in range(5)
        ]
        store.save(ProgressSnapshot(
            source_identity="20240301", results=results, last_processed_index=5,
        ))
        with pytest.raises(CatalogChanged):
            await _runner(
                settings, FakeCatalog(abc_items), abc_source, FakeLLMClient(), store,
            ).run()

    @pytest.mark.asyncio
    async def test_complete_checkpoint_only_finalizes(self, settings, store, abc_items, abc_source):
        results = [
            Succeeded(display_name=i.display_name, directory_path=i.directory_path, output_text="x")
            for i in abc_items
        ]
        store.save(ProgressSnapshot(
            source_identity="20240301", results=results, last_processed_index=3,
        ))
        llm = FakeLLMClient()
        report = await _runner(settings, FakeCatalog(abc_items), abc_source, llm, store).run()
        assert llm.calls == 0
        assert report.newly_processed == 0
        assert not store.exists()


class TestFatalErrors:
    @pytest.mark.asyncio
    async def test_catalog_unavailable(self, settings, store, abc_source):
        class BrokenCatalog(FakeCatalog):
            def list(self):
                raise CatalogUnavailable("listing missing")

        runner = _runner(settings, BrokenCatalog([]), abc_source, FakeLLMClient(), store)
        with pytest.raises(CatalogUnavailable):
            await runner.run()
        assert runner.state == RunState.FAILED

    @pytest.mark.asyncio
    async def test_corrupt_checkpoint_is_surfaced(self, settings, store, abc_items, abc_source):
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text("{not json", encoding="utf-8")
        runner = _runner(settings, FakeCatalog(abc_items), abc_source, FakeLLMClient(), store)
        with pytest.raises(ProgressCorrupt):
            await runner.run()
        assert abc_source.fetched == []
        assert store.path.read_text(encoding="utf-8") == "{not json"

    @pytest.mark.asyncio
    async def test_artifact_failure_keeps_checkpoint(self, settings, store, abc_items, abc_source):
        class FailingSink(ResultSink):
            def persist(self, artifact):
                raise ArtifactWriteError(Path("x.csv"), "read-only")

        client = RateLimitedClient(abc_source, FakeLLMClient(), settings, sleep=SleepRecorder())
        sink = FailingSink(store, settings.reports_dir, artifact_format="csv")
        runner = BatchRunner(
            FakeCatalog(abc_items), store, client, sink, settings, sleep=SleepRecorder(),
        )
        with pytest.raises(ArtifactWriteError):
            await runner.run()

        assert runner.state == RunState.FAILED
        snapshot = store.load()
        assert snapshot is not None
        assert snapshot.last_processed_index == 3
