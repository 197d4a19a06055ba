# tests/conftest.py — v2
"""Shared test fixtures for all unit tests.

Provides in-memory fakes for the catalog, content source and LLM client,
a recording sleep, and Settings tuned for fast, deterministic runs.
No external dependencies: all I/O except the checkpoint/artifact files
under tmp_path is faked.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from docbrief.catalog.base_catalog import BaseCatalog
from docbrief.checkpoint.progress_store import ProgressStore
from docbrief.config.settings import Settings
from docbrief.core.models import SourceRef, WorkItem
from docbrief.llm.base_client import BaseLLMClient
from docbrief.llm.models import LLMResponse, Message
from docbrief.output.result_sink import ResultSink
from docbrief.storage.base_content_source import (
    BaseContentSource,
    ContentUnavailable,
    FetchedContent,
)

TEXT_A = b"Quarterly revenue grew 12% driven by the new product line.\n" * 17
BINARY_B = bytes(range(0, 8)) * 256
TEXT_C = b"Board approved the merger on 3 March.\n" * 13


# === FAKES ===


class FakeCatalog(BaseCatalog):
    """Fixed list of work items under a chosen identity."""

    def __init__(self, items: list[WorkItem], identity: str = "20240301") -> None:
        self._items = list(items)
        self._identity = identity
        self.list_calls = 0

    @property
    def source_identity(self) -> str:
        return self._identity

    @property
    def location(self) -> str:
        return f"/reports/s3_daily_uploads_{self._identity}.xlsx"

    def list(self) -> list[WorkItem]:
        self.list_calls += 1
        return list(self._items)


class FakeContentSource(BaseContentSource):
    """Serves bodies from a dict keyed by object path."""

    def __init__(self, bodies: dict[str, bytes], failing: set[str] | None = None) -> None:
        self._bodies = bodies
        self._failing = failing or set()
        self.fetched: list[str] = []

    async def fetch(self, ref: SourceRef, max_bytes: int) -> FetchedContent:
        self.fetched.append(ref.path)
        if ref.path in self._failing or ref.path not in self._bodies:
            raise ContentUnavailable(ref, "NoSuchKey")
        data = self._bodies[ref.path]
        if len(data) > max_bytes:
            return FetchedContent(data=data[:max_bytes], total_bytes=len(data), truncated=True)
        return FetchedContent(data=data, total_bytes=len(data))


class FakeLLMClient(BaseLLMClient):
    """Scripted LLM: each call pops the next scripted item.

    A scripted Exception is raised; a string is returned as content. With an
    empty script, replies are derived from the prompt's file name so
    repeated runs produce identical outputs.
    """

    def __init__(self, script: list[object] | None = None) -> None:
        self.script = list(script or [])
        self.prompts: list[str] = []

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 200,
        temperature: float = 0.3,
    ) -> LLMResponse:
        prompt = messages[-1].content
        self.prompts.append(prompt)
        if self.script:
            step = self.script.pop(0)
            if isinstance(step, Exception):
                raise step
            content = str(step)
        else:
            content = f"Line 1 about {_file_name(prompt)}\nLine 2\nLine 3"
        return LLMResponse(content=content, model="fake", provider="fake")

    @property
    def provider_name(self) -> str:
        return "fake"

    @property
    def calls(self) -> int:
        return len(self.prompts)


class SleepRecorder:
    """Drop-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _file_name(prompt: str) -> str:
    for line in prompt.splitlines():
        if line.startswith("File: "):
            return line[len("File: "):]
    return "?"


def make_item(key: str, size: int = 0, bucket: str = "uploads") -> WorkItem:
    return WorkItem.from_key(bucket, key, size)


# === FIXTURES ===


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment, writing under tmp_path."""
    return Settings(
        _env_file=None,
        anthropic_api_key="test-key",
        reports_dir=tmp_path / "reports",
        checkpoint_path=tmp_path / "reports" / "progress_summaries.json",
        artifact_format="csv",
    )


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def abc_items() -> list[WorkItem]:
    """A (text, 1KB), B (binary, 2KB), C (text, 500B)."""
    return [
        make_item("docs/a.txt", len(TEXT_A)),
        make_item("docs/b.bin", len(BINARY_B)),
        make_item("docs/c.txt", len(TEXT_C)),
    ]


@pytest.fixture
def abc_source() -> FakeContentSource:
    return FakeContentSource(
        {"docs/a.txt": TEXT_A, "docs/b.bin": BINARY_B, "docs/c.txt": TEXT_C}
    )


@pytest.fixture
def store(settings: Settings) -> ProgressStore:
    return ProgressStore(settings.checkpoint_path)


@pytest.fixture
def sink(store: ProgressStore, settings: Settings) -> ResultSink:
    return ResultSink(store, settings.reports_dir, artifact_format="csv")


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    """Factory for Settings with overrides, isolated from the environment."""

    def _make(**overrides: object) -> Settings:
        base: dict[str, object] = {
            "anthropic_api_key": "test-key",
            "reports_dir": tmp_path / "reports",
            "checkpoint_path": tmp_path / "reports" / "progress_summaries.json",
            "artifact_format": "csv",
        }
        base.update(overrides)
        return Settings(_env_file=None, **base)  # type: ignore[arg-type]

    return _make
