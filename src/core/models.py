# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

Other modules import these types from here and never redefine them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

SNAPSHOT_SCHEMA_VERSION = 1


# === WORK ITEMS ===


class SourceRef(BaseModel):
    """Location of one object in the object store."""

    model_config = ConfigDict(frozen=True)

    container: str
    path: str

    def __str__(self) -> str:
        return f"s3://{self.container}/{self.path}"


class WorkItem(BaseModel):
    """One catalog row. Catalog order defines processing and checkpoint order."""

    model_config = ConfigDict(frozen=True)

    source_ref: SourceRef
    display_name: str
    directory_path: str
    size_bytes: int = 0

    @classmethod
    def from_key(cls, container: str, key: str, size_bytes: int = 0) -> WorkItem:
        """Build a WorkItem from a bucket/key pair, splitting at the last '/'."""
        idx = key.rfind("/")
        display_name = key if idx == -1 else key[idx + 1:]
        directory_path = "/" if idx == -1 else key[:idx]
        return cls(
            source_ref=SourceRef(container=container, path=key),
            display_name=display_name,
            directory_path=directory_path,
            size_bytes=size_bytes,
        )


# === RESULTS ===


class _ResultBase(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    display_name: str
    directory_path: str


class Succeeded(_ResultBase):
    """Remote generation produced usable text."""

    status: Literal["succeeded"] = "succeeded"
    output_text: str


class Skipped(_ResultBase):
    """Item deliberately not sent to the remote service."""

    status: Literal["skipped"] = "skipped"
    reason: str

    @property
    def output_text(self) -> str:
        if self.reason == "unreadable":
            return "Binary file or unable to read content"
        return f"Skipped ({self.reason})"


class Failed(_ResultBase):
    """Item could not be processed; the batch carried on."""

    status: Literal["failed"] = "failed"
    reason: str

    @property
    def output_text(self) -> str:
        return f"Error generating output ({self.reason})"


ProcessedResult = Annotated[
    Union[Succeeded, Skipped, Failed], Field(discriminator="status")
]


# === CHECKPOINT ===


class ProgressSnapshot(BaseModel):
    """Durable record of a strict prefix of one run's results.

    Serialized with camelCase keys (sourceIdentity, lastProcessedIndex,
    savedAt, ...) through model_dump_json(by_alias=True).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    schema_version: int = SNAPSHOT_SCHEMA_VERSION
    source_identity: str
    catalog_path: str | None = None
    catalog_fingerprint: str | None = None
    results: list[ProcessedResult] = Field(default_factory=list)
    last_processed_index: int = 0
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def check_prefix_invariant(self) -> ProgressSnapshot:
        if self.last_processed_index != len(self.results):
            raise ValueError(
                f"last_processed_index ({self.last_processed_index}) "
                f"!= len(results) ({len(self.results)})"
            )
        return self


# === FINAL ARTIFACT ===


class ArtifactRow(BaseModel):
    """One line of the final report."""

    display_name: str
    directory_path: str
    output_text: str


class FinalArtifact(BaseModel):
    """Full ordered result set tagged with the originating catalog identity."""

    source_identity: str
    rows: list[ArtifactRow] = Field(default_factory=list)
