# src/batch/models.py — v3
"""Batch run models: RunState, RunReport, StatusReport."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class RunState(str, Enum):
    """BatchRunner lifecycle states."""

    IDLE = "idle"
    RESUMING = "resuming"
    PROCESSING = "processing"
    CHECKPOINTING = "checkpointing"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class RunReport(BaseModel):
    """Summary of one completed run."""

    source_identity: str
    state: RunState
    total_items: int
    resumed_from: int = 0
    newly_processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    checkpoints_written: int = 0
    checkpoint_failures: int = 0
    artifact_path: str | None = None
    duration_seconds: float = 0.0


class StatusReport(BaseModel):
    """Read-only view of checkpoint progress against a catalog."""

    checkpoint_path: str
    has_checkpoint: bool
    checkpoint_identity: str | None = None
    catalog_identity: str | None = None
    identity_matches: bool = False
    catalog_changed: bool = False
    processed: int = 0
    total: int | None = None
    remaining: int | None = None
    percent: float | None = None
    eta_seconds: float | None = None
    saved_at: datetime | None = None
