"""realsync — Sync State & Run Records."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SyncMode(str, Enum):
    """Which window a sync run covers."""

    INCREMENTAL = "incremental"  # entity sync: only reals beyond the known count
    PARTIAL = "partial"  # event sync: the last hour only
    FULL = "full"  # everything upstream, upsert-only


class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ReconcileSummary(BaseModel):
    """Counts produced by one entity reconciliation."""

    user_id: str = ""
    projects: int = 0
    reals_fetched: int = 0
    reals_dropped: int = 0
    reals_written: int = 0
    reals_linked: int = 0
    units_written: int = 0


class EventSyncSummary(BaseModel):
    """Per-event-type outcome of one event sync run."""

    saved: Dict[str, int] = Field(default_factory=dict)
    failed: List[str] = Field(default_factory=list)
    durations_updated: Optional[int] = None


class SyncRunRecord(BaseModel):
    """Outcome of a single orchestrator run (or skipped fire)."""

    orchestrator: str
    mode: SyncMode
    status: RunStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    detail: Dict[str, Any] = Field(default_factory=dict)
