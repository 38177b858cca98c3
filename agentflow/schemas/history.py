"""
History Schema - Recorded workflow runs grouped by session.

A WorkflowSession is the unit a HistoryStore persists: an append-only,
chronologically ordered list of HistoryEntry records for one session id.
Everything else (counts, replay windows) is derived on read.
"""

from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RunStatus(StrEnum):
    """Status of a workflow run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"  # Finished successfully
    FAILED = "failed"  # A node raised
    CANCELLED = "cancelled"  # Task cancelled or timed out


class HistoryEntry(BaseModel):
    """
    One recorded run of a workflow.

    Entries are immutable once created; a run attached to an
    ExecutionContext is a read-only snapshot.
    """

    run_id: str = ""
    input: str
    output: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)
    success: bool
    status: RunStatus = RunStatus.COMPLETED
    error: str | None = None
    last_node_id: str | None = None
    duration_ms: int = 0
    # Top-level step the run started from when it was resumed
    resumed_from: str | None = None

    model_config = {"frozen": True, "extra": "allow"}

    @classmethod
    def completed(
        cls,
        input: str,
        output: str,
        run_id: str = "",
        last_node_id: str | None = None,
        duration_ms: int = 0,
        resumed_from: str | None = None,
    ) -> "HistoryEntry":
        return cls(
            run_id=run_id,
            input=input,
            output=output,
            success=True,
            status=RunStatus.COMPLETED,
            last_node_id=last_node_id,
            duration_ms=duration_ms,
            resumed_from=resumed_from,
        )

    @classmethod
    def failed(
        cls,
        input: str,
        error: str,
        run_id: str = "",
        last_node_id: str | None = None,
        duration_ms: int = 0,
        cancelled: bool = False,
        resumed_from: str | None = None,
    ) -> "HistoryEntry":
        return cls(
            run_id=run_id,
            input=input,
            success=False,
            status=RunStatus.CANCELLED if cancelled else RunStatus.FAILED,
            error=error,
            last_node_id=last_node_id,
            duration_ms=duration_ms,
            resumed_from=resumed_from,
        )


class WorkflowSession(BaseModel):
    """
    All recorded runs for a single session id.

    Entries are kept in append order. Only the most recent N are ever
    replayed into a run, but the session itself may hold more.
    """

    session_id: str
    workflow_id: str = ""
    user_id: str = ""
    entries: list[HistoryEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "allow"}

    def add_entry(self, entry: HistoryEntry) -> None:
        """Append a run to the session."""
        self.entries.append(entry)
        self.updated_at = _utcnow()

    def get_history(self, num_runs: int) -> list[HistoryEntry]:
        """
        Return the most recent ``num_runs`` entries in chronological order.

        A non-positive ``num_runs`` returns every entry.
        """
        if num_runs <= 0:
            return list(self.entries)
        return list(self.entries[-num_runs:])

    def last_entry(self) -> HistoryEntry | None:
        if not self.entries:
            return None
        return self.entries[-1]

    def count_runs(self) -> int:
        return len(self.entries)

    def count_successful_runs(self) -> int:
        return sum(1 for entry in self.entries if entry.success)

    def count_failed_runs(self) -> int:
        return sum(1 for entry in self.entries if entry.status == RunStatus.FAILED)

    def count_cancelled_runs(self) -> int:
        return sum(1 for entry in self.entries if entry.status == RunStatus.CANCELLED)

    def clear(self) -> None:
        """Remove every recorded run."""
        self.entries = []
        self.updated_at = _utcnow()


class SessionStats(BaseModel):
    """Aggregate numbers across the sessions of a store."""

    total_sessions: int = 0
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    cancelled_runs: int = 0
    total_duration_ms: int = 0

    @computed_field
    @property
    def average_duration_ms(self) -> float:
        if self.total_runs == 0:
            return 0.0
        return self.total_duration_ms / self.total_runs

    @computed_field
    @property
    def success_rate(self) -> float:
        if self.total_runs == 0:
            return 0.0
        return self.successful_runs / self.total_runs

    @classmethod
    def from_sessions(cls, sessions: list[WorkflowSession]) -> "SessionStats":
        stats = cls(total_sessions=len(sessions))
        for session in sessions:
            stats.total_runs += session.count_runs()
            stats.successful_runs += session.count_successful_runs()
            stats.failed_runs += session.count_failed_runs()
            stats.cancelled_runs += session.count_cancelled_runs()
            stats.total_duration_ms += sum(entry.duration_ms for entry in session.entries)
        return stats


def is_older_than(session: WorkflowSession, age: timedelta, now: datetime | None = None) -> bool:
    """True when the session has not been updated within ``age``."""
    now = now or _utcnow()
    return now - session.updated_at > age
