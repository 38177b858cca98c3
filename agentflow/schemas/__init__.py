"""Persisted schemas."""

from agentflow.schemas.history import HistoryEntry, RunStatus, SessionStats, WorkflowSession

__all__ = ["HistoryEntry", "RunStatus", "SessionStats", "WorkflowSession"]
