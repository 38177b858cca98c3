"""
Execution Context - Mutable state threaded through one workflow run.

Every node reads ``output`` as its input and writes its result back to it.
Named results go into ``values`` under keys prefixed with the writing node's id.
``session_state`` carries caller-owned state across nodes: it is seeded from
Workflow.run(session_state=...) and exported on the result.
A context belongs to exactly one Workflow.run() call; Parallel branches work
on forks and the parent copies their results back.
"""

import copy
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from agentflow.schemas.history import HistoryEntry
from agentflow.workflow.history import format_history_context

SessionState = dict[str, Any]


def clone_session_state(state: SessionState | None) -> SessionState:
    """Deep copy of ``state``; a branch or caller can mutate it freely."""
    return copy.deepcopy(state) if state else {}


def merge_session_states(original: SessionState, branches: Iterable[SessionState]) -> SessionState:
    """
    Fold the session state of concurrent branches back into ``original``.

    A branch contributes every key it added or changed relative to
    ``original``; when branches write the same key the later branch wins.
    Keys a branch removed are kept. ``original`` itself is not modified.
    """
    merged = clone_session_state(original)
    for state in branches:
        for key, value in state.items():
            if key not in original or original[key] != value:
                merged[key] = value
    return merged


@dataclass
class ExecutionContext:
    """Per-run state shared by the nodes of a workflow."""

    input: str
    output: str = ""
    values: dict[str, Any] = field(default_factory=dict)
    session_id: str = ""
    user_id: str = ""
    run_id: str = ""

    # Read-only snapshot of the session's recent runs, oldest first
    history: tuple[HistoryEntry, ...] = ()
    add_history_to_steps: bool = False
    num_history_runs: int = 0

    metadata: dict[str, Any] = field(default_factory=dict)
    session_state: SessionState = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.history = tuple(self.history)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    # === SESSION STATE ===

    def set_session_state(self, key: str, value: Any) -> None:
        self.session_state[key] = value

    def get_session_state(self, key: str, default: Any = None) -> Any:
        return self.session_state.get(key, default)

    def export_session_state(self) -> SessionState:
        """Snapshot of the session state, detached from the running context."""
        return clone_session_state(self.session_state)

    # === HISTORY INTROSPECTION ===

    def has_history(self) -> bool:
        return len(self.history) > 0

    def history_count(self) -> int:
        return len(self.history)

    def last_history_entry(self) -> HistoryEntry | None:
        if not self.history:
            return None
        return self.history[-1]

    def _history_entry(self, index: int) -> HistoryEntry | None:
        try:
            return self.history[index]
        except IndexError:
            return None

    def history_input(self, index: int) -> str:
        """Input of the history entry at ``index`` (-1 is the most recent), or ""."""
        entry = self._history_entry(index)
        return entry.input if entry else ""

    def history_output(self, index: int) -> str:
        """Output of the history entry at ``index`` (-1 is the most recent), or ""."""
        entry = self._history_entry(index)
        return entry.output if entry else ""

    @property
    def history_context(self) -> str:
        """The history snapshot rendered for agent instructions."""
        return format_history_context(self.history)

    # === BRANCHING ===

    def fork(self) -> "ExecutionContext":
        """
        Independent copy for a concurrent branch.

        The branch starts from the same output and sees the same history
        snapshot; writes to its values, output and session state stay private
        to the fork.
        """
        return ExecutionContext(
            input=self.input,
            output=self.output,
            values=dict(self.values),
            session_id=self.session_id,
            user_id=self.user_id,
            run_id=self.run_id,
            history=self.history,
            add_history_to_steps=self.add_history_to_steps,
            num_history_runs=self.num_history_runs,
            metadata=dict(self.metadata),
            session_state=clone_session_state(self.session_state),
        )
