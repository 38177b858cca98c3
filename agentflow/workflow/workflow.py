"""
Workflow - Runs a node graph over one input.

The workflow:
1. Optionally loads the session's recent history (fail fast on store errors)
2. Seeds an ExecutionContext with the input
3. Executes the top-level nodes in order (or from a resume step), threading
   ``context.output`` and ``context.session_state``
4. Records the run in the session history
5. Returns a WorkflowResult

A Workflow is immutable once constructed; all per-run state lives in the
ExecutionContext created by run(), so one instance can serve many
concurrent runs.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from agentflow.config import get_default_num_history_runs
from agentflow.observability import set_trace_context
from agentflow.schemas.history import HistoryEntry, RunStatus, WorkflowSession
from agentflow.storage.errors import HistoryStoreError
from agentflow.storage.history_store import HistoryStore
from agentflow.storage.memory_store import MemoryHistoryStore
from agentflow.workflow.context import ExecutionContext, SessionState, clone_session_state
from agentflow.workflow.errors import (
    NodeConfigurationError,
    ResumeStepNotFoundError,
    WorkflowError,
    WorkflowRunError,
)
from agentflow.workflow.node import Node, validate_graph

logger = logging.getLogger(__name__)


@dataclass
class WorkflowConfig:
    """
    Options recognised when building a Workflow.

    Attributes:
        name: Label for diagnostics
        id: Stable id (default "workflow-<name>")
        steps: Ordered top-level nodes
        enable_history: Record runs and replay them into later runs of a session
        history_store: Store implementation (default: MemoryHistoryStore)
        num_history_runs: Replay window (<= 0 uses the configured default, 3)
        add_history_to_steps: Hand the replayed history to every Step's agent
        record_failed_runs: Also record failed and cancelled runs
    """

    name: str = ""
    id: str = ""
    steps: list[Node] = field(default_factory=list)
    enable_history: bool = False
    history_store: HistoryStore | None = None
    num_history_runs: int = 0
    add_history_to_steps: bool = False
    record_failed_runs: bool = True


@dataclass(frozen=True)
class WorkflowResult:
    """Outcome of a successful run."""

    output: str
    values: MappingProxyType
    run_id: str
    session_id: str = ""
    history: tuple[HistoryEntry, ...] = ()
    path: tuple[str, ...] = ()
    duration_ms: int = 0
    status: RunStatus = RunStatus.COMPLETED
    # Detached snapshot of context.session_state at the end of the run
    session_state: SessionState = field(default_factory=dict)
    resumed_from: str | None = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def has_history(self) -> bool:
        return len(self.history) > 0

    def history_count(self) -> int:
        return len(self.history)

    def last_history_entry(self) -> HistoryEntry | None:
        if not self.history:
            return None
        return self.history[-1]


@dataclass
class _RunOptions:
    """Per-call options of Workflow.run(), normalized."""

    user_id: str
    metadata: dict[str, Any]
    session_state: SessionState
    resume_from: str | None


class Workflow:
    """
    Ordered pipeline of nodes with optional session history.

    Example:
        workflow = Workflow.create(
            name="support",
            steps=[classify, Condition(output_contains("refund"), refunds, answer)],
            enable_history=True,
            num_history_runs=5,
            add_history_to_steps=True,
        )

        result = await workflow.run("Where is my order?", session_id="user-42")
        print(result.output)
    """

    def __init__(self, config: WorkflowConfig):
        if not config.steps:
            raise NodeConfigurationError("workflow requires at least one step")

        self.name = config.name or config.id or f"workflow-{uuid.uuid4().hex[:8]}"
        self.id = config.id or f"workflow-{self.name}"
        self.steps: tuple[Node, ...] = tuple(config.steps)
        self.enable_history = config.enable_history
        self.num_history_runs = (
            config.num_history_runs
            if config.num_history_runs > 0
            else get_default_num_history_runs()
        )
        self.add_history_to_steps = config.add_history_to_steps
        self.record_failed_runs = config.record_failed_runs

        history_store = config.history_store
        if self.enable_history and history_store is None:
            history_store = MemoryHistoryStore()
        self.history_store = history_store

        for warning in validate_graph(self.steps):
            logger.warning(f"⚠ Workflow {self.name}: {warning}")

    @classmethod
    def create(cls, **options: Any) -> "Workflow":
        """Build a workflow from WorkflowConfig keyword options."""
        return cls(WorkflowConfig(**options))

    def __repr__(self) -> str:
        return f"Workflow(id={self.id!r}, steps={[node.id for node in self.steps]})"

    # === HISTORY ===

    def _history_active(self, session_id: str) -> bool:
        return self.enable_history and self.history_store is not None and bool(session_id)

    async def get_session(self, session_id: str) -> WorkflowSession:
        """Return the recorded session (for introspection such as count_runs())."""
        if self.history_store is None:
            raise WorkflowError(f"workflow {self.id} has no history store")
        return await self.history_store.get_session(session_id, workflow_id=self.id)

    async def _load_history(self, session_id: str, user_id: str) -> list[HistoryEntry]:
        assert self.history_store is not None
        try:
            session = await self.history_store.get_session(
                session_id, workflow_id=self.id, user_id=user_id
            )
        except HistoryStoreError:
            raise
        except Exception as e:
            raise HistoryStoreError(
                f"failed to load session {session_id}: {e}",
                session_id=session_id,
                operation="get_session",
            ) from e

        history = session.get_history(self.num_history_runs)
        logger.debug(f"Loaded {len(history)} history entries for session {session_id}")
        return history

    async def _append_run(self, session_id: str, entry: HistoryEntry, user_id: str = "") -> None:
        assert self.history_store is not None
        try:
            await self.history_store.append_run(
                session_id, entry, workflow_id=self.id, user_id=user_id
            )
        except HistoryStoreError:
            raise
        except Exception as e:
            raise HistoryStoreError(
                f"failed to record run {entry.run_id} in session {session_id}: {e}",
                session_id=session_id,
                operation="append_run",
            ) from e

    async def _record_unsuccessful_run(
        self, session_id: str, entry: HistoryEntry, user_id: str = ""
    ) -> None:
        """Record a failed or cancelled run; a store error here is logged, not raised."""
        try:
            await self._append_run(session_id, entry, user_id)
        except HistoryStoreError as e:
            logger.error(f"Failed to record {entry.status} run {entry.run_id}: {e}")

    # === EXECUTION ===

    async def run(
        self,
        input: str,
        session_id: str | None = None,
        *,
        user_id: str = "",
        metadata: dict[str, Any] | None = None,
        session_state: SessionState | None = None,
        resume_from: str | None = None,
        timeout: float | None = None,
    ) -> WorkflowResult:
        """
        Execute the workflow on ``input``.

        Args:
            input: Initial text; becomes ``context.output`` for the first node
            session_id: Session to load history from and record into. Without
                it history is off for this run even if the workflow enables it.
            user_id: Recorded on the session when its first run is stored
            metadata: Copied into ``context.metadata``
            session_state: Seeds ``context.session_state``; the caller's dict is
                copied, never mutated
            resume_from: Id of the top-level step to start from; earlier steps
                are skipped
            timeout: Optional limit in seconds for the whole run

        Returns:
            WorkflowResult with the final output, named values and session state

        Raises:
            ValueError: empty input
            ResumeStepNotFoundError: ``resume_from`` is not a top-level step id
            HistoryStoreError: history could not be loaded or the run recorded
            WorkflowRunError: a top-level node failed (the node's error is the cause)
            TimeoutError: ``timeout`` elapsed
            asyncio.CancelledError: the calling task was cancelled
        """
        options = _RunOptions(
            user_id=user_id,
            metadata=dict(metadata or {}),
            session_state=clone_session_state(session_state),
            resume_from=resume_from or None,
        )
        if timeout is not None:
            async with asyncio.timeout(timeout):
                return await self._run(input, session_id or "", options)
        return await self._run(input, session_id or "", options)

    def _start_index(self, resume_from: str | None) -> int:
        if resume_from is None:
            return 0
        for index, node in enumerate(self.steps):
            if node.id == resume_from:
                return index
        raise ResumeStepNotFoundError(self.id, resume_from, [node.id for node in self.steps])

    async def _run(self, input: str, session_id: str, options: _RunOptions) -> WorkflowResult:
        if not input:
            raise ValueError("input cannot be empty")
        start_index = self._start_index(options.resume_from)
        steps = self.steps[start_index:]

        run_id = f"run_{uuid.uuid4().hex}"
        set_trace_context(workflow_id=self.id, run_id=run_id, session_id=session_id, node_id=None)

        history_active = self._history_active(session_id)
        history: list[HistoryEntry] = []
        if history_active:
            history = await self._load_history(session_id, options.user_id)

        context = ExecutionContext(
            input=input,
            output=input,
            session_id=session_id,
            user_id=options.user_id,
            run_id=run_id,
            history=tuple(history),
            add_history_to_steps=self.add_history_to_steps,
            num_history_runs=self.num_history_runs,
            metadata=options.metadata,
            session_state=options.session_state,
        )

        resumed = f", resumed from: {options.resume_from}" if options.resume_from else ""
        logger.info(
            f"▶ Workflow {self.name}: {RunStatus.RUNNING} "
            f"(steps: {len(steps)}, history entries: {len(history)}{resumed})"
        )

        start = time.perf_counter()
        path: list[str] = []
        current: Node | None = None

        def elapsed_ms() -> int:
            return int((time.perf_counter() - start) * 1000)

        try:
            for sequence, node in enumerate(steps, start=1):
                # A pending cancellation is delivered here, before the next node
                await asyncio.sleep(0)
                current = node
                path.append(node.id)
                logger.info(f"   Step {sequence}/{len(steps)}: {node.name} ({node.node_type})")
                context.output = await node.execute(context)
        except asyncio.CancelledError:
            logger.warning(
                f"⏹ Workflow {self.name}: {RunStatus.CANCELLED} "
                f"at {current.id if current else 'start'}"
            )
            if history_active and self.record_failed_runs:
                entry = HistoryEntry.failed(
                    input=input,
                    error="run cancelled",
                    run_id=run_id,
                    last_node_id=current.id if current else None,
                    duration_ms=elapsed_ms(),
                    cancelled=True,
                    resumed_from=options.resume_from,
                )
                await asyncio.shield(
                    self._record_unsuccessful_run(session_id, entry, options.user_id)
                )
            raise
        except Exception as e:
            node_id = current.id if current else ""
            logger.error(f"✗ Workflow {self.name}: {RunStatus.FAILED} at {node_id}: {e}")
            if history_active and self.record_failed_runs:
                entry = HistoryEntry.failed(
                    input=input,
                    error=f"{type(e).__name__}: {e}",
                    run_id=run_id,
                    last_node_id=node_id,
                    duration_ms=elapsed_ms(),
                    resumed_from=options.resume_from,
                )
                await self._record_unsuccessful_run(session_id, entry, options.user_id)
            raise WorkflowRunError(self.id, node_id, run_id) from e

        duration_ms = elapsed_ms()
        if history_active:
            await self._append_run(
                session_id,
                HistoryEntry.completed(
                    input=input,
                    output=context.output,
                    run_id=run_id,
                    last_node_id=path[-1] if path else None,
                    duration_ms=duration_ms,
                    resumed_from=options.resume_from,
                ),
                options.user_id,
            )

        logger.info(
            f"✓ Workflow {self.name}: {RunStatus.COMPLETED}",
            extra={"latency_ms": duration_ms},
        )

        return WorkflowResult(
            output=context.output,
            values=MappingProxyType(dict(context.values)),
            run_id=run_id,
            session_id=session_id,
            history=context.history,
            path=tuple(path),
            duration_ms=duration_ms,
            session_state=context.export_session_state(),
            resumed_from=options.resume_from,
        )
