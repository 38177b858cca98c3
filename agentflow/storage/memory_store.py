"""
Memory History Store - In-process history with a bounded run count.

The store caps the total number of runs it retains across all sessions.
When an append pushes the total over the cap, the globally oldest run is
evicted; a session emptied by eviction is removed. Sessions exist only once
they hold a run, so reading an unknown id stores nothing. This bounds memory for
long-lived processes and is a resource policy, not a correctness guarantee:
use FileHistoryStore when every run must be kept.
"""

import logging
from collections import deque
from datetime import timedelta

from agentflow.config import get_default_history_capacity
from agentflow.schemas.history import HistoryEntry, SessionStats, WorkflowSession, is_older_than
from agentflow.storage.history_store import HistoryStore, matches, paginate

logger = logging.getLogger(__name__)


class MemoryHistoryStore(HistoryStore):
    """
    In-memory HistoryStore.

    Args:
        capacity: Maximum runs retained across all sessions (<= 0 = unbounded).
            Defaults to the configured history_capacity (100).
    """

    def __init__(self, capacity: int | None = None):
        super().__init__()
        self.capacity = get_default_history_capacity() if capacity is None else capacity
        self._sessions: dict[str, WorkflowSession] = {}
        # Session id of every retained run, oldest first
        self._order: deque[str] = deque()

    def _new_session(self, session_id: str, workflow_id: str, user_id: str) -> WorkflowSession:
        return WorkflowSession(session_id=session_id, workflow_id=workflow_id, user_id=user_id)

    async def get_session(
        self,
        session_id: str,
        workflow_id: str = "",
        user_id: str = "",
    ) -> WorkflowSession:
        self.validate_session_id(session_id)
        session = self._sessions.get(session_id)
        if session is None:
            return self._new_session(session_id, workflow_id, user_id)
        return session.model_copy(deep=True)

    async def append_run(
        self,
        session_id: str,
        entry: HistoryEntry,
        workflow_id: str = "",
        user_id: str = "",
    ) -> None:
        self.validate_session_id(session_id)
        async with self._session_lock(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                session = self._sessions[session_id] = self._new_session(
                    session_id, workflow_id, user_id
                )
                logger.debug(f"Created session {session_id}")
            else:
                session.workflow_id = session.workflow_id or workflow_id
                session.user_id = session.user_id or user_id
            session.add_entry(entry)
            self._order.append(session_id)
            self._evict()

    def _evict(self) -> None:
        """Drop the oldest runs until the store is within capacity.

        Never awaits, so it cannot interleave with another session's update.
        """
        if self.capacity <= 0:
            return
        while len(self._order) > self.capacity:
            oldest_session_id = self._order.popleft()
            session = self._sessions.get(oldest_session_id)
            if session is None or not session.entries:
                continue
            evicted = session.entries.pop(0)
            logger.debug(
                f"Evicted run {evicted.run_id or '<unnamed>'} from session {oldest_session_id} "
                f"(capacity {self.capacity})"
            )
            if not session.entries:
                del self._sessions[oldest_session_id]

    async def delete_session(self, session_id: str) -> bool:
        async with self._session_lock(session_id):
            if self._sessions.pop(session_id, None) is None:
                return False
            self._order = deque(sid for sid in self._order if sid != session_id)
        logger.info(f"Deleted session {session_id}")
        return True

    async def list_sessions(
        self,
        workflow_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
        user_id: str | None = None,
    ) -> list[WorkflowSession]:
        sessions = [
            session.model_copy(deep=True)
            for session in self._sessions.values()
            if matches(session, workflow_id, user_id)
        ]
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return paginate(sessions, limit, offset)

    async def clear(self, older_than: timedelta) -> int:
        """Remove sessions not updated within ``older_than``. Returns how many."""
        stale = [
            session_id
            for session_id, session in self._sessions.items()
            if is_older_than(session, older_than)
        ]
        for session_id in stale:
            await self.delete_session(session_id)
        return len(stale)

    async def stats(self, workflow_id: str | None = None) -> SessionStats:
        sessions = [
            session
            for session in self._sessions.values()
            if workflow_id is None or session.workflow_id == workflow_id
        ]
        return SessionStats.from_sessions(sessions)

    @property
    def total_runs(self) -> int:
        return len(self._order)

    async def close(self) -> None:
        self._sessions.clear()
        self._order.clear()
