"""
History Store - The persistence capability behind workflow history.

A store is injected into a Workflow; it is the only mutable resource shared
between concurrent runs. Implementations serialize access per session id so
that runs under different sessions never wait on each other.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from agentflow.schemas.history import HistoryEntry, WorkflowSession
from agentflow.storage.errors import InvalidSessionIDError


class HistoryStore(ABC):
    """
    Abstract history store.

    Example:
        store = MemoryHistoryStore(capacity=100)

        session = await store.get_session("user-42")
        await store.append_run("user-42", HistoryEntry.completed("hi", "hello"))
    """

    def __init__(self) -> None:
        self._session_locks: dict[str, asyncio.Lock] = {}
        # Tasks holding or waiting on each lock
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        """
        Hold the lock guarding a single session id.

        The lock is created on first use and forgotten once no task holds or
        waits on it, so idle session ids do not accumulate locks.
        """
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = self._session_locks[session_id] = asyncio.Lock()
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[session_id] - 1
            if remaining:
                self._lock_users[session_id] = remaining
            else:
                del self._lock_users[session_id]
                del self._session_locks[session_id]

    @staticmethod
    def validate_session_id(session_id: str) -> None:
        if not session_id or not session_id.strip():
            raise InvalidSessionIDError(session_id, "session id cannot be empty")

    @abstractmethod
    async def get_session(
        self,
        session_id: str,
        workflow_id: str = "",
        user_id: str = "",
    ) -> WorkflowSession:
        """
        Return the session for ``session_id``.

        An unknown id yields a new empty session carrying ``workflow_id`` and
        ``user_id``; nothing is stored until the first ``append_run``. The
        returned object is a detached snapshot; mutating it does not change
        what the store holds.
        """

    @abstractmethod
    async def append_run(
        self,
        session_id: str,
        entry: HistoryEntry,
        workflow_id: str = "",
        user_id: str = "",
    ) -> None:
        """Append one run to a session, creating the session if needed."""

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        """Delete a session. Returns False if it did not exist."""

    @abstractmethod
    async def list_sessions(
        self,
        workflow_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
        user_id: str | None = None,
    ) -> list[WorkflowSession]:
        """List sessions, most recently updated first, optionally for one workflow or user."""

    async def list_user_sessions(
        self,
        user_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[WorkflowSession]:
        """List the sessions recorded for ``user_id``."""
        return await self.list_sessions(user_id=user_id, limit=limit, offset=offset)

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None


def matches(session: WorkflowSession, workflow_id: str | None, user_id: str | None) -> bool:
    """True when ``session`` passes the optional workflow and user filters."""
    if workflow_id is not None and session.workflow_id != workflow_id:
        return False
    return user_id is None or session.user_id == user_id


def paginate(sessions: list[WorkflowSession], limit: int, offset: int) -> list[WorkflowSession]:
    """Apply offset/limit paging (limit <= 0 means no limit)."""
    if offset > 0:
        sessions = sessions[offset:]
    if limit > 0:
        sessions = sessions[:limit]
    return sessions
