"""
File History Store - Durable session history on the local filesystem.

Layout:
  {base_path}/sessions/{session_id}/
      └── history.json      # WorkflowSession, rewritten atomically per append

Unlike MemoryHistoryStore, every run is kept. Blocking file I/O runs in a
worker thread so the event loop keeps serving other runs.
"""

import asyncio
import logging
import shutil
from pathlib import Path

from pydantic import ValidationError

from agentflow.schemas.history import HistoryEntry, WorkflowSession
from agentflow.storage.errors import HistoryStoreError, InvalidSessionIDError
from agentflow.storage.history_store import HistoryStore, matches, paginate
from agentflow.utils.io import atomic_write

logger = logging.getLogger(__name__)


class FileHistoryStore(HistoryStore):
    """
    HistoryStore backed by one JSON file per session.

    Args:
        base_path: Root directory (e.g., ~/.agentflow/workflows/support_bot)
    """

    HISTORY_FILE = "history.json"

    def __init__(self, base_path: Path | str):
        super().__init__()
        self.base_path = Path(base_path)
        self.sessions_dir = self.base_path / "sessions"

    @staticmethod
    def validate_session_id(session_id: str) -> None:
        HistoryStore.validate_session_id(session_id)
        if session_id == "." or ".." in session_id or "/" in session_id or "\\" in session_id:
            raise InvalidSessionIDError(session_id, "session id cannot contain path components")

    def get_session_path(self, session_id: str) -> Path:
        return self.sessions_dir / session_id

    def get_history_path(self, session_id: str) -> Path:
        return self.get_session_path(session_id) / self.HISTORY_FILE

    # === BLOCKING HELPERS (run in a worker thread) ===

    def _read(self, session_id: str) -> WorkflowSession | None:
        history_path = self.get_history_path(session_id)
        if not history_path.exists():
            return None
        try:
            return WorkflowSession.model_validate_json(history_path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise HistoryStoreError(
                f"Corrupt history file {history_path}: {e}",
                session_id=session_id,
                operation="read",
            ) from e

    def _write(self, session: WorkflowSession) -> None:
        history_path = self.get_history_path(session.session_id)
        history_path.parent.mkdir(parents=True, exist_ok=True)
        with atomic_write(history_path) as f:
            f.write(session.model_dump_json(indent=2))

    # === HistoryStore API ===

    async def get_session(
        self,
        session_id: str,
        workflow_id: str = "",
        user_id: str = "",
    ) -> WorkflowSession:
        self.validate_session_id(session_id)
        async with self._session_lock(session_id):
            session = await asyncio.to_thread(self._read, session_id)
        if session is None:
            return WorkflowSession(session_id=session_id, workflow_id=workflow_id, user_id=user_id)
        return session

    async def append_run(
        self,
        session_id: str,
        entry: HistoryEntry,
        workflow_id: str = "",
        user_id: str = "",
    ) -> None:
        self.validate_session_id(session_id)
        async with self._session_lock(session_id):
            session = await asyncio.to_thread(self._read, session_id)
            if session is None:
                session = WorkflowSession(
                    session_id=session_id,
                    workflow_id=workflow_id,
                    user_id=user_id,
                )
                logger.debug(f"Created session {session_id} at {self.get_session_path(session_id)}")
            else:
                session.workflow_id = session.workflow_id or workflow_id
                session.user_id = session.user_id or user_id
            session.add_entry(entry)
            await asyncio.to_thread(self._write, session)
        logger.debug(f"Appended run {entry.run_id} to session {session_id}")

    async def delete_session(self, session_id: str) -> bool:
        self.validate_session_id(session_id)

        def _delete() -> bool:
            session_path = self.get_session_path(session_id)
            if not session_path.exists():
                return False
            shutil.rmtree(session_path)
            return True

        async with self._session_lock(session_id):
            deleted = await asyncio.to_thread(_delete)
        if deleted:
            logger.info(f"Deleted session {session_id}")
        return deleted

    async def list_sessions(
        self,
        workflow_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
        user_id: str | None = None,
    ) -> list[WorkflowSession]:
        def _scan() -> list[WorkflowSession]:
            sessions: list[WorkflowSession] = []

            if not self.sessions_dir.exists():
                return sessions

            for session_dir in self.sessions_dir.iterdir():
                if not session_dir.is_dir():
                    continue

                history_path = session_dir / self.HISTORY_FILE
                if not history_path.exists():
                    continue

                try:
                    session = WorkflowSession.model_validate_json(
                        history_path.read_text(encoding="utf-8")
                    )
                except (OSError, ValidationError) as e:
                    logger.warning(f"Failed to load {history_path}: {e}")
                    continue

                if not matches(session, workflow_id, user_id):
                    continue

                sessions.append(session)

            sessions.sort(key=lambda s: s.updated_at, reverse=True)
            return sessions

        return paginate(await asyncio.to_thread(_scan), limit, offset)
