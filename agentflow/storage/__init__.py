"""History storage backends."""

from agentflow.storage.errors import HistoryStoreError, InvalidSessionIDError
from agentflow.storage.file_store import FileHistoryStore
from agentflow.storage.history_store import HistoryStore
from agentflow.storage.memory_store import MemoryHistoryStore

__all__ = [
    "HistoryStore",
    "MemoryHistoryStore",
    "FileHistoryStore",
    "HistoryStoreError",
    "InvalidSessionIDError",
]
