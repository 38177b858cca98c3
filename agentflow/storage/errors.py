"""History store exceptions."""


class HistoryStoreError(Exception):
    """Raised when a history store cannot read or record a session."""

    def __init__(self, message: str, session_id: str = "", operation: str = ""):
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.operation = operation


class InvalidSessionIDError(HistoryStoreError, ValueError):
    """Raised for empty or unsafe session ids."""

    def __init__(self, session_id: str, reason: str = "invalid session id"):
        super().__init__(f"{reason}: {session_id!r}", session_id)


__all__ = ["HistoryStoreError", "InvalidSessionIDError"]
