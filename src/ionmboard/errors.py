"""Error types raised by the assignment board and its store adapters."""
from __future__ import annotations

from typing import Any, Dict, Optional


class BoardError(Exception):
    """Base class; nothing derived from it is fatal to the process."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.context = context or {}


class StoreUnavailable(BoardError):
    """Fetching or subscribing to the staff store failed."""


class WriteFailed(BoardError):
    """An update, batch or bulk update was rejected by the store."""


class RecordNotFound(WriteFailed):
    def __init__(self, staff_id: str) -> None:
        super().__init__(f"staff record {staff_id!r} not found", {"id": staff_id})
        self.staff_id = staff_id


class StaleReference(BoardError):
    """A dragged staff id is no longer in the current collection."""


class ConfirmationRequired(BoardError):
    """A bulk action was requested without explicit confirmation."""


__all__ = [
    "BoardError",
    "StoreUnavailable",
    "WriteFailed",
    "RecordNotFound",
    "StaleReference",
    "ConfirmationRequired",
]
