"""Staff record store interface."""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..models import ROLE_ADMIN, ROLE_USER, UNASSIGNED, ChangeEvent, FieldFilter, RecordUpdate, StaffRecord
from .feed import RecordCallback


class StaffStore(ABC):
    """Passive record store with a subscribe-to-changes capability.

    Writes are last-write-wins per field; nothing here locks records across
    calls.
    """

    @abstractmethod
    def fetch_all(self) -> List[StaffRecord]:
        """Return every record (raises StoreUnavailable)."""

    @abstractmethod
    def update(self, staff_id: str, fields: Mapping[str, Any]) -> StaffRecord:
        """Apply a partial update (raises RecordNotFound / WriteFailed)."""

    @abstractmethod
    def apply_batch(self, updates: Iterable[RecordUpdate]) -> int:
        """Apply updates together; ids that no longer exist are skipped.

        Returns the number of records changed.
        """

    @abstractmethod
    def bulk_update(self, where: FieldFilter, fields: Mapping[str, Any]) -> int:
        """Update every record matching ``where``; returns the match count."""

    @abstractmethod
    def insert(self, record: StaffRecord) -> StaffRecord:
        ...

    @abstractmethod
    def delete(self, staff_id: str) -> StaffRecord:
        ...

    @abstractmethod
    def subscribe(self, on_insert: RecordCallback, on_update: RecordCallback, on_delete: RecordCallback) -> Any:
        ...

    @abstractmethod
    def unsubscribe(self, handle: Any) -> None:
        ...

    @abstractmethod
    def events_since(self, seq: int, timeout: float = 0.0) -> Tuple[int, Optional[List[ChangeEvent]]]:
        ...

    def latest_seq(self) -> int:
        return self.events_since(0)[0]

    def close(self) -> None:
        pass


def check_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Reject updates that try to rewrite the record id."""
    clean = dict(fields)
    if "id" in clean:
        raise ValueError("record id cannot be updated")
    return clean


def new_staff_record(name: str, pin: str = "", role: Optional[str] = None, staff_id: Optional[str] = None) -> StaffRecord:
    """Build the record created on first login: unassigned, in prep."""
    name = (name or "").strip()
    if not name:
        raise ValueError("staff name is required")
    if role is None:
        role = ROLE_ADMIN if "admin" in name.lower() else ROLE_USER
    if role not in (ROLE_ADMIN, ROLE_USER):
        raise ValueError(f"unknown role {role!r}")
    return StaffRecord(
        id=staff_id or uuid.uuid4().hex,
        name=name,
        pin=pin or "1234",
        role=role,
        late_number=UNASSIGNED,
        status="prep",
    )


def register_staff(store: StaffStore, name: str, pin: str = "", role: Optional[str] = None) -> StaffRecord:
    return store.insert(new_staff_record(name, pin=pin, role=role))


__all__ = ["StaffStore", "check_fields", "new_staff_record", "register_staff"]
