"""In-memory staff store used for tests, demos and the default server."""
from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..config import CONFIG
from ..errors import RecordNotFound, WriteFailed
from ..logging_setup import get_logger
from ..models import ChangeEvent, ChangeKind, FieldFilter, RecordUpdate, StaffRecord
from .base import StaffStore, check_fields
from .feed import ChangeFeed, RecordCallback

logger = get_logger(__name__)


class MemoryStaffStore(StaffStore):
    def __init__(self, records: Iterable[StaffRecord] = (), max_events: Optional[int] = None) -> None:
        self._lock = threading.RLock()
        self._records: Dict[str, StaffRecord] = {}
        self.feed = ChangeFeed(max_events or CONFIG.change_log_size)
        for record in records:
            self._records[record.id] = record

    def fetch_all(self) -> List[StaffRecord]:
        with self._lock:
            return list(self._records.values())

    def get(self, staff_id: str) -> Optional[StaffRecord]:
        with self._lock:
            return self._records.get(staff_id)

    def _apply(self, staff_id: str, fields: Mapping[str, Any]) -> Tuple[StaffRecord, StaffRecord]:
        current = self._records.get(staff_id)
        if current is None:
            raise RecordNotFound(staff_id)
        try:
            updated = current.merged(check_fields(fields))
        except ValueError as exc:
            raise WriteFailed(str(exc), {"id": staff_id}) from exc
        self._records[staff_id] = updated
        return current, updated

    def update(self, staff_id: str, fields: Mapping[str, Any]) -> StaffRecord:
        with self._lock:
            old, new = self._apply(staff_id, fields)
            self.feed.record(ChangeKind.UPDATE, new=new, old=old)
        self.feed.flush()
        return new

    def apply_batch(self, updates: Iterable[RecordUpdate]) -> int:
        updates = list(updates)
        changed = 0
        with self._lock:
            for upd in updates:
                try:
                    check_fields(upd.fields)
                except ValueError as exc:
                    raise WriteFailed(str(exc), {"id": upd.staff_id}) from exc
            for upd in updates:
                if upd.staff_id not in self._records:
                    logger.warning("Batch update skipped missing staff %s", upd.staff_id)
                    continue
                old, new = self._apply(upd.staff_id, upd.fields)
                self.feed.record(ChangeKind.UPDATE, new=new, old=old)
                changed += 1
        self.feed.flush()
        return changed

    def bulk_update(self, where: FieldFilter, fields: Mapping[str, Any]) -> int:
        changed = 0
        with self._lock:
            try:
                check_fields(fields)
            except ValueError as exc:
                raise WriteFailed(str(exc)) from exc
            for staff_id in [sid for sid, rec in self._records.items() if where(rec)]:
                old, new = self._apply(staff_id, fields)
                self.feed.record(ChangeKind.UPDATE, new=new, old=old)
                changed += 1
        self.feed.flush()
        return changed

    def insert(self, record: StaffRecord) -> StaffRecord:
        with self._lock:
            if record.id in self._records:
                raise WriteFailed(f"staff record {record.id!r} already exists", {"id": record.id})
            self._records[record.id] = record
            self.feed.record(ChangeKind.INSERT, new=record)
        self.feed.flush()
        return record

    def delete(self, staff_id: str) -> StaffRecord:
        with self._lock:
            old = self._records.pop(staff_id, None)
            if old is None:
                raise RecordNotFound(staff_id)
            self.feed.record(ChangeKind.DELETE, old=old)
        self.feed.flush()
        return old

    def subscribe(self, on_insert: RecordCallback, on_update: RecordCallback, on_delete: RecordCallback) -> int:
        return self.feed.subscribe(on_insert, on_update, on_delete)

    def unsubscribe(self, handle: Any) -> None:
        self.feed.unsubscribe(handle)

    def events_since(self, seq: int, timeout: float = 0.0) -> Tuple[int, Optional[List[ChangeEvent]]]:
        return self.feed.events_since(seq, timeout=timeout)

    def latest_seq(self) -> int:
        return self.feed.seq


__all__ = ["MemoryStaffStore"]
