"""SQLite-backed staff store."""
from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..config import CONFIG
from ..errors import RecordNotFound, StoreUnavailable, WriteFailed
from ..logging_setup import get_logger
from ..models import WIRE_FIELDS, ChangeEvent, ChangeKind, FieldFilter, RecordUpdate, StaffRecord
from .base import StaffStore, check_fields
from .feed import ChangeFeed, RecordCallback

logger = get_logger(__name__)

TABLE = "ionm_staff"
_COLUMNS = WIRE_FIELDS + ("extra",)
_SCHEMA = (
    f"CREATE TABLE IF NOT EXISTS {TABLE} ("
    + ", ".join(
        '"id" TEXT PRIMARY KEY' if col == "id"
        else f'"{col}" INTEGER NOT NULL DEFAULT 0' if col == "helpNeeded"
        else f"\"{col}\" TEXT NOT NULL DEFAULT ''"
        for col in _COLUMNS
    )
    + ")"
)


def _configure(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA cache_size=-20000;")
    conn.execute("PRAGMA temp_store=MEMORY;")


def _to_row(record: StaffRecord) -> Tuple[Any, ...]:
    data = record.to_dict()
    values = [int(bool(data[col])) if col == "helpNeeded" else data[col] for col in WIRE_FIELDS]
    values.append(json.dumps(record.extra, ensure_ascii=False) if record.extra else "")
    return tuple(values)


def _from_row(row: sqlite3.Row) -> StaffRecord:
    data: Dict[str, Any] = {}
    raw_extra = row["extra"]
    if raw_extra:
        data.update(json.loads(raw_extra))
    for col in WIRE_FIELDS:
        data[col] = row[col]
    return StaffRecord.from_dict(data)


class SqliteStaffStore(StaffStore):
    """Records live in one table; every write commits in a single transaction.

    The change feed is in-process: subscribers see writes made through this
    store object, and remote clients poll them through the board server.
    """

    def __init__(self, path: Optional[Path] = None, max_events: Optional[int] = None) -> None:
        self.path = Path(path) if path else CONFIG.db_path
        self._lock = threading.RLock()
        self.feed = ChangeFeed(max_events or CONFIG.change_log_size)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            _configure(self._conn)
            self._conn.execute(_SCHEMA)
            self._conn.commit()
        except (OSError, sqlite3.Error) as exc:
            raise StoreUnavailable(f"cannot open staff database {self.path}: {exc}") from exc
        logger.info("Staff store opened at %s", self.path)

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except BaseException:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    def _select(self, cur: sqlite3.Cursor, staff_id: str) -> Optional[StaffRecord]:
        row = cur.execute(f'SELECT * FROM {TABLE} WHERE "id" = ?', (staff_id,)).fetchone()
        return _from_row(row) if row else None

    def _write(self, cur: sqlite3.Cursor, record: StaffRecord) -> None:
        cols = ", ".join(f'"{c}"' for c in _COLUMNS)
        marks = ", ".join("?" for _ in _COLUMNS)
        cur.execute(f"INSERT INTO {TABLE} ({cols}) VALUES ({marks})", _to_row(record))

    def _rewrite(self, cur: sqlite3.Cursor, record: StaffRecord) -> None:
        # UPDATE keeps the rowid, and with it the collection order
        assignments = ", ".join(f'"{c}" = ?' for c in _COLUMNS[1:])
        row = _to_row(record)
        cur.execute(f'UPDATE {TABLE} SET {assignments} WHERE "id" = ?', row[1:] + (record.id,))

    def fetch_all(self) -> List[StaffRecord]:
        try:
            with self._cursor() as cur:
                rows = cur.execute(f"SELECT * FROM {TABLE} ORDER BY rowid").fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"fetch failed: {exc}") from exc
        return [_from_row(row) for row in rows]

    def _merge(self, cur: sqlite3.Cursor, staff_id: str, fields: Mapping[str, Any]) -> Optional[Tuple[StaffRecord, StaffRecord]]:
        current = self._select(cur, staff_id)
        if current is None:
            return None
        updated = current.merged(fields)
        self._rewrite(cur, updated)
        return current, updated

    def _record_updates(self, changes: List[Tuple[StaffRecord, StaffRecord]]) -> None:
        # caller holds self._lock so sequence numbers follow commit order
        for old, new in changes:
            self.feed.record(ChangeKind.UPDATE, new=new, old=old)

    def update(self, staff_id: str, fields: Mapping[str, Any]) -> StaffRecord:
        try:
            fields = check_fields(fields)
            with self._lock:
                with self._cursor() as cur:
                    change = self._merge(cur, staff_id, fields)
                if change is not None:
                    self.feed.record(ChangeKind.UPDATE, new=change[1], old=change[0])
        except (ValueError, sqlite3.Error) as exc:
            raise WriteFailed(f"update of {staff_id} failed: {exc}", {"id": staff_id}) from exc
        if change is None:
            raise RecordNotFound(staff_id)
        self.feed.flush()
        return change[1]

    def apply_batch(self, updates: Iterable[RecordUpdate]) -> int:
        changes = []
        try:
            updates = [RecordUpdate(u.staff_id, check_fields(u.fields)) for u in updates]
            with self._lock:
                with self._cursor() as cur:
                    for upd in updates:
                        change = self._merge(cur, upd.staff_id, upd.fields)
                        if change is None:
                            logger.warning("Batch update skipped missing staff %s", upd.staff_id)
                            continue
                        changes.append(change)
                self._record_updates(changes)
        except (ValueError, sqlite3.Error) as exc:
            raise WriteFailed(f"batch update failed: {exc}") from exc
        self.feed.flush()
        return len(changes)

    def bulk_update(self, where: FieldFilter, fields: Mapping[str, Any]) -> int:
        changes = []
        try:
            fields = check_fields(fields)
            with self._lock:
                with self._cursor() as cur:
                    rows = cur.execute(f"SELECT * FROM {TABLE} ORDER BY rowid").fetchall()
                    for record in (_from_row(row) for row in rows):
                        if where(record):
                            updated = record.merged(fields)
                            self._rewrite(cur, updated)
                            changes.append((record, updated))
                self._record_updates(changes)
        except (ValueError, sqlite3.Error) as exc:
            raise WriteFailed(f"bulk update failed: {exc}") from exc
        self.feed.flush()
        return len(changes)

    def insert(self, record: StaffRecord) -> StaffRecord:
        try:
            with self._lock:
                with self._cursor() as cur:
                    if self._select(cur, record.id) is not None:
                        raise WriteFailed(f"staff record {record.id!r} already exists", {"id": record.id})
                    self._write(cur, record)
                self.feed.record(ChangeKind.INSERT, new=record)
        except sqlite3.Error as exc:
            raise WriteFailed(f"insert of {record.id} failed: {exc}", {"id": record.id}) from exc
        self.feed.flush()
        return record

    def delete(self, staff_id: str) -> StaffRecord:
        try:
            with self._lock:
                with self._cursor() as cur:
                    old = self._select(cur, staff_id)
                    if old is not None:
                        cur.execute(f'DELETE FROM {TABLE} WHERE "id" = ?', (staff_id,))
                if old is not None:
                    self.feed.record(ChangeKind.DELETE, old=old)
        except sqlite3.Error as exc:
            raise WriteFailed(f"delete of {staff_id} failed: {exc}", {"id": staff_id}) from exc
        if old is None:
            raise RecordNotFound(staff_id)
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

    def close(self) -> None:
        with self._lock:
            self._conn.close()


__all__ = ["SqliteStaffStore", "TABLE"]
