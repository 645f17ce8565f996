"""HTTP client store: talks to a remote board server."""
from __future__ import annotations

import json
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

import requests

from .config import CONFIG
from .errors import RecordNotFound, StoreUnavailable, WriteFailed
from .logging_setup import get_logger
from .models import ChangeEvent, ChangeKind, FieldFilter, RecordUpdate, StaffRecord
from .store.base import StaffStore
from .store.feed import RecordCallback, Subscription
from .workers.io_worker import SESSION_MANAGER

logger = get_logger(__name__)

API_HEALTH = "/api/health"
API_STAFF = "/api/staff"
API_BATCH = "/api/staff/batch"
API_BULK = "/api/staff/bulk"
API_CHANGES = "/api/changes"


class HttpStaffStore(StaffStore):
    """Store adapter over the board server's JSON API.

    Subscribers are fed by a single polling thread reading the server's
    change log; callbacks therefore run on that thread.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None, poll_interval: Optional[float] = None) -> None:
        self.base = (base_url or CONFIG.client_base_url).rstrip("/")
        self.timeout = timeout or CONFIG.client_timeout
        self.poll_interval = poll_interval if poll_interval is not None else CONFIG.poll_interval_ms / 1000.0
        self.sess = SESSION_MANAGER.get()
        self._lock = threading.Lock()
        self._subs: Dict[int, Subscription] = {}
        self._next_handle = 1
        self._seq: Optional[int] = None
        self._known: Set[str] = set()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ---------- HTTP ----------
    def _url(self, path: str) -> str:
        return self.base + path

    def _decode(self, r: requests.Response) -> Dict[str, Any]:
        try:
            data = r.json()
        except ValueError:
            data = {"ok": False, "error": f"HTTP {r.status_code}", "text": r.text}
        return data if isinstance(data, dict) else {"items": data}

    def _write(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None, staff_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            r = self.sess.request(method, self._url(path), json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise WriteFailed(f"{method} {path} failed: {exc}", {"path": path}) from exc
        data = self._decode(r)
        if r.status_code == 404 and staff_id:
            raise RecordNotFound(staff_id)
        if r.status_code >= 400:
            raise WriteFailed(json.dumps(data, ensure_ascii=False), {"path": path, "status": r.status_code})
        return data

    def health(self) -> Dict[str, Any]:
        r = self.sess.get(self._url(API_HEALTH), timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def fetch_all(self) -> List[StaffRecord]:
        try:
            r = self.sess.get(self._url(API_STAFF), timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as exc:
            raise StoreUnavailable(f"fetch failed: {exc}") from exc
        records = [StaffRecord.from_dict(item) for item in data.get("items", [])]
        with self._lock:
            if self._seq is None and "seq" in data:
                self._seq = int(data["seq"])
            self._known = {rec.id for rec in records}
        return records

    def update(self, staff_id: str, fields: Mapping[str, Any]) -> StaffRecord:
        data = self._write("PATCH", f"{API_STAFF}/{staff_id}", {"fields": dict(fields)}, staff_id=staff_id)
        return StaffRecord.from_dict(data["item"])

    def apply_batch(self, updates: Iterable[RecordUpdate]) -> int:
        payload = {"updates": [u.to_dict() for u in updates]}
        return int(self._write("POST", API_BATCH, payload).get("changed", 0))

    def bulk_update(self, where: FieldFilter, fields: Mapping[str, Any]) -> int:
        payload = {"filter": where.to_dict(), "fields": dict(fields)}
        return int(self._write("POST", API_BULK, payload).get("changed", 0))

    def insert(self, record: StaffRecord) -> StaffRecord:
        data = self._write("POST", API_STAFF, {"item": record.to_dict()})
        return StaffRecord.from_dict(data["item"])

    def delete(self, staff_id: str) -> StaffRecord:
        data = self._write("DELETE", f"{API_STAFF}/{staff_id}", staff_id=staff_id)
        return StaffRecord.from_dict(data["item"])

    def events_since(self, seq: int, timeout: float = 0.0) -> Tuple[int, Optional[List[ChangeEvent]]]:
        params = {"since": seq, "wait": timeout}
        try:
            r = self.sess.get(self._url(API_CHANGES), params=params, timeout=self.timeout + timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as exc:
            raise StoreUnavailable(f"change poll failed: {exc}") from exc
        events = data.get("events")
        if events is None:
            return int(data["seq"]), None
        return int(data["seq"]), [ChangeEvent.from_dict(item) for item in events]

    # ---------- change feed ----------
    def subscribe(self, on_insert: RecordCallback, on_update: RecordCallback, on_delete: RecordCallback) -> int:
        with self._lock:
            handle = self._next_handle
            self._next_handle += 1
            self._subs[handle] = Subscription(handle, on_insert, on_update, on_delete)
            start = self._thread is None or not self._thread.is_alive()
            if start:
                self._stop.clear()
                self._thread = threading.Thread(target=self._poll_loop, name="ionmboard-poller", daemon=True)
        if start:
            self._thread.start()
        return handle

    def unsubscribe(self, handle: Any) -> None:
        with self._lock:
            self._subs.pop(handle, None)
            idle = not self._subs
        if idle:
            self._stop.set()

    def close(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=self.timeout + self.poll_interval)

    def _dispatch(self, event: ChangeEvent) -> None:
        with self._lock:
            subs = list(self._subs.values())
            if event.kind == ChangeKind.DELETE:
                self._known.discard(event.staff_id)
            else:
                self._known.add(event.staff_id)
        for sub in subs:
            try:
                sub.dispatch(event)
            except Exception as exc:
                logger.error("Subscriber %s failed on %s event: %s", sub.handle, event.kind.value, exc)

    def _resync(self) -> None:
        """Rebuild subscribers' view after the server log lost our position."""
        with self._lock:
            known = set(self._known)
            self._seq = None
        records = self.fetch_all()
        logger.info("Change log gap; resynced %d staff records", len(records))
        current = {rec.id for rec in records}
        for rec in records:
            self._dispatch(ChangeEvent(seq=0, kind=ChangeKind.UPDATE, new=rec))
        for staff_id in known - current:
            self._dispatch(ChangeEvent(seq=0, kind=ChangeKind.DELETE, old=StaffRecord(id=staff_id)))

    def poll_once(self) -> int:
        """Fetch and dispatch pending events; returns how many were delivered."""
        with self._lock:
            seq = self._seq
        if seq is None:
            latest, _ = self.events_since(0)
            with self._lock:
                if self._seq is None:
                    self._seq = latest
            return 0
        latest, events = self.events_since(seq, timeout=self.poll_interval)
        if events is None:
            self._resync()
            with self._lock:
                self._seq = latest
            return 0
        for event in events:
            self._dispatch(event)
        with self._lock:
            self._seq = max(latest, seq)
        return len(events)

    def _poll_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except StoreUnavailable as exc:
                logger.warning("Change feed unavailable: %s", exc)
                self._stop.wait(self.poll_interval)
            except Exception as exc:  # pragma: no cover - worker thread
                logger.error("Unexpected poller error: %s", exc)
                self._stop.wait(self.poll_interval)


__all__ = ["HttpStaffStore"]
