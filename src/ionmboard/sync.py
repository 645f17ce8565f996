"""Live sync adapter: store change feed -> collection cache -> re-derivation."""
from __future__ import annotations

import queue
import threading
from typing import Any, Callable, List, Optional, Tuple

from .errors import StoreUnavailable
from .logging_setup import get_logger
from .models import ChangeKind, StaffRecord
from .store.base import StaffStore

logger = get_logger(__name__)

ChangeCallback = Callable[[List[StaffRecord]], None]


def _by_name(records: List[StaffRecord]) -> List[StaffRecord]:
    return sorted(records, key=lambda r: r.name)


class LiveSync:
    """Owns the only mutable state of a client: the staff collection cache.

    Store callbacks may arrive on any thread; they are queued and applied
    by ``pump`` on the consumer, which then calls ``on_change`` once with the
    new collection. The adapter never writes to the store.
    """

    def __init__(self, store: StaffStore, on_change: Optional[ChangeCallback] = None) -> None:
        self.store = store
        self.on_change = on_change
        self._pending: "queue.Queue[Tuple[ChangeKind, StaffRecord]]" = queue.Queue()
        self._handle: Any = None
        self._lock = threading.Lock()
        self.collection: List[StaffRecord] = []

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> List[StaffRecord]:
        """Subscribe once, then fetch the collection (raises StoreUnavailable).

        Changes committed between the two calls are queued and replayed by
        the next ``pump``, so none are lost.
        """
        with self._lock:
            if self._handle is not None:
                return self.collection
        try:
            handle = self.store.subscribe(
                lambda rec: self._pending.put((ChangeKind.INSERT, rec)),
                lambda rec: self._pending.put((ChangeKind.UPDATE, rec)),
                lambda rec: self._pending.put((ChangeKind.DELETE, rec)),
            )
        except StoreUnavailable:
            raise
        except Exception as exc:
            raise StoreUnavailable(f"subscribe failed: {exc}") from exc
        try:
            records = self.store.fetch_all()
        except BaseException:
            self.store.unsubscribe(handle)
            self._drain()
            raise
        with self._lock:
            if self._handle is not None:
                duplicate = handle
            else:
                self._handle, duplicate = handle, None
        if duplicate is not None:
            self.store.unsubscribe(duplicate)
            return self.collection
        self.collection = _by_name(records)
        logger.info("Live sync started with %d staff records", len(self.collection))
        self._notify()
        return self.collection

    def refresh(self) -> List[StaffRecord]:
        """Replace the cache with a full fetch (raises StoreUnavailable)."""
        self.collection = _by_name(self.store.fetch_all())
        self._notify()
        return self.collection

    def stop(self) -> None:
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is not None:
            self.store.unsubscribe(handle)
            logger.info("Live sync stopped")

    def __enter__(self) -> "LiveSync":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    def apply(self, kind: ChangeKind, record: StaffRecord) -> None:
        """Merge one change into the cache without notifying."""
        if kind == ChangeKind.INSERT:
            others = [r for r in self.collection if r.id != record.id]
            self.collection = _by_name(others + [record])
        elif kind == ChangeKind.UPDATE:
            if any(r.id == record.id for r in self.collection):
                self.collection = [record if r.id == record.id else r for r in self.collection]
            else:
                self.collection = _by_name(self.collection + [record])
        else:
            self.collection = [r for r in self.collection if r.id != record.id]

    def pump(self) -> int:
        """Apply queued changes; returns how many were applied."""
        applied = 0
        while True:
            try:
                kind, record = self._pending.get_nowait()
            except queue.Empty:
                break
            self.apply(kind, record)
            applied += 1
        if applied:
            logger.debug("Applied %d staff changes", applied)
            self._notify()
        return applied

    def _drain(self) -> None:
        while True:
            try:
                self._pending.get_nowait()
            except queue.Empty:
                return

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(list(self.collection))


__all__ = ["LiveSync"]
