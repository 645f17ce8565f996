"""In-process change feed shared by the local store implementations."""
from __future__ import annotations

import itertools
import threading
from collections import deque
from typing import Callable, Deque, Dict, List, Optional, Tuple

from ..logging_setup import get_logger
from ..models import ChangeEvent, ChangeKind, StaffRecord

logger = get_logger(__name__)

RecordCallback = Callable[[StaffRecord], None]


class Subscription:
    def __init__(self, handle: int, on_insert: RecordCallback, on_update: RecordCallback, on_delete: RecordCallback) -> None:
        self.handle = handle
        self.on_insert = on_insert
        self.on_update = on_update
        self.on_delete = on_delete

    def dispatch(self, event: ChangeEvent) -> None:
        if event.kind == ChangeKind.INSERT:
            self.on_insert(event.new)
        elif event.kind == ChangeKind.UPDATE:
            self.on_update(event.new)
        else:
            self.on_delete(event.old)


class ChangeFeed:
    """Subscriber registry plus a bounded, sequence-numbered event log.

    Stores call ``record`` while still holding their own write lock, so
    sequence numbers follow commit order, and ``flush`` once the lock is
    released. ``flush`` hands events to subscribers strictly in sequence
    order whichever writer thread gets there first. Polling transports read
    the log with ``events_since``.
    """

    def __init__(self, max_events: int = 2000) -> None:
        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._dispatch_lock = threading.RLock()
        self._subs: Dict[int, Subscription] = {}
        self._handles = itertools.count(1)
        self._log: Deque[ChangeEvent] = deque(maxlen=max_events)
        self._undelivered: Deque[ChangeEvent] = deque()
        self._seq = 0

    @property
    def seq(self) -> int:
        with self._lock:
            return self._seq

    def subscribe(self, on_insert: RecordCallback, on_update: RecordCallback, on_delete: RecordCallback) -> int:
        with self._lock:
            handle = next(self._handles)
            self._subs[handle] = Subscription(handle, on_insert, on_update, on_delete)
        logger.debug("Subscriber %s attached", handle)
        return handle

    def unsubscribe(self, handle: int) -> bool:
        with self._lock:
            removed = self._subs.pop(handle, None) is not None
        if removed:
            logger.debug("Subscriber %s detached", handle)
        return removed

    def record(self, kind: ChangeKind, new: Optional[StaffRecord] = None, old: Optional[StaffRecord] = None) -> ChangeEvent:
        """Number and log one committed change; subscribers see it on ``flush``."""
        with self._cond:
            self._seq += 1
            event = ChangeEvent(seq=self._seq, kind=kind, new=new, old=old)
            self._log.append(event)
            self._undelivered.append(event)
            self._cond.notify_all()
        return event

    def flush(self) -> int:
        """Deliver every recorded event not yet dispatched, oldest first."""
        delivered = 0
        with self._dispatch_lock:
            while True:
                with self._lock:
                    if not self._undelivered:
                        break
                    event = self._undelivered.popleft()
                    subs = list(self._subs.values())
                for sub in subs:
                    try:
                        sub.dispatch(event)
                    except Exception as exc:
                        logger.error("Subscriber %s failed on %s event: %s", sub.handle, event.kind.value, exc)
                delivered += 1
        return delivered

    def publish(self, kind: ChangeKind, new: Optional[StaffRecord] = None, old: Optional[StaffRecord] = None) -> ChangeEvent:
        event = self.record(kind, new=new, old=old)
        self.flush()
        return event

    def events_since(self, seq: int, timeout: float = 0.0) -> Tuple[int, Optional[List[ChangeEvent]]]:
        """Return ``(latest_seq, events)`` newer than ``seq``.

        ``events`` is None when the log no longer reaches back to ``seq``;
        the caller must then refetch the whole collection. With a timeout
        the call waits for at least one new event.
        """
        with self._cond:
            if timeout > 0 and self._seq <= seq:
                self._cond.wait_for(lambda: self._seq > seq, timeout=timeout)
            latest = self._seq
            if seq > latest:
                return latest, None
            if self._log and self._log[0].seq > seq + 1:
                return latest, None
            if not self._log and seq < latest:
                return latest, None
            return latest, [event for event in self._log if event.seq > seq]


__all__ = ["ChangeFeed", "Subscription"]
