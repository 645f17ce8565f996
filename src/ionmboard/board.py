"""Assignment board controller: the surface the UI layer talks to."""
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from .derivation import derive, late_number_for_label, slot_index, team_status
from .errors import BoardError, ConfirmationRequired, StoreUnavailable, WriteFailed
from .logging_setup import get_logger
from .models import BoardView, MovePayload, RecordUpdate, Slot, SourceKind, StaffRecord
from .mutations import plan_duty_edit, plan_move, plan_reset
from .store.base import StaffStore
from .sync import LiveSync
from .workers.io_worker import RequestExecutor

logger = get_logger(__name__)

ErrorCallback = Callable[[BoardError], None]


class AssignmentBoard:
    """Keeps the derived board for one client and dispatches its gestures.

    Writes run inline and raise ``WriteFailed``, or, with an executor, run in
    the background and report failures through ``on_error`` and ``banner``.
    Nothing is rolled back locally; the next sync is the correction.
    """

    def __init__(
        self,
        store: StaffStore,
        executor: Optional[RequestExecutor] = None,
        on_error: Optional[ErrorCallback] = None,
        on_view: Optional[Callable[[BoardView], None]] = None,
    ) -> None:
        self.store = store
        self.executor = executor
        self.on_error = on_error
        self.on_view = on_view
        self.banner: Optional[str] = None
        # label -> (occupant id, text, occupant record as of commit or None)
        self._drafts: Dict[str, Tuple[str, str, Optional[StaffRecord]]] = {}
        self._lock = threading.Lock()
        self._collection: List[StaffRecord] = []
        self._view = derive([])
        self.sync = LiveSync(store, on_change=self._rederive)

    # ---------- sync ----------
    def start(self) -> bool:
        """Load and subscribe; on failure keep the last-known board."""
        try:
            self.sync.start()
        except StoreUnavailable as exc:
            self._report(exc)
            return False
        return True

    def refresh(self) -> bool:
        try:
            self.sync.refresh()
        except StoreUnavailable as exc:
            self._report(exc)
            return False
        return True

    def pump(self) -> int:
        return self.sync.pump()

    def stop(self) -> None:
        self.sync.stop()

    def _rederive(self, collection: List[StaffRecord]) -> None:
        view = derive(collection)
        with self._lock:
            self._collection = collection
            self._view = view
            self.banner = None
            by_id = {rec.id: rec for rec in collection}
            for label, (occupant, _text, committed) in list(self._drafts.items()):
                if view.slot(label).assigned_staff_id != occupant:
                    del self._drafts[label]
                elif committed is not None and by_id.get(occupant) is not committed:
                    del self._drafts[label]
        if self.on_view is not None:
            self.on_view(view)

    # ---------- projections ----------
    @property
    def collection(self) -> List[StaffRecord]:
        with self._lock:
            return list(self._collection)

    def view(self) -> BoardView:
        with self._lock:
            slots = [self._with_draft(slot) for slot in self._view.slots]
            return BoardView(slots=slots, roster=list(self._view.roster), conflicts=dict(self._view.conflicts))

    def _with_draft(self, slot: Slot) -> Slot:
        draft = self._drafts.get(slot.label)
        if draft and draft[0] == slot.assigned_staff_id:
            return Slot(slot.label, slot.assigned_staff_id, slot.assigned_name, draft[1])
        return Slot(slot.label, slot.assigned_staff_id, slot.assigned_name, slot.duty)

    def get_slots(self) -> List[Slot]:
        return self.view().slots

    def get_roster(self) -> List[StaffRecord]:
        with self._lock:
            return list(self._view.roster)

    def team_status(self) -> List[StaffRecord]:
        return team_status(self.collection)

    # ---------- gestures ----------
    def on_drop(self, dragged_staff_id: str, source_kind: Any, dragged_duty: str, target_slot_label: str) -> List[RecordUpdate]:
        payload = MovePayload(
            dragged_staff_id=dragged_staff_id,
            source_kind=SourceKind(source_kind),
            dragged_duty=dragged_duty or "",
            target_slot_label=str(target_slot_label),
        )
        return self.move(payload)

    def move(self, payload: MovePayload) -> List[RecordUpdate]:
        with self._lock:
            slots = list(self._view.slots)
            staff = {rec.id: rec for rec in self._collection}
        updates = plan_move(payload, slots, staff)
        logger.info(
            "Drop %s (%s) onto slot %s: %d update(s)",
            payload.dragged_staff_id, payload.source_kind.value, payload.target_slot_label, len(updates),
        )
        self._submit(lambda: self.store.apply_batch(updates), "move")
        return updates

    def on_duty_edit(self, slot_label: str, text: str) -> None:
        """Buffer duty text locally; nothing is written until commit."""
        index = slot_index(late_number_for_label(slot_label))
        with self._lock:
            occupant = self._view.slots[index].assigned_staff_id
            if occupant is None:
                return
            self._drafts[self._view.slots[index].label] = (occupant, text, None)

    def on_duty_commit(self, slot_label: str) -> List[RecordUpdate]:
        """Write the buffered duty text.

        The draft stays on screen until the store reports a change to the
        occupant's record, so a failed write leaves the typed text in place.
        """
        label = late_number_for_label(slot_label)
        with self._lock:
            slot = self._view.slots[slot_index(label)]
            draft = self._drafts.get(label)
            if draft is None:
                return []
            occupant, text, _committed = draft
            if occupant != slot.assigned_staff_id or text == slot.duty:
                del self._drafts[label]
                return []
            current = next((rec for rec in self._collection if rec.id == occupant), None)
            self._drafts[label] = (occupant, text, current)
        updates = plan_duty_edit(slot, text)
        if updates:
            self._submit(lambda: self.store.apply_batch(updates), "duty edit")
        return updates

    def reset_board(self, confirmed: bool = False) -> Optional[int]:
        """Send everyone back to the roster; needs explicit confirmation.

        Returns the number of records changed when run inline, None when
        dispatched to the executor.
        """
        if not confirmed:
            raise ConfirmationRequired("reset_board requires confirmation")
        where, fields = plan_reset()
        logger.info("Resetting board")
        return self._submit(lambda: self.store.bulk_update(where, fields), "reset")

    # ---------- dispatch ----------
    def _submit(self, fn: Callable[[], Any], what: str) -> Any:
        if self.executor is not None:
            self.executor.submit(
                fn,
                lambda result: logger.debug("%s committed: %s", what, result),
                lambda exc: self._report(self._as_board_error(exc, what)),
            )
            return None
        try:
            return fn()
        except WriteFailed as exc:
            self._report(exc)
            raise

    def _as_board_error(self, exc: BaseException, what: str) -> BoardError:
        if isinstance(exc, BoardError):
            return exc
        return WriteFailed(f"{what} failed: {exc}")

    def _report(self, exc: BoardError) -> None:
        logger.warning("%s: %s", type(exc).__name__, exc)
        self.banner = str(exc)
        if self.on_error is not None:
            self.on_error(exc)


__all__ = ["AssignmentBoard"]
