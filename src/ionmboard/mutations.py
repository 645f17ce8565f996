"""Assignment mutation engine.

Translates one board gesture into the record updates that keep slot
occupancy consistent. Planning is pure; the board controller submits the
returned updates to the store as a single batch.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .derivation import late_number_for_label, room_for_duty, slot_index
from .errors import StaleReference
from .logging_setup import get_logger
from .models import (
    LUNCH_BREAK_OPTIONS,
    NO_COVER,
    STATUS_OPTIONS,
    UNASSIGNED,
    FieldFilter,
    MovePayload,
    RecordUpdate,
    Slot,
    SourceKind,
    StaffRecord,
)

logger = get_logger(__name__)

CLEARED_ASSIGNMENT = {"lateNumber": UNASSIGNED, "room": "", "duty": ""}

StaffLookup = Union[Mapping[str, StaffRecord], Sequence[StaffRecord]]


def _find_staff(staff: StaffLookup, staff_id: str) -> Optional[StaffRecord]:
    if isinstance(staff, Mapping):
        return staff.get(staff_id)
    for record in staff:
        if record.id == staff_id:
            return record
    return None


def duty_fields(duty: str) -> Dict[str, str]:
    return {"duty": duty, "room": room_for_duty(duty)}


def plan_move(payload: MovePayload, slots: Sequence[Slot], staff: StaffLookup) -> List[RecordUpdate]:
    """Plan the updates for dropping a staff member onto a slot.

    Returns the occupant update (eviction or swap) first when one is needed,
    followed by the update for the dragged member.
    """
    target_late_number = late_number_for_label(payload.target_slot_label)
    target_slot = slots[slot_index(target_late_number)]
    updates: List[RecordUpdate] = []

    occupant_id = target_slot.assigned_staff_id
    if occupant_id and occupant_id != payload.dragged_staff_id:
        if payload.source_kind == SourceKind.SLOT:
            try:
                updates.append(_plan_swap(payload, occupant_id, staff))
            except StaleReference as exc:
                logger.warning("%s; evicting occupant %s instead", exc, occupant_id)
                updates.append(RecordUpdate(occupant_id, dict(CLEARED_ASSIGNMENT)))
        else:
            updates.append(RecordUpdate(occupant_id, dict(CLEARED_ASSIGNMENT)))

    fields = {"lateNumber": target_late_number}
    fields.update(duty_fields(payload.dragged_duty))
    updates.append(RecordUpdate(payload.dragged_staff_id, fields))
    logger.debug("Planned move %s -> %s: %s", payload.dragged_staff_id, target_late_number, updates)
    return updates


def _plan_swap(payload: MovePayload, occupant_id: str, staff: StaffLookup) -> RecordUpdate:
    dragged = _find_staff(staff, payload.dragged_staff_id)
    if dragged is None:
        raise StaleReference(
            f"dragged staff {payload.dragged_staff_id!r} no longer exists",
            {"id": payload.dragged_staff_id},
        )
    return RecordUpdate(occupant_id, {"lateNumber": dragged.late_number})


def plan_duty_edit(slot: Slot, text: str) -> List[RecordUpdate]:
    if not slot.is_occupied:
        return []
    return [RecordUpdate(slot.assigned_staff_id, duty_fields(text))]


def plan_reset() -> Tuple[FieldFilter, Dict[str, str]]:
    """Bulk update that sends every assigned record back to the roster."""
    return FieldFilter("lateNumber", "neq", UNASSIGNED), dict(CLEARED_ASSIGNMENT)


def _clock(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime("%H:%M")


def status_update(status: str, now: Optional[datetime] = None) -> Dict[str, str]:
    """Fields for a status change; begin/done also stamp their time."""
    if status not in STATUS_OPTIONS:
        raise ValueError(f"unknown status {status!r}")
    fields = {"status": status}
    if status == "begin":
        fields["beginTime"] = _clock(now)
    elif status == "done":
        fields["doneTime"] = _clock(now)
    return fields


def lunch_break_update(kind: str, action: str) -> Dict[str, str]:
    if kind not in ("lunch", "break"):
        raise ValueError(f"unknown relief kind {kind!r}")
    if action not in LUNCH_BREAK_OPTIONS:
        raise ValueError(f"unknown {kind} action {action!r}")
    fields = {f"{kind}Status": action}
    if action == "No":
        fields[f"{kind}Cover"] = NO_COVER
    return fields


__all__ = [
    "CLEARED_ASSIGNMENT",
    "duty_fields",
    "lunch_break_update",
    "plan_duty_edit",
    "plan_move",
    "plan_reset",
    "status_update",
]
