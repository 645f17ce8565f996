"""Slot derivation: project the staff collection onto the 22-slot board.

The board is never patched in place. Every change to the collection re-runs
``derive`` over the full snapshot, so slots and roster cannot drift from the
records they are computed from.
"""
from __future__ import annotations

import math
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .logging_setup import get_logger
from .models import SLOT_COUNT, SLOT_LABELS, UNASSIGNED, BoardView, Slot, StaffRecord

logger = get_logger(__name__)

_LABEL_INDEX = {label: index for index, label in enumerate(SLOT_LABELS)}
_TEAM_ORDER_OC = 21
_TEAM_ORDER_SV = 22
_TEAM_ORDER_OTHER = 999

StaffCollection = Union[Iterable[StaffRecord], Mapping[str, StaffRecord]]


def is_numeric(text: Optional[str]) -> bool:
    """True for room numbers such as "204" or "3.5"; False for task labels."""
    if not isinstance(text, str) or not text.strip() or "_" in text:
        return False
    try:
        value = float(text)
    except ValueError:
        return False
    return math.isfinite(value)


def room_for_duty(duty: str) -> str:
    """Legacy room mirror: only room numbers populate it."""
    return duty if is_numeric(duty) else ""


def slot_index(late_number: Optional[str]) -> Optional[int]:
    """Map a late number onto its board index, or None for the roster."""
    if late_number is None:
        return None
    text = str(late_number).strip()
    if text in ("OC", "SV"):
        return _LABEL_INDEX[text]
    if not (text.isascii() and text.isdigit()):
        return None
    value = int(text)
    if 1 <= value <= 20:
        return value - 1
    return None


def label_for_index(index: int) -> str:
    if not 0 <= index < SLOT_COUNT:
        raise IndexError(f"slot index {index} out of range")
    return SLOT_LABELS[index]


def late_number_for_label(label: str) -> str:
    """Inverse of ``slot_index``; raises ValueError for unknown labels."""
    text = str(label).strip()
    if text not in _LABEL_INDEX:
        raise ValueError(f"unknown slot label {label!r}")
    return text


def empty_slots() -> List[Slot]:
    return [Slot(label=label) for label in SLOT_LABELS]


def _records(staff: StaffCollection) -> List[StaffRecord]:
    if isinstance(staff, Mapping):
        return list(staff.values())
    return list(staff)


def derive(staff: StaffCollection) -> BoardView:
    """Compute slots and roster from the full staff collection.

    When two records claim the same late number the one seen last in
    iteration order keeps the slot; the others are listed in ``conflicts``
    and stay off the roster, matching the placed-set semantics of the board.
    """
    records = _records(staff)
    slots = empty_slots()
    placed: set = set()
    claims: Dict[int, List[str]] = {}

    for record in records:
        index = slot_index(record.late_number)
        if index is None:
            continue
        slots[index] = Slot(
            label=slots[index].label,
            assigned_staff_id=record.id,
            assigned_name=record.name,
            duty=record.duty or record.room or "",
        )
        placed.add(record.id)
        claims.setdefault(index, []).append(record.id)

    conflicts = {
        SLOT_LABELS[index]: ids for index, ids in sorted(claims.items()) if len(ids) > 1
    }
    for label, ids in conflicts.items():
        logger.warning("Slot %s claimed by %d records %s; keeping %s", label, len(ids), ids, ids[-1])

    roster = sorted((r for r in records if r.id not in placed), key=lambda r: r.name)
    return BoardView(slots=slots, roster=roster, conflicts=conflicts)


def _team_order(late_number: str) -> int:
    if late_number == "OC":
        return _TEAM_ORDER_OC
    if late_number == "SV":
        return _TEAM_ORDER_SV
    try:
        return int(late_number)
    except ValueError:
        return _TEAM_ORDER_OTHER


def team_status(staff: StaffCollection) -> List[StaffRecord]:
    """Staff holding a late number, in board order, for the team status table."""
    assigned = [r for r in _records(staff) if r.late_number not in (UNASSIGNED, "")]
    return sorted(assigned, key=lambda r: _team_order(r.late_number))


__all__ = [
    "derive",
    "empty_slots",
    "is_numeric",
    "label_for_index",
    "late_number_for_label",
    "room_for_duty",
    "slot_index",
    "team_status",
]
