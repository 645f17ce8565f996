"""Data models for the assignment board.

Wire field names (camelCase) are the contract with every store adapter, so
records carry them through ``from_dict``/``to_dict`` unchanged.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

UNASSIGNED = "999"
SLOT_LABELS: Tuple[str, ...] = tuple(str(n) for n in range(1, 21)) + ("OC", "SV")
SLOT_COUNT = len(SLOT_LABELS)

STATUS_OPTIONS = {
    "case_called": "Case Called",
    "prep": "Preparation",
    "setup_done": "Setup Done",
    "begin": "Begin Monitoring",
    "done": "Done Monitoring",
    "tornoff": "Torn Off",
}
CASE_TYPES = ("Crani", "Spine", "Ablation", "EEG")
LUNCH_BREAK_OPTIONS = ("Request", "No", "Begin", "Done")
NO_COVER = "--"

ROLE_ADMIN = "admin"
ROLE_USER = "user"

# wire name -> attribute name
_WIRE_FIELDS = {
    "id": "id",
    "name": "name",
    "lateNumber": "late_number",
    "duty": "duty",
    "room": "room",
    "role": "role",
    "pin": "pin",
    "status": "status",
    "caseNumber": "case_number",
    "caseType": "case_type",
    "beginTime": "begin_time",
    "doneTime": "done_time",
    "helpNeeded": "help_needed",
    "lunchStatus": "lunch_status",
    "lunchCover": "lunch_cover",
    "breakStatus": "break_status",
    "breakCover": "break_cover",
    "lateCover": "late_cover",
}
WIRE_FIELDS: Tuple[str, ...] = tuple(_WIRE_FIELDS)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


@dataclass
class StaffRecord:
    """One staff member as held by the record store."""

    id: str
    name: str = ""
    late_number: str = UNASSIGNED
    duty: str = ""
    room: str = ""
    role: str = ROLE_USER
    pin: str = ""
    status: str = ""
    case_number: str = ""
    case_type: str = ""
    begin_time: str = ""
    done_time: str = ""
    help_needed: bool = False
    lunch_status: str = ""
    lunch_cover: str = ""
    break_status: str = ""
    break_cover: str = ""
    late_cover: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StaffRecord":
        """Create a record from its wire representation."""
        if "id" not in data or data["id"] in (None, ""):
            raise ValueError("staff record requires an id")
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            attr = _WIRE_FIELDS.get(key)
            if attr is None:
                extra[key] = value
            elif attr == "help_needed":
                kwargs[attr] = bool(value)
            elif attr == "late_number":
                kwargs[attr] = _text(value).strip()
            else:
                kwargs[attr] = _text(value)
        return cls(extra=extra, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire representation."""
        data = dict(self.extra)
        for wire, attr in _WIRE_FIELDS.items():
            data[wire] = getattr(self, attr)
        return data

    def merged(self, fields: Mapping[str, Any]) -> "StaffRecord":
        """Return a copy with wire-named ``fields`` applied."""
        data = self.to_dict()
        data.update(fields)
        data["id"] = self.id
        return StaffRecord.from_dict(data)


@dataclass
class Slot:
    """A fixed board position; derived, never persisted."""

    label: str
    assigned_staff_id: Optional[str] = None
    assigned_name: Optional[str] = None
    duty: str = ""

    @property
    def is_occupied(self) -> bool:
        return self.assigned_staff_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "lateNumber": self.label,
            "assignedStaffId": self.assigned_staff_id,
            "assignedName": self.assigned_name,
            "duty": self.duty,
        }


class SourceKind(str, Enum):
    ROSTER = "roster"
    SLOT = "slot"


@dataclass(frozen=True)
class MovePayload:
    """Drag-and-drop intent handed from the gesture to the mutation engine."""

    dragged_staff_id: str
    source_kind: SourceKind
    dragged_duty: str
    target_slot_label: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MovePayload":
        try:
            staff_id = data["draggedStaffId"]
            label = data["targetSlotLabel"]
        except KeyError as exc:
            raise ValueError(f"missing field {exc.args[0]}") from None
        if not staff_id:
            raise ValueError("missing field draggedStaffId")
        source = SourceKind(str(data.get("sourceKind") or SourceKind.ROSTER.value).lower())
        return cls(
            dragged_staff_id=str(staff_id),
            source_kind=source,
            dragged_duty=_text(data.get("draggedDuty")),
            target_slot_label=str(label).strip(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "draggedStaffId": self.dragged_staff_id,
            "sourceKind": self.source_kind.value,
            "draggedDuty": self.dragged_duty,
            "targetSlotLabel": self.target_slot_label,
        }


@dataclass(frozen=True)
class RecordUpdate:
    """Partial update of one record, in wire field names."""

    staff_id: str
    fields: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.staff_id, "fields": dict(self.fields)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RecordUpdate":
        staff_id = data.get("id")
        fields = data.get("fields")
        if not staff_id or not isinstance(fields, Mapping):
            raise ValueError("update requires an id and a fields object")
        return cls(str(staff_id), dict(fields))


@dataclass(frozen=True)
class FieldFilter:
    """Serializable record predicate used by bulk updates."""

    field: str
    op: str
    value: Any

    OPS = ("eq", "neq")

    def __post_init__(self) -> None:
        if self.op not in self.OPS:
            raise ValueError(f"unsupported filter op {self.op!r}")
        if self.field not in _WIRE_FIELDS:
            raise ValueError(f"unknown field {self.field!r}")

    def __call__(self, record: StaffRecord) -> bool:
        current = record.to_dict().get(self.field)
        if self.op == "eq":
            return current == self.value
        return current != self.value

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "op": self.op, "value": self.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldFilter":
        return cls(str(data.get("field", "")), str(data.get("op", "")), data.get("value"))


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    seq: int
    kind: ChangeKind
    new: Optional[StaffRecord] = None
    old: Optional[StaffRecord] = None

    @property
    def staff_id(self) -> str:
        record = self.new or self.old
        return record.id if record else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "kind": self.kind.value,
            "new": self.new.to_dict() if self.new else None,
            "old": self.old.to_dict() if self.old else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChangeEvent":
        new = data.get("new")
        old = data.get("old")
        return cls(
            seq=int(data["seq"]),
            kind=ChangeKind(data["kind"]),
            new=StaffRecord.from_dict(new) if new else None,
            old=StaffRecord.from_dict(old) if old else None,
        )


@dataclass
class BoardView:
    """Result of one derivation pass."""

    slots: List[Slot]
    roster: List[StaffRecord]
    conflicts: Dict[str, List[str]] = field(default_factory=dict)

    def slot(self, label: str) -> Slot:
        for slot in self.slots:
            if slot.label == label:
                return slot
        raise KeyError(label)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slots": [slot.to_dict() for slot in self.slots],
            "roster": [record.to_dict() for record in self.roster],
            "conflicts": {label: list(ids) for label, ids in self.conflicts.items()},
        }


__all__ = [
    "UNASSIGNED",
    "SLOT_LABELS",
    "SLOT_COUNT",
    "STATUS_OPTIONS",
    "CASE_TYPES",
    "LUNCH_BREAK_OPTIONS",
    "NO_COVER",
    "ROLE_ADMIN",
    "ROLE_USER",
    "WIRE_FIELDS",
    "StaffRecord",
    "Slot",
    "SourceKind",
    "MovePayload",
    "RecordUpdate",
    "FieldFilter",
    "ChangeKind",
    "ChangeEvent",
    "BoardView",
]
