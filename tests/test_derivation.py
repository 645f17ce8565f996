"""
Tests for slot derivation (fixed slots, roster partition, duplicate claims)
"""

import itertools

import pytest

from ionmboard.derivation import (
    derive,
    is_numeric,
    label_for_index,
    late_number_for_label,
    room_for_duty,
    slot_index,
    team_status,
)
from ionmboard.models import SLOT_LABELS


EXPECTED_LABELS = [str(n) for n in range(1, 21)] + ["OC", "SV"]


class TestSlotIndex:

    @pytest.mark.parametrize("late, index", [("1", 0), ("20", 19), (" 7 ", 6), ("OC", 20), ("SV", 21)])
    def test_slot_labels_map(self, late, index):
        assert slot_index(late) == index

    @pytest.mark.parametrize("late", ["0", "21", "999", "", None, "5a", "-3", "2.0", "oc", "²"])
    def test_everything_else_is_roster(self, late):
        assert slot_index(late) is None

    def test_label_round_trip(self):
        for index, label in enumerate(EXPECTED_LABELS):
            assert label_for_index(index) == label
            assert slot_index(late_number_for_label(label)) == index

    def test_unknown_label_rejected(self):
        with pytest.raises(ValueError):
            late_number_for_label("21")
        with pytest.raises(IndexError):
            label_for_index(22)


class TestNumericDuty:

    def test_room_numbers(self):
        assert is_numeric("204")
        assert is_numeric("3.5")
        assert room_for_duty("204") == "204"

    def test_task_labels(self):
        assert not is_numeric("Lunch Relief")
        assert not is_numeric("")
        assert not is_numeric("   ")
        assert not is_numeric("nan")
        assert not is_numeric("inf")
        assert not is_numeric("1_000")
        assert room_for_duty("1_000") == ""
        assert room_for_duty("Lunch Relief") == ""


class TestDerive:

    def test_fixed_slot_layout(self, sample_staff):
        for ordering in itertools.permutations(sample_staff):
            view = derive(list(ordering))
            assert [s.label for s in view.slots] == EXPECTED_LABELS
        assert list(SLOT_LABELS) == EXPECTED_LABELS

    def test_empty_collection(self):
        view = derive([])
        assert len(view.slots) == 22
        assert all(not s.is_occupied for s in view.slots)
        assert view.roster == []

    def test_occupants_and_duty_fallback(self, sample_staff):
        view = derive(sample_staff)
        assert view.slot("5").assigned_staff_id == "b"
        assert view.slot("5").assigned_name == "Bob"
        assert view.slot("5").duty == "201"
        assert view.slot("OC").duty == "Lunch Relief"
        # no duty, falls back to the legacy room field
        assert view.slot("12").duty == "14"
        assert view.slot("SV").assigned_staff_id is None

    def test_partition(self, sample_staff):
        view = derive(sample_staff)
        occupants = {s.assigned_staff_id for s in view.slots if s.is_occupied}
        roster = {r.id for r in view.roster}
        assert occupants.isdisjoint(roster)
        assert occupants | roster == {r.id for r in sample_staff}

    def test_roster_sorted_by_name_stable(self, make_staff):
        records = [
            make_staff("1", "bob"),
            make_staff("2", "Zed"),
            make_staff("3", "Amy"),
            make_staff("4", "Amy"),
        ]
        view = derive(records)
        # case-sensitive: uppercase sorts before lowercase
        assert [r.id for r in view.roster] == ["3", "4", "2", "1"]

    def test_accepts_mapping(self, sample_staff):
        by_id = {r.id: r for r in sample_staff}
        assert derive(by_id).to_dict() == derive(sample_staff).to_dict()

    def test_idempotent(self, sample_staff):
        assert derive(sample_staff).to_dict() == derive(sample_staff).to_dict()

    def test_duplicate_claim_last_wins(self, make_staff):
        records = [make_staff("x", "Xena", "3"), make_staff("y", "Yuri", "3")]
        view = derive(records)
        assert view.slot("3").assigned_staff_id == "y"
        assert view.conflicts == {"3": ["x", "y"]}
        assert view.roster == []

        view = derive(list(reversed(records)))
        assert view.slot("3").assigned_staff_id == "x"


class TestTeamStatus:

    def test_board_order(self, make_staff):
        records = [
            make_staff("a", "A", "SV"),
            make_staff("b", "B", "10"),
            make_staff("c", "C", "999"),
            make_staff("d", "D", "OC"),
            make_staff("e", "E", "2"),
            make_staff("f", "F", ""),
        ]
        assert [r.id for r in team_status(records)] == ["e", "b", "d", "a"]
