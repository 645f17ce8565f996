"""
Tests for the live sync adapter and the board controller (end-to-end against
the in-memory store)
"""

import threading

import pytest

from ionmboard.board import AssignmentBoard
from ionmboard.errors import ConfirmationRequired, StoreUnavailable, WriteFailed
from ionmboard.models import StaffRecord
from ionmboard.store.memory import MemoryStaffStore
from ionmboard.sync import LiveSync
from ionmboard.workers.io_worker import RequestExecutor


class BrokenStore(MemoryStaffStore):
    """Memory store whose reads and/or writes can be switched off."""

    def __init__(self, records=(), reads=True, writes=True):
        super().__init__(records)
        self.reads = reads
        self.writes = writes

    def fetch_all(self):
        if not self.reads:
            raise StoreUnavailable("database offline")
        return super().fetch_all()

    def apply_batch(self, updates):
        if not self.writes:
            raise WriteFailed("rejected")
        return super().apply_batch(updates)

    def bulk_update(self, where, fields):
        if not self.writes:
            raise WriteFailed("rejected")
        return super().bulk_update(where, fields)



class RacingStore(MemoryStaffStore):
    """Another client writes right after the first full read."""

    def __init__(self, records=()):
        super().__init__(records)
        self.raced = False

    def fetch_all(self):
        records = super().fetch_all()
        if not self.raced:
            self.raced = True
            self.update("a", {"duty": "Float"})
        return records

@pytest.fixture
def board(memory_store):
    b = AssignmentBoard(memory_store)
    assert b.start()
    yield b
    b.stop()


def occupant(board, label):
    return next(s.assigned_staff_id for s in board.get_slots() if s.label == label)


class TestLiveSync:

    def test_merges_changes_and_notifies(self, memory_store):
        seen = []
        sync = LiveSync(memory_store, on_change=lambda coll: seen.append([r.id for r in coll]))
        with sync:
            assert seen[-1] == ["a", "b", "c", "d", "e"]
            memory_store.insert(StaffRecord(id="f", name="Aaron"))
            memory_store.update("b", {"lateNumber": "999"})
            memory_store.delete("e")
            assert len(seen) == 1
            assert sync.pump() == 3
            assert seen[-1] == ["f", "a", "b", "c", "d"]
            assert next(r for r in sync.collection if r.id == "b").late_number == "999"
            assert sync.pump() == 0
        assert not sync.active
        memory_store.update("a", {"duty": "1"})
        assert sync.pump() == 0

    def test_start_is_idempotent(self, memory_store):
        sync = LiveSync(memory_store)
        sync.start()
        sync.start()
        memory_store.update("a", {"duty": "1"})
        assert sync.pump() == 1
        sync.stop()
        sync.stop()

    def test_update_for_unknown_id_adds_it(self, memory_store):
        sync = LiveSync(memory_store)
        sync.start()
        sync.apply("update", StaffRecord(id="z", name="Zoe"))
        assert "z" in [r.id for r in sync.collection]

    def test_start_fails_when_store_down(self):
        with pytest.raises(StoreUnavailable):
            LiveSync(BrokenStore(reads=False)).start()

    def test_change_landing_during_start_is_kept(self, sample_staff):
        store = RacingStore(sample_staff)
        sync = LiveSync(store)
        sync.start()
        sync.pump()
        assert next(r for r in sync.collection if r.id == "a").duty == "Float"
        sync.stop()


class TestBoardMoves:

    def test_roster_onto_empty_slot(self, board):
        roster_before = len(board.get_roster())
        board.on_drop("a", "roster", "", "7")
        board.pump()
        assert occupant(board, "7") == "a"
        assert len(board.get_roster()) == roster_before - 1

    def test_drop_onto_occupied_slot_evicts(self, make_staff):
        store = MemoryStaffStore([make_staff("A", "A", "999"), make_staff("B", "B", "5", duty="201", room="201")])
        board = AssignmentBoard(store)
        board.start()
        board.on_drop("A", "roster", "", "5")
        board.pump()
        a, b = store.get("A"), store.get("B")
        assert (b.late_number, b.room, b.duty) == ("999", "", "")
        assert (a.late_number, a.duty, a.room) == ("5", "", "")
        assert [r.id for r in board.get_roster()] == ["B"]

    def test_swap_between_slots(self, board, memory_store):
        before = {r.id: r for r in memory_store.fetch_all()}
        board.on_drop("d", "slot", "14", "5")
        board.pump()
        assert occupant(board, "5") == "d"
        assert occupant(board, "12") == "b"
        after = {r.id: r for r in memory_store.fetch_all()}
        assert after["b"].duty == "201"
        for untouched in ("a", "c", "e"):
            assert after[untouched] == before[untouched]

    def test_swap_with_vanished_dragger_evicts(self, board, memory_store):
        # removed by another client while the drag was in flight
        memory_store.delete("d")
        board.pump()
        board.on_drop("d", "slot", "14", "5")
        board.pump()
        assert memory_store.get("b").late_number == "999"
        assert occupant(board, "5") is None
        assert board.banner is None

    def test_concurrent_edit_reflected(self, board, memory_store):
        memory_store.update("a", {"lateNumber": "SV"})
        board.pump()
        assert occupant(board, "SV") == "a"

    def test_team_status(self, board):
        assert [r.id for r in board.team_status()] == ["b", "d", "c"]


class TestBoardDutyEdits:

    def test_edit_is_local_until_commit(self, board, memory_store):
        board.on_duty_edit("5", "Lunch Relief")
        assert next(s.duty for s in board.get_slots() if s.label == "5") == "Lunch Relief"
        assert memory_store.get("b").duty == "201"
        updates = board.on_duty_commit("5")
        assert len(updates) == 1
        assert memory_store.get("b").duty == "Lunch Relief"
        assert memory_store.get("b").room == ""

    def test_numeric_duty_sets_room(self, board, memory_store):
        board.on_duty_edit("OC", "204")
        board.on_duty_commit("OC")
        assert memory_store.get("c").room == "204"

    def test_commit_without_change_is_noop(self, board):
        assert board.on_duty_commit("5") == []
        board.on_duty_edit("5", "201")
        assert board.on_duty_commit("5") == []

    def test_unoccupied_slot_ignored(self, board):
        board.on_duty_edit("SV", "204")
        assert board.on_duty_commit("SV") == []

    def test_draft_dropped_when_occupant_changes(self, board, memory_store):
        board.on_duty_edit("5", "Lunch Relief")
        memory_store.update("b", {"lateNumber": "999"})
        board.pump()
        assert board.on_duty_commit("5") == []

    def test_committed_draft_gives_way_to_later_changes(self, board, memory_store):
        board.on_duty_edit("5", "Lunch Relief")
        board.on_duty_commit("5")
        assert next(s.duty for s in board.get_slots() if s.label == "5") == "Lunch Relief"
        board.pump()
        memory_store.update("b", {"duty": "Float"})
        board.pump()
        assert next(s.duty for s in board.get_slots() if s.label == "5") == "Float"


class TestBoardReset:

    def test_requires_confirmation(self, board, memory_store):
        with pytest.raises(ConfirmationRequired):
            board.reset_board()
        assert memory_store.get("b").late_number == "5"

    def test_reset_clears_all_slots(self, board, memory_store):
        assert board.reset_board(confirmed=True) == 4
        board.pump()
        assert all(not s.is_occupied for s in board.get_slots())
        assert {r.id for r in board.get_roster()} == {r.id for r in memory_store.fetch_all()}


class TestBoardErrors:

    def test_store_unavailable_keeps_last_board(self, sample_staff):
        store = BrokenStore(sample_staff)
        errors = []
        board = AssignmentBoard(store, on_error=errors.append)
        assert board.start()
        store.reads = False
        assert not board.refresh()
        assert board.banner == "database offline"
        assert isinstance(errors[-1], StoreUnavailable)
        assert occupant(board, "5") == "b"

    def test_write_failed_surfaces_once(self, sample_staff):
        store = BrokenStore(sample_staff, writes=False)
        errors = []
        board = AssignmentBoard(store, on_error=errors.append)
        board.start()
        with pytest.raises(WriteFailed):
            board.on_drop("a", "roster", "", "7")
        with pytest.raises(WriteFailed):
            board.reset_board(confirmed=True)
        assert len(errors) == 2
        assert board.banner == "rejected"
        assert occupant(board, "7") is None

    def test_failed_duty_commit_keeps_typed_text(self, sample_staff):
        store = BrokenStore(sample_staff, writes=False)
        board = AssignmentBoard(store, on_error=lambda exc: None)
        board.start()
        board.on_duty_edit("5", "Lunch Relief")
        with pytest.raises(WriteFailed):
            board.on_duty_commit("5")
        assert next(s.duty for s in board.get_slots() if s.label == "5") == "Lunch Relief"

        store.update("a", {"duty": "9"})
        board.pump()
        assert next(s.duty for s in board.get_slots() if s.label == "5") == "Lunch Relief"

        store.writes = True
        assert len(board.on_duty_commit("5")) == 1
        board.pump()
        assert store.get("b").duty == "Lunch Relief"
        assert next(s.duty for s in board.get_slots() if s.label == "5") == "Lunch Relief"

    def test_background_writes(self, sample_staff):
        store = BrokenStore(sample_staff)
        executor = RequestExecutor()
        failed = threading.Event()
        board = AssignmentBoard(store, executor=executor, on_error=lambda exc: failed.set())
        board.start()
        try:
            assert board.on_drop("a", "roster", "", "7")
            executor.join()
            board.pump()
            assert occupant(board, "7") == "a"

            store.writes = False
            assert board.reset_board(confirmed=True) is None
            executor.join()
            assert failed.wait(1.0)
            assert board.banner == "rejected"
        finally:
            executor.stop()
