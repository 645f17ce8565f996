"""Shared fixtures for the assignment board tests."""

import os
import tempfile

# keep logs and data out of the working tree; must run before ionmboard is imported
_TMP = tempfile.mkdtemp(prefix="ionmboard-tests-")
os.environ.setdefault("IONMBOARD_LOG_DIR", os.path.join(_TMP, "logs"))
os.environ.setdefault("IONMBOARD_DATA_DIR", os.path.join(_TMP, "data"))

import pytest  # noqa: E402

from ionmboard.models import StaffRecord  # noqa: E402
from ionmboard.store.memory import MemoryStaffStore  # noqa: E402


def staff(staff_id, name, late_number="999", duty="", room=""):
    return StaffRecord(id=staff_id, name=name, late_number=late_number, duty=duty, room=room)


@pytest.fixture
def make_staff():
    return staff


@pytest.fixture
def sample_staff():
    return [
        staff("a", "Alice"),
        staff("b", "Bob", "5", duty="201", room="201"),
        staff("c", "Carol", "OC", duty="Lunch Relief"),
        staff("d", "Dan", "12", room="14"),
        staff("e", "Eve", ""),
    ]


@pytest.fixture
def memory_store(sample_staff):
    return MemoryStaffStore(sample_staff)
