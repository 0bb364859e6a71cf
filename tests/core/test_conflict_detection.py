"""Conflict Detection — tests for the pure half-open overlap engine.

Tests cover:
    - Half-open interval semantics (overlap vs back-to-back)
    - Each dimension in isolation, and all dimensions reported together
    - Self-exclusion, cancelled entries, other tenants, other dates
    - Candidate validation before any store access
"""

from datetime import date, time

import pytest

from examops.core.conflict_detection import (
    detect_conflicts, intervals_overlap, slot_minutes, validate_schedule_entry,
)
from examops.core.domain_types import ConflictDimension, ScheduleStatus
from examops.core.errors import InvalidScheduleError
from examops.core.records import ScheduleEntry

DAY = date(2026, 3, 10)


def make_entry(
    schedule_id="s1", *, start=time(10, 0), end=time(11, 0), room="R101",
    class_id="C1", invigilators=(), tenant="t1", on=DAY,
    status=ScheduleStatus.ACTIVE, duration=60,
) -> ScheduleEntry:
    return ScheduleEntry(
        tenant_id=tenant, schedule_id=schedule_id, exam_id="midterm",
        subject_id="math", class_id=class_id, date=on,
        start_time=start, end_time=end, room_id=room,
        invigilator_ids=tuple(invigilators), duration_minutes=duration,
        status=status,
    )


def detect(candidate, existing, *, students=frozenset(), enrollment=None, exclude=None):
    return detect_conflicts(
        candidate,
        room_entries=existing,
        student_entries=existing,
        invigilator_entries=existing,
        candidate_students=frozenset(students),
        enrollment=enrollment or {},
        exclude_schedule_id=exclude,
    )


# --- intervals --------------------------------------------------------------

def test_overlapping_intervals_conflict():
    assert intervals_overlap(time(10, 0), time(11, 0), time(10, 30), time(11, 30))


def test_back_to_back_intervals_do_not_conflict():
    assert not intervals_overlap(time(10, 0), time(11, 0), time(11, 0), time(12, 0))
    assert not intervals_overlap(time(11, 0), time(12, 0), time(10, 0), time(11, 0))


def test_contained_interval_conflicts():
    assert intervals_overlap(time(9, 0), time(12, 0), time(10, 0), time(10, 30))


# --- room dimension ---------------------------------------------------------

def test_same_room_overlapping_slot_is_room_conflict():
    existing = make_entry("s1", start=time(10, 0), end=time(11, 0))
    candidate = make_entry("s2", start=time(10, 30), end=time(11, 30))

    report = detect(candidate, [existing])

    assert report.dimensions == [ConflictDimension.ROOM]
    assert report.room[0].entry.schedule_id == "s1"
    assert report.room[0].shared == ("R101",)


def test_same_room_back_to_back_is_clear():
    existing = make_entry("s1", start=time(10, 0), end=time(11, 0))
    candidate = make_entry("s2", start=time(11, 0), end=time(12, 0))

    assert not detect(candidate, [existing]).has_conflicts


def test_different_room_same_slot_is_clear():
    existing = make_entry("s1", room="R101")
    candidate = make_entry("s2", room="R202", class_id="C2")

    assert not detect(candidate, [existing]).has_conflicts


def test_different_date_never_conflicts():
    existing = make_entry("s1", on=date(2026, 3, 11))
    candidate = make_entry("s2")

    assert not detect(candidate, [existing]).has_conflicts


def test_cancelled_entry_never_conflicts():
    existing = make_entry("s1", status=ScheduleStatus.CANCELLED)
    candidate = make_entry("s2")

    assert not detect(candidate, [existing]).has_conflicts


def test_other_tenant_never_conflicts():
    existing = make_entry("s1", tenant="t2")
    candidate = make_entry("s2", tenant="t1")

    assert not detect(candidate, [existing]).has_conflicts


def test_entry_is_never_compared_with_itself():
    existing = make_entry("s1")
    moved = make_entry("s1", start=time(10, 30), end=time(11, 30))

    assert not detect(moved, [existing], exclude="s1").has_conflicts


# --- student dimension ------------------------------------------------------

def test_shared_students_across_classes_conflict():
    """Elective overlap: different classes, one student enrolled in both."""
    existing = make_entry("s1", room="R101", class_id="C1")
    candidate = make_entry("s2", room="R202", class_id="C2")

    report = detect(
        candidate, [existing],
        students={"stu-9", "stu-10"},
        enrollment={"C1": frozenset({"stu-1", "stu-9"})},
    )

    assert report.dimensions == [ConflictDimension.STUDENT]
    assert report.student[0].shared == ("stu-9",)


def test_disjoint_students_do_not_conflict():
    existing = make_entry("s1", room="R101", class_id="C1")
    candidate = make_entry("s2", room="R202", class_id="C2")

    report = detect(
        candidate, [existing],
        students={"stu-2"},
        enrollment={"C1": frozenset({"stu-1"})},
    )

    assert not report.has_conflicts


# --- invigilator dimension --------------------------------------------------

def test_shared_invigilator_conflicts():
    existing = make_entry("s1", room="R101", invigilators=["inv-1", "inv-2"])
    candidate = make_entry("s2", room="R202", class_id="C2", invigilators=["inv-2"])

    report = detect(candidate, [existing])

    assert report.dimensions == [ConflictDimension.INVIGILATOR]
    assert report.invigilator[0].shared == ("inv-2",)


def test_all_dimensions_reported_together():
    existing = make_entry("s1", invigilators=["inv-1"])
    candidate = make_entry("s2", class_id="C2", invigilators=["inv-1"])

    report = detect(
        candidate, [existing],
        students={"stu-1"},
        enrollment={"C1": frozenset({"stu-1"})},
    )

    assert report.dimensions == [
        ConflictDimension.ROOM, ConflictDimension.STUDENT, ConflictDimension.INVIGILATOR,
    ]


def test_repeated_entries_across_queries_reported_once():
    existing = make_entry("s1")
    candidate = make_entry("s2")

    report = detect(candidate, [existing, existing])

    assert len(report.room) == 1


def test_report_serializes_per_dimension():
    existing = make_entry("s1")
    candidate = make_entry("s2", start=time(10, 30), end=time(11, 30))

    data = detect(candidate, [existing]).to_dict()

    assert data["room"][0]["schedule_id"] == "s1"
    assert data["room"][0]["start_time"] == "10:00"
    assert data["student"] == []
    assert data["invigilator"] == []


# --- validation -------------------------------------------------------------

def test_slot_minutes():
    assert slot_minutes(time(9, 0), time(10, 30)) == 90


def test_valid_entry_passes():
    validate_schedule_entry(make_entry())


def test_start_after_end_rejected():
    with pytest.raises(InvalidScheduleError) as exc:
        validate_schedule_entry(make_entry(start=time(11, 0), end=time(10, 0)))
    assert exc.value.field == "start_time"


def test_zero_length_slot_rejected():
    with pytest.raises(InvalidScheduleError):
        validate_schedule_entry(make_entry(start=time(10, 0), end=time(10, 0)))


def test_duration_longer_than_slot_rejected():
    with pytest.raises(InvalidScheduleError) as exc:
        validate_schedule_entry(make_entry(duration=90))
    assert exc.value.field == "duration_minutes"


def test_duplicate_invigilators_rejected():
    with pytest.raises(InvalidScheduleError) as exc:
        validate_schedule_entry(make_entry(invigilators=["inv-1", "inv-1"]))
    assert exc.value.field == "invigilator_ids"


def test_missing_tenant_rejected():
    with pytest.raises(InvalidScheduleError) as exc:
        validate_schedule_entry(make_entry(tenant=""))
    assert exc.value.field == "tenant_id"
