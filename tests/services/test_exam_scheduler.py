"""Exam Scheduler — commit/reject paths, reschedule, cancel and the check-then-act race.

Invariants:
    - A rejected candidate is never stored, and its report names every clashing dimension
    - Concurrent submits for one room slot commit exactly once
"""

import asyncio
from datetime import time

import pytest

from examops.core.domain_types import ConflictDimension, SchedulingOutcome, ScheduleStatus
from examops.core.errors import InvalidScheduleError, ResourceNotFoundError
from examops.services.exam_scheduler import ExamScheduler
from tests.services.fakes import FakeEnrollment, FakeScheduleStore, make_entry


@pytest.fixture
def enrollment():
    e = FakeEnrollment()
    e.enroll("t1", "C1", "stu-1", "stu-2")
    e.enroll("t1", "C2", "stu-2", "stu-3")
    e.enroll("t1", "C3", "stu-4")
    return e


@pytest.fixture
def store(enrollment):
    return FakeScheduleStore(enrollment)


@pytest.fixture
def scheduler(store, enrollment):
    return ExamScheduler(store, enrollment)


async def test_clear_candidate_is_committed(scheduler, store):
    result = await scheduler.submit("t1", make_entry("s1"))

    assert result.outcome == SchedulingOutcome.COMMITTED
    assert not result.report.has_conflicts
    assert ("t1", "s1") in store.entries


async def test_overlapping_room_is_rejected(scheduler, store):
    await scheduler.submit("t1", make_entry("s1", class_id="C1"))

    result = await scheduler.submit(
        "t1", make_entry("s2", start=time(10, 30), end=time(11, 30), class_id="C3"),
    )

    assert result.outcome == SchedulingOutcome.REJECTED
    assert result.report.dimensions == [ConflictDimension.ROOM]
    assert result.report.room[0].entry.schedule_id == "s1"
    assert ("t1", "s2") not in store.entries


async def test_back_to_back_room_is_committed(scheduler):
    await scheduler.submit("t1", make_entry("s1", class_id="C1"))

    result = await scheduler.submit(
        "t1", make_entry("s2", start=time(11, 0), end=time(12, 0), class_id="C3"),
    )

    assert result.committed


async def test_elective_student_overlap_is_rejected(scheduler):
    """C1 and C2 share stu-2, so their sittings cannot overlap even in different rooms."""
    await scheduler.submit("t1", make_entry("s1", class_id="C1", room="R101"))

    result = await scheduler.submit("t1", make_entry("s2", class_id="C2", room="R202"))

    assert result.report.dimensions == [ConflictDimension.STUDENT]
    assert result.report.student[0].shared == ("stu-2",)


async def test_invigilator_overlap_is_rejected(scheduler):
    await scheduler.submit("t1", make_entry("s1", class_id="C1", invigilators=["inv-1"]))

    result = await scheduler.submit(
        "t1", make_entry("s2", class_id="C3", room="R202", invigilators=["inv-1"]),
    )

    assert result.report.dimensions == [ConflictDimension.INVIGILATOR]


async def test_store_conflict_reported_as_room_rejection(scheduler, store):
    store.force_conflict = True

    result = await scheduler.submit("t1", make_entry("s1"))

    assert result.outcome == SchedulingOutcome.REJECTED
    assert ("t1", "s1") not in store.entries


async def test_malformed_candidate_rejected_before_store(scheduler, store):
    with pytest.raises(InvalidScheduleError):
        await scheduler.submit("t1", make_entry("s1", start=time(12, 0), end=time(11, 0)))
    assert store.entries == {}


async def test_tenant_mismatch_rejected(scheduler):
    with pytest.raises(InvalidScheduleError) as exc:
        await scheduler.submit("t2", make_entry("s1", tenant="t1"))
    assert exc.value.field == "tenant_id"


async def test_concurrent_submits_for_same_slot_commit_once(scheduler, store):
    results = await asyncio.gather(*(
        scheduler.submit("t1", make_entry(f"s{i}", class_id="C3"))
        for i in range(5)
    ))

    assert sum(r.committed for r in results) == 1
    assert store.commits == 1


async def test_reschedule_excludes_own_entry(scheduler, store):
    await scheduler.submit("t1", make_entry("s1"))

    result = await scheduler.reschedule(
        "t1", "s1", make_entry("s1", start=time(10, 30), end=time(11, 30)),
    )

    assert result.committed
    assert store.entries[("t1", "s1")].start_time == time(10, 30)


async def test_reschedule_into_conflict_keeps_original(scheduler, store):
    await scheduler.submit("t1", make_entry("s1", class_id="C1"))
    await scheduler.submit(
        "t1", make_entry("s2", class_id="C3", start=time(12, 0), end=time(13, 0)),
    )

    result = await scheduler.reschedule(
        "t1", "s2", make_entry("s2", class_id="C3", start=time(10, 30), end=time(11, 30)),
    )

    assert result.outcome == SchedulingOutcome.REJECTED
    assert store.entries[("t1", "s2")].start_time == time(12, 0)


async def test_reschedule_unknown_entry_not_found(scheduler):
    with pytest.raises(ResourceNotFoundError):
        await scheduler.reschedule("t1", "missing", make_entry("missing"))


async def test_cancel_frees_the_slot(scheduler):
    await scheduler.submit("t1", make_entry("s1", class_id="C1"))

    cancelled = await scheduler.cancel("t1", "s1")
    result = await scheduler.submit("t1", make_entry("s2", class_id="C3"))

    assert cancelled.status == ScheduleStatus.CANCELLED
    assert result.committed


async def test_cancel_unknown_entry_not_found(scheduler):
    with pytest.raises(ResourceNotFoundError):
        await scheduler.cancel("t1", "missing")


async def test_other_tenant_slots_are_independent(scheduler):
    await scheduler.submit("t1", make_entry("s1", tenant="t1"))

    result = await scheduler.submit("t2", make_entry("s1", tenant="t2"))

    assert result.committed
