"""Conflict Detection Engine — pure half-open interval overlap across room, student, invigilator.

Invariants:
    - [s1, e1) and [s2, e2) on the same date conflict iff s1 < e2 and s2 < e1
      (back-to-back sittings sharing a boundary never conflict)
    - An entry is never compared with itself; cancelled entries and other tenants never conflict
    - All three dimensions are evaluated unconditionally and independently: a candidate
      clashing on several dimensions reports every one of them
    - No IO, no writes, no side effects: safe to call speculatively and concurrently

Design Decisions:
    - The shell performs the three store reads and the enrollment lookups, then hands the
      already-fetched lists to detect_conflicts() (impureim sandwich)
    - Student dimension intersects enrolled-student sets rather than comparing class ids,
      so elective overlaps across different classes are caught
    - Each Conflict names the shared resources, so callers can show per-dimension remediation
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, time

from examops.core.domain_types import (
    ClassId, ConflictDimension, ScheduleId, StudentId,
)
from examops.core.errors import InvalidScheduleError, ErrorContext
from examops.core.records import ScheduleEntry


@dataclass(frozen=True)
class Conflict:
    """One existing entry clashing with the candidate along one dimension."""
    dimension: ConflictDimension
    entry: ScheduleEntry
    shared: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "dimension": self.dimension.value,
            "schedule_id": self.entry.schedule_id,
            "exam_id": self.entry.exam_id,
            "subject_id": self.entry.subject_id,
            "class_id": self.entry.class_id,
            "date": self.entry.date.isoformat(),
            "start_time": self.entry.start_time.strftime("%H:%M"),
            "end_time": self.entry.end_time.strftime("%H:%M"),
            "shared": list(self.shared),
        }


@dataclass(frozen=True)
class ConflictReport:
    """Per-dimension conflict sets. Empty on every dimension means the candidate is clear."""
    room: tuple[Conflict, ...] = ()
    student: tuple[Conflict, ...] = ()
    invigilator: tuple[Conflict, ...] = ()

    @property
    def has_conflicts(self) -> bool:
        return bool(self.room or self.student or self.invigilator)

    @property
    def dimensions(self) -> list[ConflictDimension]:
        """Dimensions with at least one conflict, in fixed room/student/invigilator order."""
        return [
            dim for dim, found in (
                (ConflictDimension.ROOM, self.room),
                (ConflictDimension.STUDENT, self.student),
                (ConflictDimension.INVIGILATOR, self.invigilator),
            )
            if found
        ]

    def for_dimension(self, dimension: ConflictDimension) -> tuple[Conflict, ...]:
        return {
            ConflictDimension.ROOM: self.room,
            ConflictDimension.STUDENT: self.student,
            ConflictDimension.INVIGILATOR: self.invigilator,
        }[dimension]

    def to_dict(self) -> dict:
        return {
            "room": [c.to_dict() for c in self.room],
            "student": [c.to_dict() for c in self.student],
            "invigilator": [c.to_dict() for c in self.invigilator],
        }


def intervals_overlap(start1: time, end1: time, start2: time, end2: time) -> bool:
    """Half-open overlap test."""
    return start1 < end2 and start2 < end1


def _clashes_in_time(
    candidate: ScheduleEntry,
    existing: ScheduleEntry,
    excluded: frozenset[ScheduleId],
) -> bool:
    if existing.schedule_id in excluded:
        return False
    if existing.tenant_id != candidate.tenant_id or not existing.is_active:
        return False
    if existing.date != candidate.date:
        return False
    return intervals_overlap(
        candidate.start_time, candidate.end_time,
        existing.start_time, existing.end_time,
    )


def _unique(entries: Iterable[ScheduleEntry]) -> list[ScheduleEntry]:
    """Drop repeated schedule ids, order by (start_time, schedule_id)."""
    seen: dict[ScheduleId, ScheduleEntry] = {}
    for entry in entries:
        seen.setdefault(entry.schedule_id, entry)
    return sorted(seen.values(), key=lambda e: (e.start_time, e.schedule_id))


def find_room_conflicts(
    candidate: ScheduleEntry,
    existing: Iterable[ScheduleEntry],
    excluded: frozenset[ScheduleId] = frozenset(),
) -> tuple[Conflict, ...]:
    return tuple(
        Conflict(ConflictDimension.ROOM, entry, (entry.room_id,))
        for entry in _unique(existing)
        if entry.room_id == candidate.room_id
        and _clashes_in_time(candidate, entry, excluded)
    )


def find_student_conflicts(
    candidate: ScheduleEntry,
    candidate_students: frozenset[StudentId],
    existing: Iterable[ScheduleEntry],
    enrollment: Mapping[ClassId, frozenset[StudentId]],
    excluded: frozenset[ScheduleId] = frozenset(),
) -> tuple[Conflict, ...]:
    if not candidate_students:
        return ()
    conflicts = []
    for entry in _unique(existing):
        if not _clashes_in_time(candidate, entry, excluded):
            continue
        shared = candidate_students & enrollment.get(entry.class_id, frozenset())
        if shared:
            conflicts.append(
                Conflict(ConflictDimension.STUDENT, entry, tuple(sorted(shared))),
            )
    return tuple(conflicts)


def find_invigilator_conflicts(
    candidate: ScheduleEntry,
    existing: Iterable[ScheduleEntry],
    excluded: frozenset[ScheduleId] = frozenset(),
) -> tuple[Conflict, ...]:
    wanted = set(candidate.invigilator_ids)
    if not wanted:
        return ()
    conflicts = []
    for entry in _unique(existing):
        if not _clashes_in_time(candidate, entry, excluded):
            continue
        shared = wanted.intersection(entry.invigilator_ids)
        if shared:
            conflicts.append(
                Conflict(ConflictDimension.INVIGILATOR, entry, tuple(sorted(shared))),
            )
    return tuple(conflicts)


def detect_conflicts(
    candidate: ScheduleEntry,
    *,
    room_entries: Iterable[ScheduleEntry],
    student_entries: Iterable[ScheduleEntry],
    invigilator_entries: Iterable[ScheduleEntry],
    candidate_students: frozenset[StudentId],
    enrollment: Mapping[ClassId, frozenset[StudentId]],
    exclude_schedule_id: ScheduleId | None = None,
) -> ConflictReport:
    """Run all three dimension checks and collect every conflict found."""
    excluded = {candidate.schedule_id}
    if exclude_schedule_id is not None:
        excluded.add(exclude_schedule_id)
    frozen = frozenset(excluded)

    return ConflictReport(
        room=find_room_conflicts(candidate, room_entries, frozen),
        student=find_student_conflicts(
            candidate, candidate_students, student_entries, enrollment, frozen,
        ),
        invigilator=find_invigilator_conflicts(
            candidate, invigilator_entries, frozen,
        ),
    )


def slot_minutes(start: time, end: time) -> int:
    """Length of [start, end) in whole minutes."""
    anchor = datetime(2000, 1, 1)
    return int(
        (datetime.combine(anchor, end) - datetime.combine(anchor, start)).total_seconds() // 60
    )


def validate_schedule_entry(entry: ScheduleEntry) -> None:
    """Reject malformed candidates before any store query. Raises InvalidScheduleError."""
    ctx = ErrorContext(tenant_id=entry.tenant_id or None, schedule_id=entry.schedule_id)
    if not entry.tenant_id:
        raise InvalidScheduleError("tenant_id is required", "tenant_id", ctx)
    for name in ("schedule_id", "exam_id", "subject_id", "class_id", "room_id"):
        if not getattr(entry, name):
            raise InvalidScheduleError(f"{name} is required", name, ctx)
    if entry.start_time >= entry.end_time:
        raise InvalidScheduleError(
            "start_time must be before end_time", "start_time", ctx,
        )
    if entry.max_marks <= 0:
        raise InvalidScheduleError("max_marks must be positive", "max_marks", ctx)
    slot = slot_minutes(entry.start_time, entry.end_time)
    if entry.duration_minutes <= 0 or entry.duration_minutes > slot:
        raise InvalidScheduleError(
            f"duration_minutes must be between 1 and the slot length ({slot})",
            "duration_minutes", ctx,
        )
    if len(set(entry.invigilator_ids)) != len(entry.invigilator_ids):
        raise InvalidScheduleError(
            "invigilator_ids contains duplicates", "invigilator_ids", ctx,
        )
