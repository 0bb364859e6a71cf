"""Exam Scheduler — validate a candidate sitting, then commit it or reject it with every conflict.

Invariants:
    - Validating → Committed | Rejected; a Rejected result carries the full ConflictReport
    - Conflict check and commit run under per-resource locks (room/date, invigilator/date,
      student/date), acquired in sorted order, so two local requests cannot both pass the check
    - The Schedule Store is the final arbiter: a store CONFLICT becomes a room-dimension rejection
    - Cancellation is the only in-place mutation of a committed entry

Design Decisions:
    - Conflicts are result values, not exceptions: callers branch on outcome, not try/except
    - Reschedule reuses the submit path with the existing entry excluded from its own check
"""

import dataclasses
import logging
import time
from dataclasses import dataclass

from examops.core.conflict_detection import ConflictReport, validate_schedule_entry
from examops.core.domain_types import (
    CommitStatus, ConflictDimension, ScheduleId, ScheduleStatus,
    SchedulingOutcome, StudentId, TenantId,
)
from examops.core.errors import (
    InvalidScheduleError, ResourceNotFoundError, ErrorContext,
)
from examops.core.records import ScheduleEntry
from examops.core.repository_protocols import EnrollmentDirectory, ScheduleStore
from examops.services.conflict_detector import ConflictDetector
from examops.services.keyed_locks import KeyedLocks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulingResult:
    outcome: SchedulingOutcome
    entry: ScheduleEntry
    report: ConflictReport

    @property
    def committed(self) -> bool:
        return self.outcome == SchedulingOutcome.COMMITTED

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "entry": self.entry.to_dict(),
            "conflicts": self.report.to_dict(),
            "dimensions": [d.value for d in self.report.dimensions],
        }


def _lock_keys(
    entry: ScheduleEntry, students: frozenset[StudentId],
) -> list[str]:
    day = entry.date.isoformat()
    keys = [f"room:{entry.tenant_id}:{entry.room_id}:{day}"]
    keys += [f"invigilator:{entry.tenant_id}:{i}:{day}" for i in entry.invigilator_ids]
    keys += [f"student:{entry.tenant_id}:{s}:{day}" for s in students]
    return keys


class ExamScheduler:
    """Commits exam sittings free of room, student and invigilator clashes."""

    def __init__(
        self,
        schedules: ScheduleStore,
        enrollment: EnrollmentDirectory,
        locks: KeyedLocks | None = None,
    ):
        self.schedules = schedules
        self.enrollment = enrollment
        self.detector = ConflictDetector(schedules, enrollment)
        self.locks = locks or KeyedLocks()

    async def submit(self, tenant_id: TenantId, entry: ScheduleEntry) -> SchedulingResult:
        """Validate and commit a new sitting."""
        self._ensure_tenant(tenant_id, entry)
        validate_schedule_entry(entry)
        students = await self.enrollment.students_in_class(tenant_id, entry.class_id)

        started = time.monotonic()
        async with self.locks.hold(_lock_keys(entry, students)):
            report = await self.detector.check(entry)
            if report.has_conflicts:
                return self._rejected(entry, report, started)
            status = await self.schedules.commit(entry)
            if status == CommitStatus.CONFLICT:
                return await self._store_rejected(entry, None, started)

        logger.info(
            "Schedule entry committed",
            extra={
                "tenant_id": tenant_id,
                "schedule_id": entry.schedule_id,
                "exam_id": entry.exam_id,
                "duration_ms": _elapsed_ms(started),
            },
        )
        return SchedulingResult(SchedulingOutcome.COMMITTED, entry, ConflictReport())

    async def reschedule(
        self, tenant_id: TenantId, schedule_id: ScheduleId, entry: ScheduleEntry,
    ) -> SchedulingResult:
        """Move an active sitting. The stored entry is only replaced if the new slot is clear."""
        existing = await self.schedules.get(tenant_id, schedule_id)
        if existing is None or not existing.is_active:
            raise ResourceNotFoundError(
                "ScheduleEntry", schedule_id,
                ErrorContext(tenant_id=tenant_id, schedule_id=schedule_id),
            )
        self._ensure_tenant(tenant_id, entry)
        candidate = dataclasses.replace(
            entry, schedule_id=schedule_id, status=ScheduleStatus.ACTIVE,
        )
        validate_schedule_entry(candidate)
        students = await self.enrollment.students_in_class(tenant_id, candidate.class_id)

        started = time.monotonic()
        keys = _lock_keys(candidate, students) + _lock_keys(existing, frozenset())
        async with self.locks.hold(keys):
            report = await self.detector.check(candidate, exclude_schedule_id=schedule_id)
            if report.has_conflicts:
                return self._rejected(candidate, report, started)
            status = await self.schedules.replace(tenant_id, schedule_id, candidate)
            if status == CommitStatus.CONFLICT:
                return await self._store_rejected(candidate, schedule_id, started)

        logger.info(
            "Schedule entry rescheduled",
            extra={
                "tenant_id": tenant_id,
                "schedule_id": schedule_id,
                "duration_ms": _elapsed_ms(started),
            },
        )
        return SchedulingResult(SchedulingOutcome.COMMITTED, candidate, ConflictReport())

    async def cancel(self, tenant_id: TenantId, schedule_id: ScheduleId) -> ScheduleEntry:
        cancelled = await self.schedules.cancel(tenant_id, schedule_id)
        if cancelled is None:
            raise ResourceNotFoundError(
                "ScheduleEntry", schedule_id,
                ErrorContext(tenant_id=tenant_id, schedule_id=schedule_id),
            )
        logger.info(
            "Schedule entry cancelled",
            extra={"tenant_id": tenant_id, "schedule_id": schedule_id},
        )
        return cancelled

    # --- helpers -----------------------------------------------------------

    @staticmethod
    def _ensure_tenant(tenant_id: TenantId, entry: ScheduleEntry) -> None:
        if entry.tenant_id != tenant_id:
            raise InvalidScheduleError(
                "entry tenant does not match request tenant", "tenant_id",
                ErrorContext(tenant_id=tenant_id, schedule_id=entry.schedule_id),
            )

    @staticmethod
    def _rejected(
        entry: ScheduleEntry, report: ConflictReport, started: float,
    ) -> SchedulingResult:
        logger.info(
            "Schedule entry rejected",
            extra={
                "tenant_id": entry.tenant_id,
                "schedule_id": entry.schedule_id,
                "dimensions": [d.value for d in report.dimensions],
                "duration_ms": _elapsed_ms(started),
            },
        )
        return SchedulingResult(SchedulingOutcome.REJECTED, entry, report)

    async def _store_rejected(
        self, entry: ScheduleEntry, exclude: ScheduleId | None, started: float,
    ) -> SchedulingResult:
        """Store refused the write: another process took the room. Report it on the room dimension."""
        report = await self.detector.check(entry, exclude_schedule_id=exclude)
        report = ConflictReport(room=report.for_dimension(ConflictDimension.ROOM))
        logger.warning(
            "Schedule store rejected commit after clean check",
            extra={"tenant_id": entry.tenant_id, "schedule_id": entry.schedule_id},
        )
        return self._rejected(entry, report, started)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
