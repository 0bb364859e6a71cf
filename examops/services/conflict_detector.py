"""Conflict Detector — shell around the pure conflict engine.

Invariants:
    - Read-only: performs the three dimension queries plus enrollment lookups, never writes
    - The same ConflictReport comes back for the same store contents (deterministic ordering)

Design Decisions:
    - Impureim sandwich: gather everything with IO first, then one pure detect_conflicts() call
"""

import logging

from examops.core.conflict_detection import ConflictReport, detect_conflicts
from examops.core.domain_types import ScheduleId
from examops.core.records import ScheduleEntry
from examops.core.repository_protocols import EnrollmentDirectory, ScheduleStore

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Checks a candidate entry against committed schedules on all three dimensions."""

    def __init__(self, schedules: ScheduleStore, enrollment: EnrollmentDirectory):
        self.schedules = schedules
        self.enrollment = enrollment

    async def check(
        self, candidate: ScheduleEntry, exclude_schedule_id: ScheduleId | None = None,
    ) -> ConflictReport:
        tenant = candidate.tenant_id
        candidate_students = await self.enrollment.students_in_class(
            tenant, candidate.class_id,
        )

        room_entries = await self.schedules.query_by_room_and_date(
            tenant, candidate.room_id, candidate.date,
        )
        student_entries = await self.schedules.query_by_students_and_date(
            tenant, candidate_students, candidate.date,
        )
        invigilator_entries = await self.schedules.query_by_invigilators_and_date(
            tenant, candidate.invigilator_ids, candidate.date,
        )

        enrollment = await self.enrollment.students_in_classes(
            tenant, {entry.class_id for entry in student_entries},
        )

        report = detect_conflicts(
            candidate,
            room_entries=room_entries,
            student_entries=student_entries,
            invigilator_entries=invigilator_entries,
            candidate_students=candidate_students,
            enrollment=enrollment,
            exclude_schedule_id=exclude_schedule_id,
        )
        if report.has_conflicts:
            logger.debug(
                "Conflicts found",
                extra={
                    "tenant_id": tenant,
                    "schedule_id": candidate.schedule_id,
                    "dimensions": [d.value for d in report.dimensions],
                },
            )
        return report
