"""Schedule Repository — SQL Schedule Store and Enrollment Directory.

Invariants:
    - Queries return ACTIVE entries only, invigilators loaded eagerly by explicit query
    - commit/replace re-check the room dimension inside the write transaction; a lost race
      (overlap found, or a constraint violation at commit) is CommitStatus.CONFLICT
    - On PostgreSQL that re-check runs under a transaction-scoped advisory lock on
      tenant/room/date, so two processes cannot both see a free room and insert overlapping
      slots; the EXCLUDE constraint from the migration backs it at the table level

Design Decisions:
    - Advisory lock over SERIALIZABLE: only writers to the same room and day wait on each other
    - SQLite (tests, dev) has one writer at a time, so the lock is skipped there
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from examops.core.domain_types import (
    TenantId, ScheduleId, ClassId, RoomId, InvigilatorId, StudentId,
    CommitStatus, ScheduleStatus,
)
from examops.core.errors import InvalidScheduleError, ErrorContext
from examops.core.records import ScheduleEntry
from examops.infrastructure.database import DatabaseSessionManager
from examops.models.class_enrollment import ClassEnrollmentRow
from examops.models.schedule_entry import ScheduleEntryRow, ScheduleInvigilatorRow

logger = logging.getLogger(__name__)


def _to_entry(row: ScheduleEntryRow, invigilators: tuple[str, ...]) -> ScheduleEntry:
    return ScheduleEntry(
        tenant_id=TenantId(row.tenant_id),
        schedule_id=ScheduleId(row.schedule_id),
        exam_id=row.exam_id,
        subject_id=row.subject_id,
        class_id=ClassId(row.class_id),
        date=row.date,
        start_time=row.start_time,
        end_time=row.end_time,
        room_id=RoomId(row.room_id),
        invigilator_ids=tuple(InvigilatorId(i) for i in invigilators),
        max_marks=row.max_marks,
        duration_minutes=row.duration_minutes,
        status=ScheduleStatus(row.status),
    )


def room_lock_key(entry: ScheduleEntry) -> str:
    return f"{entry.tenant_id}:{entry.room_id}:{entry.date.isoformat()}"


async def lock_room_day(s: AsyncSession, entry: ScheduleEntry) -> None:
    """Hold a transaction-scoped lock on the entry's room and day (PostgreSQL only)."""
    if s.bind.dialect.name != "postgresql":
        return
    await s.execute(select(func.pg_advisory_xact_lock(func.hashtext(room_lock_key(entry)))))


def _invigilator_rows(entry: ScheduleEntry) -> list[ScheduleInvigilatorRow]:
    return [
        ScheduleInvigilatorRow(
            tenant_id=entry.tenant_id,
            schedule_id=entry.schedule_id,
            invigilator_id=invigilator_id,
            position=position,
        )
        for position, invigilator_id in enumerate(entry.invigilator_ids)
    ]


class SqlScheduleStore:
    """ScheduleStore over schedule_entries + schedule_invigilators."""

    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def get(
        self, tenant_id: TenantId, schedule_id: ScheduleId,
    ) -> ScheduleEntry | None:
        async with self._db.session() as s:
            row = await s.get(ScheduleEntryRow, (tenant_id, schedule_id))
            if row is None:
                return None
            entries = await self._hydrate(s, tenant_id, [row])
            return entries[0]

    async def query_by_room_and_date(
        self, tenant_id: TenantId, room_id: RoomId, on: date,
    ) -> list[ScheduleEntry]:
        query = self._active(tenant_id, on).where(ScheduleEntryRow.room_id == room_id)
        return await self._fetch(tenant_id, query)

    async def query_by_students_and_date(
        self, tenant_id: TenantId, student_ids: Iterable[StudentId], on: date,
    ) -> list[ScheduleEntry]:
        students = list(student_ids)
        if not students:
            return []
        classes = (
            select(ClassEnrollmentRow.class_id)
            .where(ClassEnrollmentRow.tenant_id == tenant_id)
            .where(ClassEnrollmentRow.student_id.in_(students))
        )
        query = self._active(tenant_id, on).where(ScheduleEntryRow.class_id.in_(classes))
        return await self._fetch(tenant_id, query)

    async def query_by_invigilators_and_date(
        self, tenant_id: TenantId, invigilator_ids: Iterable[InvigilatorId], on: date,
    ) -> list[ScheduleEntry]:
        invigilators = list(invigilator_ids)
        if not invigilators:
            return []
        assigned = (
            select(ScheduleInvigilatorRow.schedule_id)
            .where(ScheduleInvigilatorRow.tenant_id == tenant_id)
            .where(ScheduleInvigilatorRow.invigilator_id.in_(invigilators))
        )
        query = self._active(tenant_id, on).where(ScheduleEntryRow.schedule_id.in_(assigned))
        return await self._fetch(tenant_id, query)

    async def commit(self, entry: ScheduleEntry) -> CommitStatus:
        async with self._db.session() as s:
            if await s.get(ScheduleEntryRow, (entry.tenant_id, entry.schedule_id)):
                raise InvalidScheduleError(
                    f"schedule_id '{entry.schedule_id}' already exists",
                    "schedule_id",
                    ErrorContext(tenant_id=entry.tenant_id, schedule_id=entry.schedule_id),
                )
            await lock_room_day(s, entry)
            if await self._room_taken(s, entry):
                return CommitStatus.CONFLICT
            s.add(ScheduleEntryRow(
                tenant_id=entry.tenant_id,
                schedule_id=entry.schedule_id,
                exam_id=entry.exam_id,
                subject_id=entry.subject_id,
                class_id=entry.class_id,
                date=entry.date,
                start_time=entry.start_time,
                end_time=entry.end_time,
                room_id=entry.room_id,
                max_marks=entry.max_marks,
                duration_minutes=entry.duration_minutes,
                status=ScheduleStatus.ACTIVE.value,
            ))
            s.add_all(_invigilator_rows(entry))
            return await self._commit_or_conflict(s, entry)

    async def replace(
        self, tenant_id: TenantId, schedule_id: ScheduleId, entry: ScheduleEntry,
    ) -> CommitStatus:
        async with self._db.session() as s:
            await lock_room_day(s, entry)
            if await self._room_taken(s, entry, exclude=schedule_id):
                return CommitStatus.CONFLICT
            result = await s.execute(
                update(ScheduleEntryRow)
                .where(ScheduleEntryRow.tenant_id == tenant_id)
                .where(ScheduleEntryRow.schedule_id == schedule_id)
                .where(ScheduleEntryRow.status == ScheduleStatus.ACTIVE.value)
                .values(
                    exam_id=entry.exam_id,
                    subject_id=entry.subject_id,
                    class_id=entry.class_id,
                    date=entry.date,
                    start_time=entry.start_time,
                    end_time=entry.end_time,
                    room_id=entry.room_id,
                    max_marks=entry.max_marks,
                    duration_minutes=entry.duration_minutes,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await s.rollback()
                return CommitStatus.CONFLICT
            await s.execute(
                delete(ScheduleInvigilatorRow)
                .where(ScheduleInvigilatorRow.tenant_id == tenant_id)
                .where(ScheduleInvigilatorRow.schedule_id == schedule_id)
            )
            s.add_all(_invigilator_rows(entry))
            return await self._commit_or_conflict(s, entry)

    async def cancel(
        self, tenant_id: TenantId, schedule_id: ScheduleId,
    ) -> ScheduleEntry | None:
        async with self._db.session() as s:
            result = await s.execute(
                update(ScheduleEntryRow)
                .where(ScheduleEntryRow.tenant_id == tenant_id)
                .where(ScheduleEntryRow.schedule_id == schedule_id)
                .where(ScheduleEntryRow.status == ScheduleStatus.ACTIVE.value)
                .values(status=ScheduleStatus.CANCELLED.value)
                .execution_options(synchronize_session=False)
            )
            await s.commit()
            if result.rowcount != 1:
                return None
        return await self.get(tenant_id, schedule_id)

    # --- helpers -----------------------------------------------------------

    @staticmethod
    def _active(tenant_id: TenantId, on: date):
        return (
            select(ScheduleEntryRow)
            .where(ScheduleEntryRow.tenant_id == tenant_id)
            .where(ScheduleEntryRow.date == on)
            .where(ScheduleEntryRow.status == ScheduleStatus.ACTIVE.value)
            .order_by(ScheduleEntryRow.start_time, ScheduleEntryRow.schedule_id)
        )

    async def _fetch(self, tenant_id: TenantId, query) -> list[ScheduleEntry]:
        async with self._db.session() as s:
            rows = list((await s.execute(query)).scalars().all())
            return await self._hydrate(s, tenant_id, rows)

    async def _hydrate(
        self, s: AsyncSession, tenant_id: TenantId, rows: list[ScheduleEntryRow],
    ) -> list[ScheduleEntry]:
        if not rows:
            return []
        result = await s.execute(
            select(ScheduleInvigilatorRow)
            .where(ScheduleInvigilatorRow.tenant_id == tenant_id)
            .where(ScheduleInvigilatorRow.schedule_id.in_([r.schedule_id for r in rows]))
            .order_by(ScheduleInvigilatorRow.schedule_id, ScheduleInvigilatorRow.position)
        )
        by_schedule: dict[str, list[str]] = defaultdict(list)
        for inv in result.scalars().all():
            by_schedule[inv.schedule_id].append(inv.invigilator_id)
        return [_to_entry(r, tuple(by_schedule[r.schedule_id])) for r in rows]

    async def _room_taken(
        self, s: AsyncSession, entry: ScheduleEntry, exclude: ScheduleId | None = None,
    ) -> bool:
        query = (
            select(func.count())
            .select_from(ScheduleEntryRow)
            .where(ScheduleEntryRow.tenant_id == entry.tenant_id)
            .where(ScheduleEntryRow.room_id == entry.room_id)
            .where(ScheduleEntryRow.date == entry.date)
            .where(ScheduleEntryRow.status == ScheduleStatus.ACTIVE.value)
            .where(ScheduleEntryRow.start_time < entry.end_time)
            .where(ScheduleEntryRow.end_time > entry.start_time)
        )
        if exclude is not None:
            query = query.where(ScheduleEntryRow.schedule_id != exclude)
        return (await s.execute(query)).scalar_one() > 0

    async def _commit_or_conflict(self, s: AsyncSession, entry: ScheduleEntry) -> CommitStatus:
        try:
            await s.commit()
        except IntegrityError:
            await s.rollback()
            logger.warning(
                "Schedule commit lost room-slot race",
                extra={"tenant_id": entry.tenant_id, "schedule_id": entry.schedule_id},
            )
            return CommitStatus.CONFLICT
        return CommitStatus.SUCCESS


class SqlEnrollmentDirectory:
    """EnrollmentDirectory over class_enrollments."""

    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def students_in_class(
        self, tenant_id: TenantId, class_id: ClassId,
    ) -> frozenset[StudentId]:
        found = await self.students_in_classes(tenant_id, [class_id])
        return found.get(class_id, frozenset())

    async def students_in_classes(
        self, tenant_id: TenantId, class_ids: Iterable[ClassId],
    ) -> dict[ClassId, frozenset[StudentId]]:
        wanted = sorted(set(class_ids))
        if not wanted:
            return {}
        async with self._db.session() as s:
            result = await s.execute(
                select(ClassEnrollmentRow.class_id, ClassEnrollmentRow.student_id)
                .where(ClassEnrollmentRow.tenant_id == tenant_id)
                .where(ClassEnrollmentRow.class_id.in_(wanted))
            )
            grouped: dict[ClassId, set[StudentId]] = defaultdict(set)
            for class_id, student_id in result.all():
                grouped[ClassId(class_id)].add(StudentId(student_id))
        return {class_id: frozenset(grouped.get(class_id, ())) for class_id in wanted}
