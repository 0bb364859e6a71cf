"""Exam Repository — exam status and publication checkpoint, both written by conditional UPDATE.

Invariants:
    - transition_status only succeeds when the stored status equals `expected`
    - claim succeeds for exactly one caller: the row is created under its primary key, or
      taken over with an UPDATE guarded on the previous owner and status
    - advance/finish only succeed for the current owner of an in_progress claim
"""

import logging
from dataclasses import replace
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from examops.core.domain_types import (
    TenantId, ExamId, ExamStatus, PublicationStatus,
)
from examops.core.publication import is_claimable
from examops.core.records import Exam, PublicationProgress
from examops.infrastructure.database import DatabaseSessionManager
from examops.models.exam import ExamRow
from examops.models.publication_progress import PublicationProgressRow

logger = logging.getLogger(__name__)


def _to_exam(row: ExamRow) -> Exam:
    return Exam(
        tenant_id=TenantId(row.tenant_id),
        exam_id=ExamId(row.exam_id),
        status=ExamStatus(row.status),
        published_at=row.published_at,
    )


def _to_progress(row: PublicationProgressRow) -> PublicationProgress:
    return PublicationProgress(
        tenant_id=TenantId(row.tenant_id),
        exam_id=ExamId(row.exam_id),
        total_records=row.total_records,
        processed_offset=row.processed_offset,
        status=PublicationStatus(row.status),
        owner=row.owner,
        updated_at=row.updated_at,
    )


class SqlExamStore:
    """ExamStore over exams."""

    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def get(self, tenant_id: TenantId, exam_id: ExamId) -> Exam | None:
        async with self._db.session() as s:
            row = await s.get(ExamRow, (tenant_id, exam_id))
            return _to_exam(row) if row else None

    async def transition_status(
        self,
        tenant_id: TenantId,
        exam_id: ExamId,
        expected: ExamStatus,
        target: ExamStatus,
        at: datetime,
    ) -> bool:
        values: dict = {"status": target.value}
        if target == ExamStatus.PUBLISHED:
            values["published_at"] = at
        async with self._db.session() as s:
            result = await s.execute(
                update(ExamRow)
                .where(ExamRow.tenant_id == tenant_id)
                .where(ExamRow.exam_id == exam_id)
                .where(ExamRow.status == expected.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await s.commit()
            return result.rowcount == 1


class SqlPublicationProgressStore:
    """PublicationProgressStore over publication_progress."""

    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def get(
        self, tenant_id: TenantId, exam_id: ExamId,
    ) -> PublicationProgress | None:
        async with self._db.session() as s:
            row = await s.get(PublicationProgressRow, (tenant_id, exam_id))
            return _to_progress(row) if row else None

    async def claim(
        self,
        tenant_id: TenantId,
        exam_id: ExamId,
        total_records: int,
        owner: str,
        now: datetime,
        stale_before: datetime,
    ) -> PublicationProgress | None:
        async with self._db.session() as s:
            result = await s.execute(
                select(PublicationProgressRow)
                .where(PublicationProgressRow.tenant_id == tenant_id)
                .where(PublicationProgressRow.exam_id == exam_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return await self._create_claim(s, tenant_id, exam_id, total_records, owner, now)

            current = _to_progress(row)
            if not is_claimable(current, stale_before):
                return None

            previous_owner = (
                PublicationProgressRow.owner.is_(None) if current.owner is None
                else PublicationProgressRow.owner == current.owner
            )
            taken = await s.execute(
                update(PublicationProgressRow)
                .where(PublicationProgressRow.tenant_id == tenant_id)
                .where(PublicationProgressRow.exam_id == exam_id)
                .where(PublicationProgressRow.status == current.status.value)
                .where(previous_owner)
                .values(
                    owner=owner,
                    status=PublicationStatus.IN_PROGRESS.value,
                    total_records=total_records,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await s.commit()
            if taken.rowcount != 1:
                return None
            if current.status == PublicationStatus.IN_PROGRESS:
                logger.warning(
                    "Took over stalled publication claim",
                    extra={
                        "tenant_id": tenant_id, "exam_id": exam_id,
                        "processed_offset": current.processed_offset,
                    },
                )
            return replace(
                current,
                owner=owner,
                status=PublicationStatus.IN_PROGRESS,
                total_records=total_records,
                updated_at=now,
            )

    async def _create_claim(
        self, s, tenant_id, exam_id, total_records, owner, now,
    ) -> PublicationProgress | None:
        s.add(PublicationProgressRow(
            tenant_id=tenant_id,
            exam_id=exam_id,
            total_records=total_records,
            processed_offset=0,
            status=PublicationStatus.IN_PROGRESS.value,
            owner=owner,
            updated_at=now,
        ))
        try:
            await s.commit()
        except IntegrityError:
            await s.rollback()
            return None
        return PublicationProgress(
            tenant_id=tenant_id,
            exam_id=exam_id,
            total_records=total_records,
            processed_offset=0,
            status=PublicationStatus.IN_PROGRESS,
            owner=owner,
            updated_at=now,
        )

    async def advance(
        self,
        tenant_id: TenantId,
        exam_id: ExamId,
        owner: str,
        processed_offset: int,
        now: datetime,
    ) -> bool:
        return await self._owned_update(
            tenant_id, exam_id, owner,
            processed_offset=processed_offset, updated_at=now,
        )

    async def finish(
        self,
        tenant_id: TenantId,
        exam_id: ExamId,
        owner: str,
        status: PublicationStatus,
        now: datetime,
    ) -> bool:
        return await self._owned_update(
            tenant_id, exam_id, owner, status=status.value, updated_at=now,
        )

    async def _owned_update(self, tenant_id, exam_id, owner, **values) -> bool:
        async with self._db.session() as s:
            result = await s.execute(
                update(PublicationProgressRow)
                .where(PublicationProgressRow.tenant_id == tenant_id)
                .where(PublicationProgressRow.exam_id == exam_id)
                .where(PublicationProgressRow.owner == owner)
                .where(PublicationProgressRow.status == PublicationStatus.IN_PROGRESS.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await s.commit()
            return result.rowcount == 1
