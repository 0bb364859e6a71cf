"""Grade Repository — read-only SQL access to computed grade records, ordered by student_id."""

from decimal import Decimal

from sqlalchemy import select, func

from examops.core.domain_types import TenantId, ExamId, StudentId
from examops.core.records import GradeRecord
from examops.infrastructure.database import DatabaseSessionManager
from examops.models.grade_record import GradeRecordRow


def _to_record(row: GradeRecordRow) -> GradeRecord:
    return GradeRecord(
        tenant_id=TenantId(row.tenant_id),
        exam_id=ExamId(row.exam_id),
        student_id=StudentId(row.student_id),
        subject_id=row.subject_id,
        marks_obtained=Decimal(row.marks_obtained),
        total_marks=Decimal(row.total_marks),
        grade_letter=row.grade_letter,
        computed_at=row.computed_at,
    )


class SqlGradeRecordStore:
    """GradeRecordStore over grade_records."""

    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def count_for_exam(self, tenant_id: TenantId, exam_id: ExamId) -> int:
        async with self._db.session() as s:
            result = await s.execute(
                select(func.count())
                .select_from(GradeRecordRow)
                .where(GradeRecordRow.tenant_id == tenant_id)
                .where(GradeRecordRow.exam_id == exam_id)
            )
            return result.scalar_one()

    async def fetch_batch(
        self, tenant_id: TenantId, exam_id: ExamId, offset: int, limit: int,
    ) -> list[GradeRecord]:
        async with self._db.session() as s:
            result = await s.execute(
                select(GradeRecordRow)
                .where(GradeRecordRow.tenant_id == tenant_id)
                .where(GradeRecordRow.exam_id == exam_id)
                .order_by(GradeRecordRow.student_id)
                .offset(offset)
                .limit(limit)
            )
            return [_to_record(row) for row in result.scalars().all()]

    async def get(
        self, tenant_id: TenantId, exam_id: ExamId, student_id: StudentId,
    ) -> GradeRecord | None:
        async with self._db.session() as s:
            row = await s.get(GradeRecordRow, (tenant_id, exam_id, student_id))
            return _to_record(row) if row else None
