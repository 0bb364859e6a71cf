"""Grade Repository — counting and offset batches ordered by student_id."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from examops.models.grade_record import GradeRecordRow
from examops.repositories.grade_repository import SqlGradeRecordStore

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def grades(db):
    async with db.session() as s:
        for student in ("stu-3", "stu-1", "stu-2"):
            s.add(GradeRecordRow(
                tenant_id="t1", exam_id="e1", student_id=student, subject_id="math",
                marks_obtained=Decimal("72.50"), total_marks=Decimal(100),
                grade_letter="B", computed_at=NOW,
            ))
        s.add(GradeRecordRow(
            tenant_id="t2", exam_id="e1", student_id="stu-9", subject_id="math",
            marks_obtained=Decimal(10), total_marks=Decimal(100),
            grade_letter="F", computed_at=NOW,
        ))
        await s.commit()
    return SqlGradeRecordStore(db)


async def test_count_is_tenant_scoped(grades):
    assert await grades.count_for_exam("t1", "e1") == 3
    assert await grades.count_for_exam("t2", "e1") == 1


async def test_batches_ordered_by_student(grades):
    first = await grades.fetch_batch("t1", "e1", 0, 2)
    rest = await grades.fetch_batch("t1", "e1", 2, 2)

    assert [r.student_id for r in first] == ["stu-1", "stu-2"]
    assert [r.student_id for r in rest] == ["stu-3"]


async def test_get_single_record(grades):
    record = await grades.get("t1", "e1", "stu-2")

    assert record.marks_obtained == Decimal("72.50")
    assert await grades.get("t1", "e1", "stu-9") is None
