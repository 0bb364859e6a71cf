"""GradeRecord ORM — computed grades, written by grading and only read by publication.

Invariants:
    - (tenant_id, exam_id, student_id) is the primary key: the stable ordering key for batches
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Numeric, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from examops.db.base import Base


class GradeRecordRow(Base):
    __tablename__ = "grade_records"

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    exam_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    marks_obtained: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    total_marks: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    grade_letter: Mapped[str] = mapped_column(String(4), nullable=False)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
