"""ClassEnrollment ORM — which student sits in which class (feeds the student conflict dimension)."""

from sqlalchemy import String, Index
from sqlalchemy.orm import Mapped, mapped_column

from examops.db.base import Base


class ClassEnrollmentRow(Base):
    __tablename__ = "class_enrollments"
    __table_args__ = (
        Index("ix_enrollment_student", "tenant_id", "student_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    class_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(64), primary_key=True)
