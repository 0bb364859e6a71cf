"""Exam ORM — exam lifecycle row, the only exam state the pipeline mutates.

Invariants:
    - (tenant_id, exam_id) is the primary key; no exam exists without a tenant
    - status only moves forward (enforced by conditional UPDATE in the repository)
"""

from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from examops.db.base import Base


class ExamRow(Base):
    __tablename__ = "exams"

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    exam_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="draft",
    )
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
