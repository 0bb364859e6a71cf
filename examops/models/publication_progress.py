"""PublicationProgress ORM — durable checkpoint owned exclusively by the publication pipeline.

Invariants:
    - One row per (tenant_id, exam_id)
    - owner identifies the task holding the claim; advance/finish only succeed for that owner
    - updated_at is the heartbeat used for stall detection
"""

from datetime import datetime

from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from examops.db.base import Base


class PublicationProgressRow(Base):
    __tablename__ = "publication_progress"

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    exam_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_records: Mapped[int] = mapped_column(Integer, nullable=False)
    processed_offset: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    owner: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
