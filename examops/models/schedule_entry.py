"""ScheduleEntry ORM — committed exam sittings plus their invigilator assignments.

Invariants:
    - (tenant_id, schedule_id) is the primary key
    - At most one ACTIVE entry per (tenant_id, room_id, date, start_time): partial unique index
    - On PostgreSQL no two ACTIVE entries of one tenant and room overlap in time: the
      ex_schedule_active_room_overlap EXCLUDE constraint (btree_gist), created by the migration
      only, since create_all also targets SQLite
    - Invigilators live in schedule_invigilators (one row per assignment) so the
      invigilator dimension is an indexed join, not a JSON scan

Design Decisions:
    - No relationship(): repositories load invigilators with an explicit second query
"""

from datetime import date, time

from sqlalchemy import String, Integer, Date, Time, Index, ForeignKeyConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from examops.db.base import Base


class ScheduleEntryRow(Base):
    __tablename__ = "schedule_entries"
    __table_args__ = (
        Index(
            "uq_schedule_active_room_slot",
            "tenant_id", "room_id", "date", "start_time",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_schedule_tenant_date_room", "tenant_id", "date", "room_id"),
        Index("ix_schedule_tenant_date_class", "tenant_id", "date", "class_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    schedule_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    exam_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    room_id: Mapped[str] = mapped_column(String(64), nullable=False)
    max_marks: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="active",
    )


class ScheduleInvigilatorRow(Base):
    __tablename__ = "schedule_invigilators"
    __table_args__ = (
        ForeignKeyConstraint(
            ["tenant_id", "schedule_id"],
            ["schedule_entries.tenant_id", "schedule_entries.schedule_id"],
            ondelete="CASCADE",
        ),
        Index("ix_invigilator_lookup", "tenant_id", "invigilator_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    schedule_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    invigilator_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
