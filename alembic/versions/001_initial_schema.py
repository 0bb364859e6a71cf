"""Initial schema — exams, schedules, enrollments, grades, publication checkpoints, fees, payments.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "exams",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("exam_id", sa.String(64), primary_key=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="draft"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "schedule_entries",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("schedule_id", sa.String(64), primary_key=True),
        sa.Column("exam_id", sa.String(64), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("class_id", sa.String(64), nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("start_time", sa.Time, nullable=False),
        sa.Column("end_time", sa.Time, nullable=False),
        sa.Column("room_id", sa.String(64), nullable=False),
        sa.Column("max_marks", sa.Integer, nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
    )
    op.create_index(
        "uq_schedule_active_room_slot", "schedule_entries",
        ["tenant_id", "room_id", "date", "start_time"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    if op.get_context().dialect.name == "postgresql":
        # Overlapping active sittings in one room, whatever their start times
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            "ALTER TABLE schedule_entries ADD CONSTRAINT ex_schedule_active_room_overlap "
            "EXCLUDE USING gist (tenant_id WITH =, room_id WITH =, "
            "tsrange(date + start_time, date + end_time) WITH &&) "
            "WHERE (status = 'active')"
        )
    op.create_index("ix_schedule_tenant_date_room", "schedule_entries", ["tenant_id", "date", "room_id"])
    op.create_index("ix_schedule_tenant_date_class", "schedule_entries", ["tenant_id", "date", "class_id"])

    op.create_table(
        "schedule_invigilators",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("schedule_id", sa.String(64), primary_key=True),
        sa.Column("invigilator_id", sa.String(64), primary_key=True),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(
            ["tenant_id", "schedule_id"],
            ["schedule_entries.tenant_id", "schedule_entries.schedule_id"],
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_invigilator_lookup", "schedule_invigilators", ["tenant_id", "invigilator_id"])

    op.create_table(
        "class_enrollments",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("class_id", sa.String(64), primary_key=True),
        sa.Column("student_id", sa.String(64), primary_key=True),
    )
    op.create_index("ix_enrollment_student", "class_enrollments", ["tenant_id", "student_id"])

    op.create_table(
        "grade_records",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("exam_id", sa.String(64), primary_key=True),
        sa.Column("student_id", sa.String(64), primary_key=True),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("marks_obtained", sa.Numeric(8, 2), nullable=False),
        sa.Column("total_marks", sa.Numeric(8, 2), nullable=False),
        sa.Column("grade_letter", sa.String(4), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "publication_progress",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("exam_id", sa.String(64), primary_key=True),
        sa.Column("total_records", sa.Integer, nullable=False),
        sa.Column("processed_offset", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("owner", sa.String(64), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "fees",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("fee_id", sa.String(64), primary_key=True),
        sa.Column("student_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="unpaid"),
    )

    op.create_table(
        "fee_payments",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("payment_id", sa.String(64), primary_key=True),
        sa.Column("fee_id", sa.String(64), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=False),
        sa.Column("gateway_ref", sa.String(128), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="initiated"),
        sa.Column("failure_reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "idempotency_key", name="uq_payment_idempotency_key"),
    )
    op.create_index("ix_payment_gateway_ref", "fee_payments", ["tenant_id", "gateway_ref"])


def downgrade() -> None:
    op.drop_table("fee_payments")
    op.drop_table("fees")
    op.drop_table("publication_progress")
    op.drop_table("grade_records")
    op.drop_table("class_enrollments")
    op.drop_table("schedule_invigilators")
    op.drop_table("schedule_entries")
    op.drop_table("exams")
