"""Domain Records — plain, fully-populated data records passed between core and shell.

Invariants:
    - Every record carries tenant_id; no record is valid without one
    - Records are frozen: state changes produce a new record via dataclasses.replace
    - No record references another by object; relationships are plain identifiers

Design Decisions:
    - Frozen dataclasses over ORM entities: no lazy loading, every field present at construction
    - Tuples for id collections: hashable, immutable, stable ordering for logs and responses
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal

from examops.core.domain_types import (
    TenantId, ExamId, ScheduleId, SubjectId, ClassId, RoomId, InvigilatorId,
    StudentId, FeeId, PaymentId, GatewayRef, IdempotencyKey,
    ExamStatus, ScheduleStatus, PublicationStatus, PaymentStatus,
    FeePaymentStatus, GradeCategory,
)
from examops.core.grade_bands import grade_category, percentage


@dataclass(frozen=True)
class ScheduleEntry:
    """One exam sitting: a subject for a class, in a room, over [start_time, end_time)."""
    tenant_id: TenantId
    schedule_id: ScheduleId
    exam_id: ExamId
    subject_id: SubjectId
    class_id: ClassId
    date: date
    start_time: time
    end_time: time
    room_id: RoomId
    invigilator_ids: tuple[InvigilatorId, ...] = ()
    max_marks: int = 100
    duration_minutes: int = 60
    status: ScheduleStatus = ScheduleStatus.ACTIVE

    @property
    def interval(self) -> tuple[time, time]:
        return (self.start_time, self.end_time)

    @property
    def is_active(self) -> bool:
        return self.status == ScheduleStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "schedule_id": self.schedule_id,
            "exam_id": self.exam_id,
            "subject_id": self.subject_id,
            "class_id": self.class_id,
            "date": self.date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "room_id": self.room_id,
            "invigilator_ids": list(self.invigilator_ids),
            "max_marks": self.max_marks,
            "duration_minutes": self.duration_minutes,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class GradeRecord:
    """Graded result of one student in one exam. Read-only for publication."""
    tenant_id: TenantId
    exam_id: ExamId
    student_id: StudentId
    subject_id: SubjectId
    marks_obtained: Decimal
    total_marks: Decimal
    grade_letter: str
    computed_at: datetime

    @property
    def percentage(self) -> Decimal:
        return percentage(self.marks_obtained, self.total_marks)

    @property
    def grade_category(self) -> GradeCategory:
        return grade_category(self.marks_obtained, self.total_marks)

    def to_result_payload(self) -> dict:
        """JSON-safe view shared by the result cache and publication events."""
        return {
            "tenant_id": self.tenant_id,
            "exam_id": self.exam_id,
            "student_id": self.student_id,
            "subject_id": self.subject_id,
            "marks_obtained": str(self.marks_obtained),
            "total_marks": str(self.total_marks),
            "percentage": str(self.percentage),
            "grade_letter": self.grade_letter,
            "grade_category": self.grade_category.value,
            "computed_at": self.computed_at.isoformat(),
        }


@dataclass(frozen=True)
class Exam:
    tenant_id: TenantId
    exam_id: ExamId
    status: ExamStatus = ExamStatus.DRAFT
    published_at: datetime | None = None


@dataclass(frozen=True)
class PublicationProgress:
    """Durable batch checkpoint. owner is the claim token of the task holding the exam."""
    tenant_id: TenantId
    exam_id: ExamId
    total_records: int
    processed_offset: int = 0
    status: PublicationStatus = PublicationStatus.IN_PROGRESS
    owner: str | None = None
    updated_at: datetime | None = None

    @property
    def remaining(self) -> int:
        return max(self.total_records - self.processed_offset, 0)

    def to_dict(self) -> dict:
        return {
            "exam_id": self.exam_id,
            "total_records": self.total_records,
            "processed_offset": self.processed_offset,
            "status": self.status.value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class Fee:
    tenant_id: TenantId
    fee_id: FeeId
    student_id: StudentId
    amount: Decimal
    payment_status: FeePaymentStatus = FeePaymentStatus.UNPAID


@dataclass(frozen=True)
class FeePayment:
    """One payment attempt. At most one exists per (tenant_id, idempotency_key)."""
    tenant_id: TenantId
    payment_id: PaymentId
    fee_id: FeeId
    idempotency_key: IdempotencyKey
    gateway_ref: GatewayRef
    amount: Decimal
    status: PaymentStatus = PaymentStatus.INITIATED
    failure_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_public_dict(self) -> dict:
        """Caller-facing view. The idempotency key is never echoed back."""
        return {
            "payment_id": self.payment_id,
            "fee_id": self.fee_id,
            "gateway_ref": self.gateway_ref,
            "amount": str(self.amount),
            "status": self.status.value,
            "failure_reason": self.failure_reason,
        }


@dataclass(frozen=True)
class PaymentRequest:
    """Initiation request body. idempotency_key is caller-supplied."""
    fee_id: FeeId
    amount: Decimal
    idempotency_key: IdempotencyKey
    metadata: dict = field(default_factory=dict)
