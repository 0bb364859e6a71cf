"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell: dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Every method takes tenant_id explicitly; no implementation may answer across tenants
    - Every query returns fully-populated records (no lazy loading behind the interface)

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Async in Protocol: boundary methods are async because implementations do IO,
      but core pure functions that USE their results are never async themselves;
      the services orchestrate the async calls around the pure logic
    - Conditional writes (claim/advance/transition/record_outcome) return bool:
      False means another writer got there first, which callers treat as an expected outcome
"""

from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from examops.core.domain_types import (
    TenantId, ExamId, ScheduleId, ClassId, RoomId, InvigilatorId, StudentId,
    FeeId, PaymentId, GatewayRef, IdempotencyKey,
    CommitStatus, ExamStatus, PaymentStatus, PublicationStatus,
)
from examops.core.records import (
    ScheduleEntry, GradeRecord, Exam, PublicationProgress, Fee, FeePayment,
)


class ScheduleStore(Protocol):
    """Durable schedule records. Queries only return active entries."""
    async def get(
        self, tenant_id: TenantId, schedule_id: ScheduleId,
    ) -> ScheduleEntry | None: ...
    async def query_by_room_and_date(
        self, tenant_id: TenantId, room_id: RoomId, on: date,
    ) -> list[ScheduleEntry]: ...
    async def query_by_students_and_date(
        self, tenant_id: TenantId, student_ids: Iterable[StudentId], on: date,
    ) -> list[ScheduleEntry]: ...
    async def query_by_invigilators_and_date(
        self, tenant_id: TenantId, invigilator_ids: Iterable[InvigilatorId], on: date,
    ) -> list[ScheduleEntry]: ...
    async def commit(self, entry: ScheduleEntry) -> CommitStatus: ...
    async def replace(
        self, tenant_id: TenantId, schedule_id: ScheduleId, entry: ScheduleEntry,
    ) -> CommitStatus: ...
    async def cancel(
        self, tenant_id: TenantId, schedule_id: ScheduleId,
    ) -> ScheduleEntry | None: ...


class EnrollmentDirectory(Protocol):
    """Which students sit in which class."""
    async def students_in_class(
        self, tenant_id: TenantId, class_id: ClassId,
    ) -> frozenset[StudentId]: ...
    async def students_in_classes(
        self, tenant_id: TenantId, class_ids: Iterable[ClassId],
    ) -> dict[ClassId, frozenset[StudentId]]: ...


class GradeRecordStore(Protocol):
    """Read-only view of computed grades, ordered by student_id."""
    async def count_for_exam(self, tenant_id: TenantId, exam_id: ExamId) -> int: ...
    async def fetch_batch(
        self, tenant_id: TenantId, exam_id: ExamId, offset: int, limit: int,
    ) -> list[GradeRecord]: ...
    async def get(
        self, tenant_id: TenantId, exam_id: ExamId, student_id: StudentId,
    ) -> GradeRecord | None: ...


class ExamStore(Protocol):
    async def get(self, tenant_id: TenantId, exam_id: ExamId) -> Exam | None: ...
    async def transition_status(
        self,
        tenant_id: TenantId,
        exam_id: ExamId,
        expected: ExamStatus,
        target: ExamStatus,
        at: datetime,
    ) -> bool: ...


class PublicationProgressStore(Protocol):
    """Checkpoint store. Writes are single atomic statements scoped to tenant + exam."""
    async def get(
        self, tenant_id: TenantId, exam_id: ExamId,
    ) -> PublicationProgress | None: ...
    async def claim(
        self,
        tenant_id: TenantId,
        exam_id: ExamId,
        total_records: int,
        owner: str,
        now: datetime,
        stale_before: datetime,
    ) -> PublicationProgress | None: ...
    async def advance(
        self,
        tenant_id: TenantId,
        exam_id: ExamId,
        owner: str,
        processed_offset: int,
        now: datetime,
    ) -> bool: ...
    async def finish(
        self,
        tenant_id: TenantId,
        exam_id: ExamId,
        owner: str,
        status: PublicationStatus,
        now: datetime,
    ) -> bool: ...


class ResultCache(Protocol):
    """Key-value store with TTL. get() returns None on miss or expiry."""
    async def set(self, key: str, value: dict, ttl_seconds: int) -> None: ...
    async def get(self, key: str) -> dict | None: ...


class EventNotifier(Protocol):
    """At-least-once message bus. Returns once the bus acknowledged the publish."""
    async def publish(self, topic: str, key: str, payload: dict) -> None: ...


class FeeStore(Protocol):
    async def get(self, tenant_id: TenantId, fee_id: FeeId) -> Fee | None: ...


class PaymentStore(Protocol):
    async def get_by_idempotency_key(
        self, tenant_id: TenantId, idempotency_key: IdempotencyKey,
    ) -> FeePayment | None: ...
    async def get_by_gateway_ref(
        self, tenant_id: TenantId, gateway_ref: GatewayRef,
    ) -> FeePayment | None: ...
    async def create(self, payment: FeePayment) -> tuple[FeePayment, bool]: ...
    async def record_outcome(
        self,
        tenant_id: TenantId,
        payment_id: PaymentId,
        status: PaymentStatus,
        reason: str | None,
        mark_fee_paid: FeeId | None,
        at: datetime,
    ) -> bool: ...


class PaymentGateway(Protocol):
    async def initiate(
        self,
        amount: Decimal,
        currency: str,
        customer_ref: str,
        metadata: dict,
    ) -> GatewayRef: ...
