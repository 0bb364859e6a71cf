"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - Every identifier is a NewType over str: never pass an untyped id through domain logic
    - All valid states encoded as Enums: no raw string matching
    - Exam status order is monotonic: draft < grading_in_progress < ready_for_publication < published

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON (cache values, event payloads, API) without custom encoders
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

TenantId = NewType("TenantId", str)
ExamId = NewType("ExamId", str)
ScheduleId = NewType("ScheduleId", str)
SubjectId = NewType("SubjectId", str)
ClassId = NewType("ClassId", str)
RoomId = NewType("RoomId", str)
InvigilatorId = NewType("InvigilatorId", str)
StudentId = NewType("StudentId", str)
FeeId = NewType("FeeId", str)
PaymentId = NewType("PaymentId", str)
GatewayRef = NewType("GatewayRef", str)
IdempotencyKey = NewType("IdempotencyKey", str)


# ─── Enums ───────────────────────────────────────────────────────

class ExamStatus(str, Enum):
    """Exam lifecycle — maps to DB `exams.status`. Declaration order is transition order."""
    DRAFT = "draft"
    GRADING_IN_PROGRESS = "grading_in_progress"
    READY_FOR_PUBLICATION = "ready_for_publication"
    PUBLISHED = "published"


class ScheduleStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class ConflictDimension(str, Enum):
    """The 3 independent axes along which two exam schedules can clash."""
    ROOM = "room"
    STUDENT = "student"
    INVIGILATOR = "invigilator"


class GradeCategory(str, Enum):
    EXCELLENT = "Excellent"
    VERY_GOOD = "VeryGood"
    GOOD = "Good"
    SATISFACTORY = "Satisfactory"
    NEEDS_IMPROVEMENT = "NeedsImprovement"


class PublicationStatus(str, Enum):
    """PublicationProgress checkpoint states."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """FeePayment states — INITIATED is the only entry state, the others are absorbing."""
    INITIATED = "initiated"
    SUCCESS = "success"
    FAILED = "failed"


class FeePaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class GatewayCallbackStatus(str, Enum):
    """Outcome reported by the payment gateway webhook."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CommitStatus(str, Enum):
    """Schedule Store verdict on a write — the store is the final conflict arbiter."""
    SUCCESS = "success"
    CONFLICT = "conflict"


class SchedulingOutcome(str, Enum):
    COMMITTED = "committed"
    REJECTED = "rejected"


class TicketStatus(str, Enum):
    """Publication request outcome — callers must tell queued from rejected."""
    STARTED = "started"
    QUEUED = "queued"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"
