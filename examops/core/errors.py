"""Error Hierarchy — typed, categorized exceptions for all examops failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are recoverable by the caller; infrastructure errors (500-level) are not
    - TransientIOError and its subclasses are the only errors the publication pipeline retries
    - No idempotency key and no internal detail ever appears in a user-facing message

Design Decisions:
    - Single hierarchy with ExamOpsError base: FastAPI global handler catches all (uniform error shape)
    - Expected outcomes (schedule conflicts, duplicate payment requests, cache misses) are result
      values, not exceptions: this module only covers failures
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    BACKPRESSURE = "backpressure"
    DATABASE = "database"
    CACHE = "cache"
    EVENT_BUS = "event_bus"
    EXTERNAL_API = "external_api"
    PUBLICATION = "publication"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tenant_id: str | None = None
    exam_id: str | None = None
    schedule_id: str | None = None
    payment_id: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class ExamOpsError(Exception):
    """Base exception for all examops errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "tenant_id": self.context.tenant_id,
                    "exam_id": self.context.exam_id,
                    "schedule_id": self.context.schedule_id,
                    "payment_id": self.context.payment_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class InvalidScheduleError(ExamOpsError):
    """Candidate schedule entry is malformed (checked before any conflict query)."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_SCHEDULE", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class InvalidPaymentRequestError(ExamOpsError):
    """Payment initiation request is malformed."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_PAYMENT_REQUEST", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class ResourceNotFoundError(ExamOpsError):
    """Requested resource does not exist for this tenant."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class InvalidStateError(ExamOpsError):
    """Operation not permitted in the resource's current state. Never retried."""
    def __init__(
        self,
        message: str,
        current_state: str | None = None,
        code: str = "INVALID_STATE",
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.INVALID_STATE,
            ErrorSeverity.ERROR, context, 409,
        )
        self.current_state = current_state


class UnknownPaymentError(InvalidStateError):
    """Gateway callback references a payment this tenant never initiated."""
    def __init__(self, gateway_ref: str, context: ErrorContext | None = None):
        super().__init__(
            f"No payment matches gateway reference '{gateway_ref}'",
            code="UNKNOWN_PAYMENT", context=context,
        )
        self.gateway_ref = gateway_ref


class PublicationInProgressError(ExamOpsError):
    """Another live task holds the publication claim for this exam."""
    def __init__(self, exam_id: str, context: ErrorContext | None = None):
        super().__init__(
            f"Publication for exam '{exam_id}' is already in progress",
            "PUBLICATION_IN_PROGRESS", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


class ConcurrencyError(ExamOpsError):
    """Concurrent modification detected."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONCURRENCY_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


class BackpressureError(ExamOpsError):
    """Work rejected because the publication pool and its backlog are full."""
    def __init__(self, capacity: int, context: ErrorContext | None = None):
        super().__init__(
            f"Publication capacity exhausted ({capacity} running or queued). Retry later.",
            "PUBLICATION_BACKPRESSURE", ErrorCategory.BACKPRESSURE,
            ErrorSeverity.WARNING, context, 429,
        )
        self.capacity = capacity


# ─── Infrastructure Errors (500-level) ──────────────────────────

class TransientIOError(ExamOpsError):
    """Store, cache or bus temporarily unavailable. Retried with backoff by the pipeline."""
    def __init__(
        self,
        message: str,
        code: str = "TRANSIENT_IO_ERROR",
        category: ErrorCategory = ErrorCategory.INTERNAL,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, category, ErrorSeverity.CRITICAL, context, 503,
        )


class StoreUnavailableError(TransientIOError):
    def __init__(self, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Store unavailable during {operation}",
            "STORE_UNAVAILABLE", ErrorCategory.DATABASE, context,
        )
        self.operation = operation


class CacheUnavailableError(TransientIOError):
    def __init__(self, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Result cache unavailable during {operation}",
            "CACHE_UNAVAILABLE", ErrorCategory.CACHE, context,
        )
        self.operation = operation


class EventBusUnavailableError(TransientIOError):
    def __init__(self, topic: str, context: ErrorContext | None = None):
        super().__init__(
            f"Event notifier rejected publish on topic '{topic}'",
            "EVENT_BUS_UNAVAILABLE", ErrorCategory.EVENT_BUS, context,
        )
        self.topic = topic


class DatabaseError(ExamOpsError):
    """Non-transient database failure (integrity, driver)."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class PublicationFailedError(ExamOpsError):
    """Batch retries exhausted. The exam stays ready_for_publication; checkpoint not advanced."""
    def __init__(
        self,
        exam_id: str,
        processed: int,
        total: int,
        attempted: int,
        succeeded: int,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.user_message = (
            f"Partial publication: {processed} of {total} results available, "
            "retry available."
        )
        super().__init__(
            f"Publication of exam '{exam_id}' failed after retries "
            f"({succeeded}/{attempted} records in failing run, {processed}/{total} checkpointed)",
            "PUBLICATION_FAILED", ErrorCategory.PUBLICATION,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.exam_id = exam_id
        self.processed = processed
        self.total = total
        self.attempted = attempted
        self.succeeded = succeeded


class PaymentGatewayError(ExamOpsError):
    """Payment gateway call failed. reason is the gateway-supplied text, if any."""
    def __init__(
        self,
        reason: str,
        error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Payment gateway error ({error_type}): {reason}",
            "PAYMENT_GATEWAY_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 502,
        )
        self.reason = reason
        self.error_type = error_type
