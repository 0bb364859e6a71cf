"""Payment Processor — idempotent initiation and gateway callback reconciliation.

Invariants:
    - At most one FeePayment per (tenant, idempotency_key): a repeated key returns the stored
      payment unchanged and never calls the gateway again
    - Callbacks are matched by gateway_ref, never by idempotency key
    - success and failed are absorbing; a succeeded callback marks the fee paid in the same
      transaction as the payment update, so duplicates update the fee exactly once
    - A failed payment is never retried here; retrying is the initiating caller's decision
    - The idempotency key never appears in logs, errors or responses

Design Decisions:
    - In-process lock per (tenant, key) serializes local duplicates before the gateway call;
      the unique constraint resolves cross-process races (loser returns the winner's row)
    - Compare-and-set on status=initiated instead of read-modify-write
"""

import dataclasses
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from examops.core.domain_types import (
    FeePaymentStatus, GatewayCallbackStatus, GatewayRef, PaymentId,
    PaymentStatus, TenantId,
)
from examops.core.errors import (
    InvalidPaymentRequestError, InvalidStateError, ResourceNotFoundError,
    UnknownPaymentError, ErrorContext,
)
from examops.core.payment_state import CallbackDecision, resolve_callback, target_status
from examops.core.records import FeePayment, PaymentRequest
from examops.core.repository_protocols import FeeStore, PaymentGateway, PaymentStore
from examops.services.keyed_locks import KeyedLocks

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class InitiationResult:
    payment: FeePayment
    duplicate: bool


@dataclass(frozen=True)
class GatewayCallback:
    gateway_ref: GatewayRef
    status: GatewayCallbackStatus
    reason: str | None = None


@dataclass(frozen=True)
class CallbackOutcome:
    payment: FeePayment
    applied: bool
    decision: CallbackDecision


class PaymentProcessor:
    """Converges initiation requests and gateway webhooks on one payment record per key."""

    def __init__(
        self,
        fees: FeeStore,
        payments: PaymentStore,
        gateway: PaymentGateway,
        currency: str = "USD",
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] = _utcnow,
        new_payment_id: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        self.fees = fees
        self.payments = payments
        self.gateway = gateway
        self.currency = currency
        self.locks = locks or KeyedLocks()
        self.clock = clock
        self.new_payment_id = new_payment_id

    async def initiate(self, tenant_id: TenantId, request: PaymentRequest) -> InitiationResult:
        """Start a fee payment, or return the payment already started under this key."""
        ctx = ErrorContext(tenant_id=tenant_id)
        if not request.idempotency_key:
            raise InvalidPaymentRequestError(
                "idempotency key is required", "idempotency_key", ctx,
            )

        async with self.locks.hold([f"payment:{tenant_id}:{request.idempotency_key}"]):
            existing = await self.payments.get_by_idempotency_key(
                tenant_id, request.idempotency_key,
            )
            if existing is not None:
                logger.info(
                    "Duplicate payment initiation returned existing payment",
                    extra={"tenant_id": tenant_id, "payment_id": existing.payment_id},
                )
                return InitiationResult(existing, duplicate=True)

            fee = await self.fees.get(tenant_id, request.fee_id)
            if fee is None:
                raise ResourceNotFoundError("Fee", request.fee_id, ctx)
            if fee.payment_status == FeePaymentStatus.PAID:
                raise InvalidStateError(
                    f"Fee '{fee.fee_id}' is already paid",
                    current_state=fee.payment_status.value,
                    context=ctx,
                )
            if request.amount <= 0:
                raise InvalidPaymentRequestError("amount must be positive", "amount", ctx)
            if request.amount != fee.amount:
                raise InvalidPaymentRequestError(
                    f"amount must equal the fee amount ({fee.amount})", "amount", ctx,
                )

            payment_id = PaymentId(self.new_payment_id())
            ctx.payment_id = payment_id
            gateway_ref = await self.gateway.initiate(
                request.amount,
                self.currency,
                fee.student_id,
                {
                    **request.metadata,
                    "tenant_id": tenant_id,
                    "fee_id": fee.fee_id,
                    "payment_id": payment_id,
                },
            )

            now = self.clock()
            payment, created = await self.payments.create(FeePayment(
                tenant_id=tenant_id,
                payment_id=payment_id,
                fee_id=fee.fee_id,
                idempotency_key=request.idempotency_key,
                gateway_ref=gateway_ref,
                amount=request.amount,
                created_at=now,
                updated_at=now,
            ))

        logger.info(
            "Payment initiated" if created else "Concurrent initiation lost to existing payment",
            extra={"tenant_id": tenant_id, "payment_id": payment.payment_id},
        )
        return InitiationResult(payment, duplicate=not created)

    async def handle_callback(
        self, tenant_id: TenantId, callback: GatewayCallback,
    ) -> CallbackOutcome:
        """Apply a gateway webhook. Duplicates and contradictions of a terminal state are no-ops."""
        payment = await self.payments.get_by_gateway_ref(tenant_id, callback.gateway_ref)
        if payment is None:
            raise UnknownPaymentError(
                callback.gateway_ref, ErrorContext(tenant_id=tenant_id),
            )

        decision = resolve_callback(payment.status, callback.status)
        if decision == CallbackDecision.APPLY:
            target = target_status(callback.status)
            reason = callback.reason if target == PaymentStatus.FAILED else None
            now = self.clock()
            applied = await self.payments.record_outcome(
                tenant_id,
                payment.payment_id,
                target,
                reason,
                payment.fee_id if target == PaymentStatus.SUCCESS else None,
                now,
            )
            if applied:
                payment = dataclasses.replace(
                    payment, status=target, failure_reason=reason, updated_at=now,
                )
                logger.info(
                    f"Payment {target.value}",
                    extra={
                        "tenant_id": tenant_id,
                        "payment_id": payment.payment_id,
                        "decision": decision.value,
                    },
                )
                return CallbackOutcome(payment, True, decision)

            # A concurrent callback moved it first; resolve against what it wrote
            current = await self.payments.get_by_gateway_ref(tenant_id, callback.gateway_ref)
            payment = current or payment
            decision = resolve_callback(payment.status, callback.status)

        log = logger.info if decision == CallbackDecision.DUPLICATE else logger.warning
        log(
            "Payment callback not applied",
            extra={
                "tenant_id": tenant_id,
                "payment_id": payment.payment_id,
                "decision": decision.value,
            },
        )
        return CallbackOutcome(payment, False, decision)
