"""Payment Repository — fees and fee payments.

Invariants:
    - create() inserts under UNIQUE (tenant_id, idempotency_key); losing that race returns the
      winning row with created=False instead of raising
    - record_outcome() moves a payment out of initiated and, when asked, marks its fee paid
      in the same transaction; a payment already out of initiated is left untouched
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from examops.core.domain_types import (
    TenantId, FeeId, PaymentId, GatewayRef, IdempotencyKey, StudentId,
    FeePaymentStatus, PaymentStatus,
)
from examops.core.errors import DatabaseError
from examops.core.records import Fee, FeePayment
from examops.infrastructure.database import DatabaseSessionManager
from examops.models.fee import FeeRow
from examops.models.fee_payment import FeePaymentRow

logger = logging.getLogger(__name__)


def _to_fee(row: FeeRow) -> Fee:
    return Fee(
        tenant_id=TenantId(row.tenant_id),
        fee_id=FeeId(row.fee_id),
        student_id=StudentId(row.student_id),
        amount=Decimal(row.amount),
        payment_status=FeePaymentStatus(row.payment_status),
    )


def _to_payment(row: FeePaymentRow) -> FeePayment:
    return FeePayment(
        tenant_id=TenantId(row.tenant_id),
        payment_id=PaymentId(row.payment_id),
        fee_id=FeeId(row.fee_id),
        idempotency_key=IdempotencyKey(row.idempotency_key),
        gateway_ref=GatewayRef(row.gateway_ref),
        amount=Decimal(row.amount),
        status=PaymentStatus(row.status),
        failure_reason=row.failure_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlFeeStore:
    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def get(self, tenant_id: TenantId, fee_id: FeeId) -> Fee | None:
        async with self._db.session() as s:
            row = await s.get(FeeRow, (tenant_id, fee_id))
            return _to_fee(row) if row else None


class SqlPaymentStore:
    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def get_by_idempotency_key(
        self, tenant_id: TenantId, idempotency_key: IdempotencyKey,
    ) -> FeePayment | None:
        return await self._find_one(
            FeePaymentRow.tenant_id == tenant_id,
            FeePaymentRow.idempotency_key == idempotency_key,
        )

    async def get_by_gateway_ref(
        self, tenant_id: TenantId, gateway_ref: GatewayRef,
    ) -> FeePayment | None:
        return await self._find_one(
            FeePaymentRow.tenant_id == tenant_id,
            FeePaymentRow.gateway_ref == gateway_ref,
        )

    async def create(self, payment: FeePayment) -> tuple[FeePayment, bool]:
        async with self._db.session() as s:
            row = FeePaymentRow(
                tenant_id=payment.tenant_id,
                payment_id=payment.payment_id,
                fee_id=payment.fee_id,
                idempotency_key=payment.idempotency_key,
                gateway_ref=payment.gateway_ref,
                amount=payment.amount,
                status=payment.status.value,
                failure_reason=payment.failure_reason,
            )
            if payment.created_at is not None:
                row.created_at = payment.created_at
                row.updated_at = payment.created_at
            s.add(row)
            try:
                await s.commit()
            except IntegrityError:
                await s.rollback()
            else:
                return _to_payment(row), True

        existing = await self.get_by_idempotency_key(
            payment.tenant_id, payment.idempotency_key,
        )
        if existing is None:
            raise DatabaseError("payment insert rejected", "commit")
        logger.info(
            "Concurrent initiation resolved to existing payment",
            extra={"tenant_id": payment.tenant_id, "payment_id": existing.payment_id},
        )
        return existing, False

    async def record_outcome(
        self,
        tenant_id: TenantId,
        payment_id: PaymentId,
        status: PaymentStatus,
        reason: str | None,
        mark_fee_paid: FeeId | None,
        at: datetime,
    ) -> bool:
        async with self._db.session() as s:
            result = await s.execute(
                update(FeePaymentRow)
                .where(FeePaymentRow.tenant_id == tenant_id)
                .where(FeePaymentRow.payment_id == payment_id)
                .where(FeePaymentRow.status == PaymentStatus.INITIATED.value)
                .values(status=status.value, failure_reason=reason, updated_at=at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await s.rollback()
                return False
            if mark_fee_paid is not None:
                await s.execute(
                    update(FeeRow)
                    .where(FeeRow.tenant_id == tenant_id)
                    .where(FeeRow.fee_id == mark_fee_paid)
                    .values(payment_status=FeePaymentStatus.PAID.value)
                    .execution_options(synchronize_session=False)
                )
            await s.commit()
            return True

    async def _find_one(self, *criteria) -> FeePayment | None:
        async with self._db.session() as s:
            result = await s.execute(select(FeePaymentRow).where(*criteria))
            row = result.scalar_one_or_none()
            return _to_payment(row) if row else None
