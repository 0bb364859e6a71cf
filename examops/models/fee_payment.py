"""FeePayment ORM — one payment attempt per idempotency key.

Invariants:
    - UNIQUE (tenant_id, idempotency_key): the central payment invariant, enforced by the database
    - gateway_ref indexed per tenant: webhooks are matched by gateway reference
    - status transitions initiated -> success | failed happen via conditional UPDATE only

Design Decisions:
    - fee_id is a plain identifier, not a ForeignKey relationship: payments reference fees,
      they do not own them
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Numeric, Text, DateTime, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from examops.db.base import Base


class FeePaymentRow(Base):
    __tablename__ = "fee_payments"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "idempotency_key", name="uq_payment_idempotency_key",
        ),
        Index("ix_payment_gateway_ref", "tenant_id", "gateway_ref"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    payment_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    fee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False)
    gateway_ref: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="initiated",
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
