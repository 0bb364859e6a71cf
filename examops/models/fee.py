"""Fee ORM — amount owed by a student; payment_status flips to paid on a successful payment."""

from decimal import Decimal

from sqlalchemy import String, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from examops.db.base import Base


class FeeRow(Base):
    __tablename__ = "fees"

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    fee_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="unpaid",
    )
