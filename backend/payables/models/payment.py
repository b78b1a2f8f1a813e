from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, Date, DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payables.db.base import Base, IDMixin, Money, TimestampMixin
from payables.models.enums import PaymentStatus, TdsRounding


class Payment(IDMixin, TimestampMixin, Base):
    __tablename__ = "payments"
    __table_args__ = (CheckConstraint("amount_paid > 0", name="amount_paid_positive"),)

    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_type_id: Mapped[Optional[int]] = mapped_column(ForeignKey("payment_types.id"), nullable=True, index=True)
    amount_paid: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status"),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Withholding as it applied when the payment was recorded.
    tds_amount_applied: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    tds_rounding: Mapped[TdsRounding] = mapped_column(
        Enum(TdsRounding, name="tds_rounding"),
        default=TdsRounding.EXACT,
        nullable=False,
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    reviewed_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    invoice: Mapped["Invoice"] = relationship(back_populates="payments")
    payment_type: Mapped[Optional["PaymentType"]] = relationship()
