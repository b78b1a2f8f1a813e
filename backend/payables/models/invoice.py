from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payables.db.base import Base, IDMixin, Money, Rate, TimestampMixin
from payables.models.enums import InvoiceStatus, TdsRounding


class Invoice(IDMixin, TimestampMixin, Base):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("invoice_number", "vendor_id", name="uq_invoices_invoice_number_vendor_id"),
        CheckConstraint("amount > 0", name="amount_positive"),
    )

    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    invoice_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    vendor_id: Mapped[int] = mapped_column(ForeignKey("vendors.id"), nullable=False, index=True)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"), nullable=True, index=True)
    invoice_profile_id: Mapped[Optional[int]] = mapped_column(ForeignKey("invoice_profiles.id"), nullable=True, index=True)
    currency_id: Mapped[Optional[int]] = mapped_column(ForeignKey("currencies.id"), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    invoice_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    period_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    period_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    tds_applicable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    tds_percentage: Mapped[Optional[Decimal]] = mapped_column(Rate, nullable=True)
    tds_rounding: Mapped[TdsRounding] = mapped_column(
        Enum(TdsRounding, name="tds_rounding"),
        default=TdsRounding.EXACT,
        nullable=False,
    )

    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus, name="invoice_status"),
        default=InvoiceStatus.PENDING_APPROVAL,
        nullable=False,
        index=True,
    )
    created_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)

    hold_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hold_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    hold_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejected_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    approved_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    archived_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    vendor: Mapped["Vendor"] = relationship(back_populates="invoices")
    category: Mapped[Optional["Category"]] = relationship()
    invoice_profile: Mapped[Optional["InvoiceProfile"]] = relationship()
    currency: Mapped[Optional["Currency"]] = relationship()
    creator: Mapped[Optional["User"]] = relationship(foreign_keys=[created_by_user_id])

    payments: Mapped[List["Payment"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="Payment.payment_date",
    )
    attachments: Mapped[List["InvoiceAttachment"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
    )
    comments: Mapped[List["InvoiceComment"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceComment.created_at",
    )


class InvoiceAttachment(IDMixin, TimestampMixin, Base):
    __tablename__ = "invoice_attachments"

    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    uploaded_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(500), nullable=False, unique=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    invoice: Mapped["Invoice"] = relationship(back_populates="attachments")


class InvoiceComment(IDMixin, TimestampMixin, Base):
    __tablename__ = "invoice_comments"

    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    author_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="comments")
