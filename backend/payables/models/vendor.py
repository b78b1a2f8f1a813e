from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payables.db.base import Base, IDMixin, TimestampMixin
from payables.models.enums import VendorStatus


class Vendor(IDMixin, TimestampMixin, Base):
    __tablename__ = "vendors"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    gst_exemption: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    bank_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[VendorStatus] = mapped_column(
        Enum(VendorStatus, name="vendor_status"),
        default=VendorStatus.PENDING_APPROVAL,
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    approved_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    invoices: Mapped[List["Invoice"]] = relationship(back_populates="vendor")


# Vendor names are unique case-insensitively among rows that are not soft deleted.
Index(
    "uq_vendors_name_lower",
    func.lower(Vendor.name),
    unique=True,
    sqlite_where=Vendor.deleted_at.is_(None),
    postgresql_where=Vendor.deleted_at.is_(None),
)
