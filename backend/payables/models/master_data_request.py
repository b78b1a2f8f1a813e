from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payables.db.base import Base, IDMixin, TimestampMixin
from payables.models.enums import MasterDataEntityType, RequestStatus


class MasterDataRequest(IDMixin, TimestampMixin, Base):
    __tablename__ = "master_data_requests"

    entity_type: Mapped[MasterDataEntityType] = mapped_column(
        Enum(MasterDataEntityType, name="master_data_entity_type"),
        nullable=False,
        index=True,
    )
    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, name="master_data_request_status"),
        default=RequestStatus.PENDING_APPROVAL,
        nullable=False,
        index=True,
    )
    # Identifies the thing the request acts on when only one pending request per target is allowed.
    target_key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)

    requester_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    reviewer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    request_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    admin_edits: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    resubmission_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    previous_attempt_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("master_data_requests.id"),
        nullable=True,
        index=True,
    )
    superseded_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("master_data_requests.id"), nullable=True)
    created_entity_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    requester: Mapped["User"] = relationship(foreign_keys=[requester_id])
    previous_attempt: Mapped[Optional["MasterDataRequest"]] = relationship(
        remote_side="MasterDataRequest.id",
        foreign_keys=[previous_attempt_id],
    )
