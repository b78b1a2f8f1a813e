from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from payables.models.enums import VendorStatus
from payables.schemas.base import ORMModel


class VendorCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: Optional[str] = None
    gst_exemption: bool = False
    bank_details: Optional[str] = None


class VendorRead(ORMModel):
    id: int
    name: str
    address: Optional[str] = None
    gst_exemption: bool
    bank_details: Optional[str] = None
    status: VendorStatus
    is_active: bool
    created_by_user_id: Optional[int] = None
    approved_by_user_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime


class VendorRejectionRead(BaseModel):
    vendor: VendorRead
    rejected_invoice_ids: list[int]


class JointApprovalRead(BaseModel):
    vendor_id: int
    vendor_status: VendorStatus
    invoice_id: int
    invoice_status: str
