from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from payables.models.enums import DueSeverity, InvoiceStatus, TdsRounding
from payables.schemas.base import ORMModel
from payables.schemas.payment import PaymentSummaryRead


class InvoiceFields(BaseModel):
    invoice_name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    notes: Optional[str] = None
    category_id: Optional[int] = None
    invoice_profile_id: Optional[int] = None
    currency_id: Optional[int] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None

    @model_validator(mode="after")
    def check_period(self):
        if self.period_start and self.period_end and self.period_end < self.period_start:
            raise ValueError("period_end must be on or after period_start")
        return self


class InvoiceCreate(InvoiceFields):
    invoice_number: str = Field(..., min_length=1, max_length=100)
    vendor_id: int
    amount: Decimal = Field(..., gt=Decimal("0"))
    is_recurring: bool = False
    tds_applicable: bool = False
    tds_percentage: Optional[Decimal] = Field(default=None, ge=Decimal("0"), le=Decimal("100"))
    tds_rounding: TdsRounding = TdsRounding.EXACT


class InvoiceUpdate(InvoiceFields):
    invoice_number: Optional[str] = Field(default=None, min_length=1, max_length=100)
    vendor_id: Optional[int] = None
    amount: Optional[Decimal] = Field(default=None, gt=Decimal("0"))
    is_recurring: Optional[bool] = None
    tds_applicable: Optional[bool] = None
    tds_percentage: Optional[Decimal] = Field(default=None, ge=Decimal("0"), le=Decimal("100"))
    tds_rounding: Optional[TdsRounding] = None


class ReasonPayload(BaseModel):
    reason: str


class ArchivePayload(BaseModel):
    reason: Optional[str] = None


class InvoiceRead(ORMModel):
    id: int
    invoice_number: str
    invoice_name: Optional[str] = None
    description: Optional[str] = None
    vendor_id: int
    category_id: Optional[int] = None
    invoice_profile_id: Optional[int] = None
    currency_id: Optional[int] = None
    amount: Decimal
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    is_recurring: bool
    tds_applicable: bool
    tds_percentage: Optional[Decimal] = None
    tds_rounding: TdsRounding
    status: InvoiceStatus
    created_by_user_id: Optional[int] = None
    hold_reason: Optional[str] = None
    hold_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    rejected_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    is_archived: bool
    archived_at: Optional[datetime] = None
    archived_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class DueStateRead(ORMModel):
    days: int
    label: str
    severity: DueSeverity
    is_overdue: bool
    is_due_soon: bool


class InvoiceWorklistRow(InvoiceRead):
    vendor_name: Optional[str] = None
    effective_status: InvoiceStatus
    total_paid: Decimal
    remaining_balance: Decimal
    has_pending_payment: bool
    due_state: Optional[DueStateRead] = None
    priority_rank: int


class InvoiceListResponse(BaseModel):
    items: List[InvoiceWorklistRow]
    total: int
    page: int
    per_page: int
    total_pages: int


class InvoiceDetail(BaseModel):
    invoice: InvoiceRead
    payment_summary: PaymentSummaryRead
    effective_status: InvoiceStatus
    due_state: Optional[DueStateRead] = None


class VendorGateRead(BaseModel):
    has_pending_vendor: bool
    vendor_id: int
    vendor_name: str
    vendor_status: str


class AttachmentRead(ORMModel):
    id: int
    invoice_id: int
    original_name: str
    storage_path: str
    mime_type: Optional[str] = None
    size_bytes: int
    created_at: datetime


class ArchiveOutcome(BaseModel):
    archived: bool
    invoice_id: int
    request_id: Optional[int] = None


class CommentCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=5000)


class CommentRead(ORMModel):
    id: int
    invoice_id: int
    author_user_id: Optional[int] = None
    body: str
    created_at: datetime
