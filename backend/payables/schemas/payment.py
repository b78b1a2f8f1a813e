from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from payables.models.enums import PaymentStatus, TdsRounding
from payables.schemas.base import ORMModel


class PaymentCreate(BaseModel):
    amount_paid: Decimal = Field(..., gt=Decimal("0"))
    payment_date: date
    payment_type_id: Optional[int] = None
    payment_reference: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None


class PaymentRead(ORMModel):
    id: int
    invoice_id: int
    payment_type_id: Optional[int] = None
    amount_paid: Decimal
    payment_date: date
    payment_reference: Optional[str] = None
    status: PaymentStatus
    tds_amount_applied: Decimal
    tds_rounding: TdsRounding
    created_by_user_id: Optional[int] = None
    reviewed_by_user_id: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime


class PaymentSummaryRead(ORMModel):
    invoice_id: int
    invoice_amount: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    payment_count: int
    is_fully_paid: bool
    is_partially_paid: bool
    has_pending_payment: bool
