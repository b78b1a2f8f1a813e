"""Filtered, sorted, paginated invoice worklist.

Rows are enriched after the database query with payment totals, due state
and priority rank. Sorting on a stored column happens in SQL; sorting on a
derived value (remaining balance, priority) happens in memory over the whole
filtered set before the page is cut.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Literal, Optional

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Session, selectinload

from payables.core.errors import ValidationError
from payables.core.rbac import Actor
from payables.core.results import core_action
from payables.core.settings import settings
from payables.models.enums import InvoiceStatus, PaymentStatus
from payables.models.invoice import Invoice
from payables.models.master import InvoiceProfile
from payables.models.payment import Payment
from payables.models.vendor import Vendor
from payables.schemas.invoice import DueStateRead, InvoiceListResponse, InvoiceRead, InvoiceWorklistRow
from payables.services.due_state import classify_due_state, priority_rank, priority_sort_key
from payables.services.payments import (
    approved_totals,
    effective_status,
    invoices_with_pending_payment,
    remaining_balance,
)


OVERDUE_FILTER = "overdue"

SORT_COLUMNS = {
    "invoice_date": Invoice.invoice_date,
    "due_date": Invoice.due_date,
    "amount": Invoice.amount,
    "invoice_number": Invoice.invoice_number,
    "created_at": Invoice.created_at,
    "status": Invoice.status,
}
DERIVED_SORT_KEYS = frozenset({"remaining_balance"})

SortDir = Literal["asc", "desc"]


@dataclass
class InvoiceFilters:
    search: Optional[str] = None
    status: Optional[str] = None
    vendor_id: Optional[int] = None
    category_id: Optional[int] = None
    invoice_profile_id: Optional[int] = None
    payment_type_id: Optional[int] = None
    is_recurring: Optional[bool] = None
    tds_applicable: Optional[bool] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    show_archived: bool = False


def _apply_filters(query, filters: InvoiceFilters, today: date):
    if not filters.show_archived:
        query = query.where(Invoice.is_archived.is_(False))

    if filters.status:
        if filters.status == OVERDUE_FILTER:
            query = query.where(
                Invoice.status.in_([InvoiceStatus.UNPAID, InvoiceStatus.PARTIAL]),
                Invoice.due_date.is_not(None),
                Invoice.due_date < today,
            )
        else:
            try:
                status = InvoiceStatus(filters.status)
            except ValueError as exc:
                raise ValidationError(f"Unknown status filter: {filters.status}") from exc
            query = query.where(Invoice.status == status)

    if filters.search and filters.search.strip():
        term = f"%{filters.search.strip().lower()}%"
        query = query.where(
            or_(
                func.lower(Invoice.invoice_number).like(term),
                func.lower(Invoice.invoice_name).like(term),
                func.lower(Vendor.name).like(term),
                func.lower(InvoiceProfile.name).like(term),
            )
        )
    if filters.vendor_id:
        query = query.where(Invoice.vendor_id == filters.vendor_id)
    if filters.category_id:
        query = query.where(Invoice.category_id == filters.category_id)
    if filters.invoice_profile_id:
        query = query.where(Invoice.invoice_profile_id == filters.invoice_profile_id)
    if filters.payment_type_id:
        query = query.where(
            exists().where(
                Payment.invoice_id == Invoice.id,
                Payment.payment_type_id == filters.payment_type_id,
                Payment.status == PaymentStatus.APPROVED,
            )
        )
    if filters.is_recurring is not None:
        query = query.where(Invoice.is_recurring.is_(filters.is_recurring))
    if filters.tds_applicable is not None:
        query = query.where(Invoice.tds_applicable.is_(filters.tds_applicable))
    if filters.start_date:
        query = query.where(Invoice.invoice_date >= filters.start_date)
    if filters.end_date:
        query = query.where(Invoice.invoice_date <= filters.end_date)
    return query


def _enrich(db: Session, invoices: list[Invoice], today: date) -> list[tuple[InvoiceWorklistRow, tuple]]:
    """Return each worklist row paired with its priority sort key."""
    ids = [invoice.id for invoice in invoices]
    totals = approved_totals(db, ids)
    pending = invoices_with_pending_payment(db, ids)
    enriched: list[tuple[InvoiceWorklistRow, tuple]] = []
    for invoice in invoices:
        total_paid = totals[invoice.id]
        remaining = remaining_balance(invoice.amount, total_paid)
        status = effective_status(invoice.status, invoice.amount, total_paid)
        due_state = classify_due_state(status, invoice.due_date, remaining, today)
        rank = priority_rank(status, due_state)
        row = InvoiceWorklistRow(
            **InvoiceRead.model_validate(invoice).model_dump(),
            vendor_name=invoice.vendor.name if invoice.vendor else None,
            effective_status=status,
            total_paid=total_paid,
            remaining_balance=remaining,
            has_pending_payment=invoice.id in pending,
            due_state=DueStateRead.model_validate(due_state) if due_state else None,
            priority_rank=rank,
        )
        enriched.append((row, priority_sort_key(rank, due_state, invoice.created_at)))
    return enriched


def _clamp_page(page: int, per_page: Optional[int]) -> tuple[int, int]:
    size = per_page or settings.default_page_size
    size = max(1, min(size, settings.max_page_size))
    return max(1, page), size


@core_action
def list_invoices(
    db: Session,
    *,
    actor: Actor,
    filters: Optional[InvoiceFilters] = None,
    sort_by: Optional[str] = None,
    sort_dir: SortDir = "asc",
    page: int = 1,
    per_page: Optional[int] = None,
    today: Optional[date] = None,
) -> InvoiceListResponse:
    filters = filters or InvoiceFilters()
    today = today or datetime.now(timezone.utc).date()
    page, per_page = _clamp_page(page, per_page)
    if sort_by and sort_by not in SORT_COLUMNS and sort_by not in DERIVED_SORT_KEYS:
        raise ValidationError(f"Unsupported sort key: {sort_by}")

    query = (
        select(Invoice)
        .join(Vendor, Invoice.vendor_id == Vendor.id)
        .outerjoin(InvoiceProfile, Invoice.invoice_profile_id == InvoiceProfile.id)
        .options(selectinload(Invoice.vendor))
    )
    query = _apply_filters(query, filters, today)
    total = int(db.scalar(select(func.count()).select_from(query.order_by(None).subquery())) or 0)
    total_pages = math.ceil(total / per_page) if total else 0
    offset = (page - 1) * per_page

    if sort_by in SORT_COLUMNS:
        column = SORT_COLUMNS[sort_by]
        ordering = column.desc() if sort_dir == "desc" else column.asc()
        invoices = list(
            db.scalars(query.order_by(ordering, Invoice.id.asc()).offset(offset).limit(per_page)).all()
        )
        items = [row for row, _ in _enrich(db, invoices, today)]
    else:
        enriched = _enrich(db, list(db.scalars(query).all()), today)
        if sort_by == "remaining_balance":
            enriched.sort(key=lambda pair: (pair[0].remaining_balance, pair[0].id), reverse=sort_dir == "desc")
        else:
            enriched.sort(key=lambda pair: pair[1])
        items = [row for row, _ in enriched[offset : offset + per_page]]

    return InvoiceListResponse(
        items=items,
        total=total,
        page=page,
        per_page=per_page,
        total_pages=total_pages,
    )
