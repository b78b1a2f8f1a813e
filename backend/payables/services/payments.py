from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from payables.core.errors import NotFoundError, StateConflictError, ValidationError
from payables.core.rbac import Actor, require_admin
from payables.core.results import core_action
from payables.db.base import utcnow
from payables.models.enums import InvoiceStatus, NotificationType, PaymentStatus, VendorStatus
from payables.models.invoice import Invoice
from payables.models.master import PaymentType
from payables.models.payment import Payment
from payables.models.vendor import Vendor
from payables.schemas.payment import PaymentCreate, PaymentSummaryRead
from payables.services.activity import log_activity
from payables.services.notifications import notify_admins_after_commit, notify_user_after_commit
from payables.services.tds import tds_for_invoice
from payables.services.transitions import guarded_update


TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")

# Persisted statuses that payment totals are allowed to move between.
SETTLEMENT_STATUSES = frozenset({InvoiceStatus.UNPAID, InvoiceStatus.PARTIAL, InvoiceStatus.PAID})

_BLOCKED_PAYMENT_STATUSES = {
    InvoiceStatus.PENDING_APPROVAL: "Cannot add payment to an invoice pending approval",
    InvoiceStatus.REJECTED: "Cannot add payment to a rejected invoice",
    InvoiceStatus.ON_HOLD: "Cannot add payment to an invoice on hold",
}


def _q(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _decimal(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value))


def approved_total(db: Session, invoice_id: int) -> Decimal:
    total = db.scalar(
        select(func.coalesce(func.sum(Payment.amount_paid), 0)).where(
            Payment.invoice_id == invoice_id,
            Payment.status == PaymentStatus.APPROVED,
        )
    )
    return _decimal(total)


def approved_totals(db: Session, invoice_ids: Iterable[int]) -> dict[int, Decimal]:
    ids = list(invoice_ids)
    if not ids:
        return {}
    rows = db.execute(
        select(Payment.invoice_id, func.sum(Payment.amount_paid))
        .where(Payment.invoice_id.in_(ids), Payment.status == PaymentStatus.APPROVED)
        .group_by(Payment.invoice_id)
    ).all()
    totals = {invoice_id: ZERO for invoice_id in ids}
    for invoice_id, total in rows:
        totals[invoice_id] = _decimal(total)
    return totals


def invoices_with_pending_payment(db: Session, invoice_ids: Iterable[int]) -> set[int]:
    ids = list(invoice_ids)
    if not ids:
        return set()
    return set(
        db.scalars(
            select(Payment.invoice_id)
            .where(Payment.invoice_id.in_(ids), Payment.status == PaymentStatus.PENDING)
            .distinct()
        ).all()
    )


def remaining_balance(amount: Decimal, total_paid: Decimal) -> Decimal:
    return max(ZERO, _q(_decimal(amount) - _decimal(total_paid)))


def effective_status(status: InvoiceStatus, amount: Decimal, total_paid: Decimal) -> InvoiceStatus:
    """Read-time status: payment totals only speak for unpaid/partial/paid invoices."""
    if status not in SETTLEMENT_STATUSES:
        return status
    if total_paid > ZERO and remaining_balance(amount, total_paid) == ZERO:
        return InvoiceStatus.PAID
    if ZERO < total_paid < _decimal(amount):
        return InvoiceStatus.PARTIAL
    return status


def build_payment_summary(
    invoice: Invoice,
    *,
    total_paid: Decimal,
    payment_count: int,
    has_pending_payment: bool,
) -> PaymentSummaryRead:
    remaining = remaining_balance(invoice.amount, total_paid)
    return PaymentSummaryRead(
        invoice_id=invoice.id,
        invoice_amount=_decimal(invoice.amount),
        total_paid=_q(total_paid),
        remaining_balance=remaining,
        payment_count=payment_count,
        is_fully_paid=total_paid > ZERO and remaining == ZERO,
        is_partially_paid=ZERO < total_paid < _decimal(invoice.amount),
        has_pending_payment=has_pending_payment,
    )


def summarize_payments(db: Session, invoice: Invoice) -> PaymentSummaryRead:
    payment_count = db.scalar(
        select(func.count(Payment.id)).where(
            Payment.invoice_id == invoice.id,
            Payment.status == PaymentStatus.APPROVED,
        )
    )
    return build_payment_summary(
        invoice,
        total_paid=approved_total(db, invoice.id),
        payment_count=int(payment_count or 0),
        has_pending_payment=bool(invoices_with_pending_payment(db, [invoice.id])),
    )


def sync_invoice_status(db: Session, invoice: Invoice) -> InvoiceStatus:
    """Persist the settlement status implied by approved payments."""
    if invoice.status not in SETTLEMENT_STATUSES:
        return invoice.status
    db.flush()
    total = approved_total(db, invoice.id)
    if total <= ZERO:
        status = InvoiceStatus.UNPAID
    elif remaining_balance(invoice.amount, total) == ZERO:
        status = InvoiceStatus.PAID
    else:
        status = InvoiceStatus.PARTIAL
    if status != invoice.status:
        invoice.status = status
        db.add(invoice)
        db.flush()
    return status


def _get_invoice(db: Session, invoice_id: int, *, lock: bool = False) -> Invoice:
    query = select(Invoice).options(selectinload(Invoice.currency)).where(Invoice.id == invoice_id)
    if lock:
        query = query.with_for_update()
    invoice = db.scalars(query).first()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def _get_payment(db: Session, payment_id: int) -> Payment:
    payment = db.get(Payment, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


def _require_vetted_vendor(db: Session, invoice: Invoice) -> None:
    vendor = db.get(Vendor, invoice.vendor_id)
    if vendor is None or vendor.status != VendorStatus.APPROVED:
        raise StateConflictError("Cannot pay an invoice whose vendor is not approved", code="VENDOR_NOT_APPROVED")


def _validate_payment_type(db: Session, data: PaymentCreate) -> None:
    if data.payment_type_id is None:
        return
    payment_type = db.get(PaymentType, data.payment_type_id)
    if not payment_type:
        raise ValidationError("Payment type not found")
    if not payment_type.is_active:
        raise ValidationError("Payment type is not active")
    if payment_type.requires_reference and not (data.payment_reference or "").strip():
        raise ValidationError(f"Payment reference is required for {payment_type.name}")


@core_action
def get_payment_summary(db: Session, *, invoice_id: int, actor: Actor) -> PaymentSummaryRead:
    return summarize_payments(db, _get_invoice(db, invoice_id))


@core_action
def create_payment(db: Session, *, invoice_id: int, data: PaymentCreate, actor: Actor) -> Payment:
    invoice = _get_invoice(db, invoice_id, lock=True)
    if invoice.is_archived:
        raise StateConflictError("Cannot add payment to an archived invoice", code="ARCHIVED")
    blocked = _BLOCKED_PAYMENT_STATUSES.get(invoice.status)
    if blocked:
        raise StateConflictError(blocked, code="INVOICE_NOT_PAYABLE")
    _require_vetted_vendor(db, invoice)
    if invoices_with_pending_payment(db, [invoice.id]):
        raise StateConflictError("A payment for this invoice is already pending approval", code="PAYMENT_PENDING")
    _validate_payment_type(db, data)

    remaining = remaining_balance(invoice.amount, approved_total(db, invoice.id))
    if _decimal(data.amount_paid) > remaining:
        raise ValidationError(f"Payment amount exceeds remaining balance of {remaining}")

    withholding = tds_for_invoice(invoice, _decimal(data.amount_paid))
    now = utcnow()
    payment = Payment(
        invoice_id=invoice.id,
        payment_type_id=data.payment_type_id,
        amount_paid=_decimal(data.amount_paid),
        payment_date=data.payment_date,
        payment_reference=(data.payment_reference or "").strip() or None,
        notes=data.notes,
        tds_amount_applied=withholding.withheld,
        tds_rounding=invoice.tds_rounding,
        created_by_user_id=actor.id,
        status=PaymentStatus.APPROVED if actor.is_privileged else PaymentStatus.PENDING,
        reviewed_by_user_id=actor.id if actor.is_privileged else None,
        reviewed_at=now if actor.is_privileged else None,
    )
    db.add(payment)
    db.flush()

    if payment.status == PaymentStatus.APPROVED:
        sync_invoice_status(db, invoice)
    else:
        notify_admins_after_commit(
            db,
            notif_type=NotificationType.PAYMENT_PENDING_APPROVAL,
            message=f"Payment of {payment.amount_paid} on invoice {invoice.invoice_number} needs approval",
            payload={"invoice_id": invoice.id, "payment_id": payment.id},
            exclude_user_ids=[actor.id],
        )

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="PAYMENT_CREATED",
        invoice_id=invoice.id,
        message=f"Payment recorded on invoice {invoice.invoice_number}",
        payload={
            "payment_id": payment.id,
            "amount_paid": str(payment.amount_paid),
            "tds_amount_applied": str(payment.tds_amount_applied),
            "status": payment.status.value,
        },
    )
    return payment


def _review_payment(db: Session, *, payment_id: int, actor: Actor, approve: bool, reason: Optional[str]) -> Payment:
    require_admin(actor)
    payment = _get_payment(db, payment_id)
    verb = "approved" if approve else "rejected"
    if payment.status != PaymentStatus.PENDING:
        raise StateConflictError(
            f"Payment cannot be {verb}. Current status: {payment.status.value}",
            code="PAYMENT_NOT_PENDING",
        )
    invoice = _get_invoice(db, payment.invoice_id, lock=True)
    if approve:
        _require_vetted_vendor(db, invoice)
        remaining = remaining_balance(invoice.amount, approved_total(db, invoice.id))
        if _decimal(payment.amount_paid) > remaining:
            raise ValidationError(f"Payment amount exceeds remaining balance of {remaining}")

    now = utcnow()
    values = {
        "status": PaymentStatus.APPROVED if approve else PaymentStatus.REJECTED,
        "reviewed_by_user_id": actor.id,
        "reviewed_at": now,
        "updated_at": now,
    }
    if not approve:
        values["rejection_reason"] = reason
    if not guarded_update(db, Payment, payment.id, Payment.status == PaymentStatus.PENDING, **values):
        raise StateConflictError(f"Payment cannot be {verb}. It was reviewed concurrently", code="PAYMENT_NOT_PENDING")
    db.refresh(payment)

    if approve:
        sync_invoice_status(db, invoice)

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="PAYMENT_APPROVED" if approve else "PAYMENT_REJECTED",
        invoice_id=invoice.id,
        message=f"Payment {verb} on invoice {invoice.invoice_number}",
        payload={"payment_id": payment.id, "reason": reason},
    )
    if payment.created_by_user_id and payment.created_by_user_id != actor.id:
        notify_user_after_commit(
            db,
            user_id=payment.created_by_user_id,
            notif_type=NotificationType.PAYMENT_APPROVED if approve else NotificationType.PAYMENT_REJECTED,
            message=f"Your payment on invoice {invoice.invoice_number} was {verb}",
            payload={"invoice_id": invoice.id, "payment_id": payment.id},
        )
    return payment


@core_action
def approve_payment(db: Session, *, payment_id: int, actor: Actor) -> Payment:
    return _review_payment(db, payment_id=payment_id, actor=actor, approve=True, reason=None)


@core_action
def reject_payment(db: Session, *, payment_id: int, reason: Optional[str], actor: Actor) -> Payment:
    return _review_payment(db, payment_id=payment_id, actor=actor, approve=False, reason=(reason or "").strip() or None)
