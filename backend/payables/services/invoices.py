"""Invoice lifecycle: submit, edit, hold/release, approve/reject, archive, hard delete."""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from payables.core.errors import NotFoundError, StateConflictError, ValidationError
from payables.core.rbac import Actor, require_admin, require_super_admin
from payables.core.results import core_action
from payables.db.base import utcnow
from payables.models.enums import InvoiceStatus, NotificationType, VendorStatus
from payables.models.invoice import Invoice, InvoiceAttachment, InvoiceComment
from payables.models.master import Category, Currency, InvoiceProfile
from payables.models.vendor import Vendor
from payables.schemas.invoice import DueStateRead, InvoiceCreate, InvoiceDetail, InvoiceRead, InvoiceUpdate
from payables.schemas.master_data_request import InvoiceArchiveRequestData
from payables.services import archival
from payables.services.activity import log_activity
from payables.services.due_state import classify_due_state
from payables.services.master_data_requests import create_request_record
from payables.services.notifications import notify_admins_after_commit, notify_user_after_commit
from payables.services.payments import effective_status, summarize_payments, sync_invoice_status
from payables.services.reasons import require_reason
from payables.services.transitions import guarded_update


DEFAULT_ARCHIVE_REQUEST_REASON = "User requested archive"
HOLDABLE_STATUSES = frozenset({InvoiceStatus.UNPAID, InvoiceStatus.PARTIAL})


def get_invoice_or_error(db: Session, invoice_id: int, *, lock: bool = False) -> Invoice:
    query = (
        select(Invoice)
        .options(selectinload(Invoice.vendor), selectinload(Invoice.currency))
        .where(Invoice.id == invoice_id)
    )
    if lock:
        query = query.with_for_update()
    invoice = db.scalars(query).first()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def _ensure_unique_number(db: Session, invoice_number: str, vendor_id: int, *, exclude_id: Optional[int] = None) -> None:
    query = select(Invoice.id).where(Invoice.invoice_number == invoice_number, Invoice.vendor_id == vendor_id)
    if exclude_id is not None:
        query = query.where(Invoice.id != exclude_id)
    if db.scalar(query.limit(1)) is not None:
        raise ValidationError(
            f'Invoice number "{invoice_number}" already exists for this vendor',
            code="DUPLICATE_INVOICE_NUMBER",
        )


def _validate_vendor(db: Session, vendor_id: int) -> Vendor:
    vendor = db.get(Vendor, vendor_id)
    if not vendor or vendor.deleted_at is not None:
        raise ValidationError("Vendor not found")
    if not vendor.is_active:
        raise ValidationError("Vendor is not active")
    if vendor.status == VendorStatus.REJECTED:
        raise ValidationError("Vendor has been rejected")
    return vendor


def _validate_references(db: Session, fields: dict) -> None:
    if fields.get("category_id") is not None:
        category = db.get(Category, fields["category_id"])
        if not category:
            raise ValidationError("Category not found")
        if not category.is_active:
            raise ValidationError("Category is not active")
    if fields.get("invoice_profile_id") is not None:
        if not db.get(InvoiceProfile, fields["invoice_profile_id"]):
            raise ValidationError("Invoice profile not found")
    if fields.get("currency_id") is not None:
        currency = db.get(Currency, fields["currency_id"])
        if not currency:
            raise ValidationError("Currency not found")
        if not currency.is_active:
            raise ValidationError("Currency is not active")


def _validate_tds(tds_applicable: bool, tds_percentage: Optional[Decimal]) -> None:
    if tds_applicable and tds_percentage is None:
        raise ValidationError("TDS percentage is required when TDS is applicable")


def _today() -> date:
    return datetime.now(timezone.utc).date()


@core_action
def submit_invoice(db: Session, *, data: InvoiceCreate, actor: Actor) -> Invoice:
    invoice_number = data.invoice_number.strip()
    _validate_tds(data.tds_applicable, data.tds_percentage)
    vendor = _validate_vendor(db, data.vendor_id)
    fields = data.model_dump()
    _validate_references(db, fields)
    _ensure_unique_number(db, invoice_number, vendor.id)

    # An unvetted vendor keeps even an admin's invoice in review until both are approved.
    direct = actor.is_privileged and vendor.status == VendorStatus.APPROVED
    now = utcnow()
    fields["invoice_number"] = invoice_number
    invoice = Invoice(
        **fields,
        status=InvoiceStatus.UNPAID if direct else InvoiceStatus.PENDING_APPROVAL,
        created_by_user_id=actor.id,
        approved_by_user_id=actor.id if direct else None,
        approved_at=now if direct else None,
    )
    db.add(invoice)
    db.flush()

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="INVOICE_CREATED",
        invoice_id=invoice.id,
        message=f"Invoice {invoice.invoice_number} created",
        payload={"status": invoice.status.value, "vendor_id": vendor.id, "amount": str(invoice.amount)},
    )
    if invoice.status == InvoiceStatus.PENDING_APPROVAL:
        notify_admins_after_commit(
            db,
            notif_type=NotificationType.INVOICE_PENDING_APPROVAL,
            message=f"Invoice {invoice.invoice_number} from {vendor.name} needs approval",
            payload={"invoice_id": invoice.id, "vendor_id": vendor.id},
            exclude_user_ids=[actor.id],
        )
    return invoice


@core_action
def edit_invoice(db: Session, *, invoice_id: int, data: InvoiceUpdate, actor: Actor) -> Invoice:
    invoice = get_invoice_or_error(db, invoice_id, lock=True)
    if invoice.is_archived:
        raise StateConflictError("Cannot update archived invoice", code="ARCHIVED")

    changes = data.model_dump(exclude_unset=True)
    if "invoice_number" in changes:
        changes["invoice_number"] = (changes["invoice_number"] or "").strip() or invoice.invoice_number
    for required in ("invoice_number", "vendor_id", "amount", "is_recurring", "tds_applicable", "tds_rounding"):
        if required in changes and changes[required] is None:
            changes.pop(required)

    new_vendor = None
    if "vendor_id" in changes and changes["vendor_id"] != invoice.vendor_id:
        new_vendor = _validate_vendor(db, changes["vendor_id"])
    _validate_references(db, changes)
    number = changes.get("invoice_number", invoice.invoice_number)
    vendor_id = changes.get("vendor_id", invoice.vendor_id)
    if number != invoice.invoice_number or vendor_id != invoice.vendor_id:
        _ensure_unique_number(db, number, vendor_id, exclude_id=invoice.id)
    _validate_tds(
        changes.get("tds_applicable", invoice.tds_applicable),
        changes.get("tds_percentage", invoice.tds_percentage),
    )

    changed = {key: value for key, value in changes.items() if getattr(invoice, key) != value}
    for key, value in changed.items():
        setattr(invoice, key, value)
    if new_vendor is not None:
        invoice.vendor = new_vendor

    previous_status = invoice.status
    # Moving to an unvetted vendor sends the invoice back through the vendor gate.
    unvetted = new_vendor is not None and new_vendor.status != VendorStatus.APPROVED
    requeued = invoice.status != InvoiceStatus.PENDING_APPROVAL and (not actor.is_privileged or unvetted)
    if requeued:
        invoice.status = InvoiceStatus.PENDING_APPROVAL
        invoice.approved_by_user_id = None
        invoice.approved_at = None
    db.add(invoice)
    db.flush()
    if actor.is_privileged and "amount" in changed:
        sync_invoice_status(db, invoice)

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="INVOICE_UPDATED",
        invoice_id=invoice.id,
        message=f"Invoice {invoice.invoice_number} updated",
        payload={
            "changed_fields": sorted(changed),
            "previous_status": previous_status.value,
            "status": invoice.status.value,
        },
    )
    if requeued:
        notify_admins_after_commit(
            db,
            notif_type=NotificationType.INVOICE_PENDING_APPROVAL,
            message=f"Invoice {invoice.invoice_number} was edited and needs approval again",
            payload={"invoice_id": invoice.id},
            exclude_user_ids=[actor.id],
        )
    return invoice


@core_action
def hold_invoice(db: Session, *, invoice_id: int, reason: Optional[str], actor: Actor) -> Invoice:
    reason = require_reason(reason, label="Hold reason")
    invoice = get_invoice_or_error(db, invoice_id, lock=True)
    if invoice.is_archived:
        raise StateConflictError("Cannot put archived invoice on hold", code="ARCHIVED")
    if invoice.status == InvoiceStatus.ON_HOLD:
        raise StateConflictError("Invoice is already on hold", code="ALREADY_ON_HOLD")
    if invoice.status not in HOLDABLE_STATUSES:
        raise StateConflictError(f"Cannot put a {invoice.status.value} invoice on hold", code="INVALID_STATUS")

    now = utcnow()
    if not guarded_update(
        db,
        Invoice,
        invoice.id,
        Invoice.status.in_(list(HOLDABLE_STATUSES)),
        Invoice.is_archived.is_(False),
        status=InvoiceStatus.ON_HOLD,
        hold_reason=reason,
        hold_by_user_id=actor.id,
        hold_at=now,
        updated_at=now,
    ):
        raise StateConflictError("Invoice is already on hold", code="ALREADY_ON_HOLD")
    db.refresh(invoice)

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="INVOICE_ON_HOLD",
        invoice_id=invoice.id,
        message=f"Invoice {invoice.invoice_number} put on hold",
        payload={"reason": reason},
    )
    notify_user_after_commit(
        db,
        user_id=invoice.created_by_user_id,
        notif_type=NotificationType.INVOICE_ON_HOLD,
        message=f"Invoice {invoice.invoice_number} was put on hold: {reason}",
        payload={"invoice_id": invoice.id},
    )
    return invoice


@core_action
def release_hold(db: Session, *, invoice_id: int, actor: Actor) -> Invoice:
    require_admin(actor)
    invoice = get_invoice_or_error(db, invoice_id, lock=True)
    if invoice.is_archived:
        raise StateConflictError("Cannot release hold on archived invoice", code="ARCHIVED")
    if invoice.status != InvoiceStatus.ON_HOLD:
        raise StateConflictError("Invoice is not on hold", code="NOT_ON_HOLD")
    now = utcnow()
    if not guarded_update(
        db,
        Invoice,
        invoice.id,
        Invoice.status == InvoiceStatus.ON_HOLD,
        status=InvoiceStatus.UNPAID,
        hold_reason=None,
        hold_by_user_id=None,
        hold_at=None,
        updated_at=now,
    ):
        raise StateConflictError("Invoice is not on hold", code="NOT_ON_HOLD")
    db.refresh(invoice)
    sync_invoice_status(db, invoice)

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="INVOICE_HOLD_RELEASED",
        invoice_id=invoice.id,
        message=f"Hold released on invoice {invoice.invoice_number}",
        payload={"status": invoice.status.value},
    )
    notify_user_after_commit(
        db,
        user_id=invoice.created_by_user_id,
        notif_type=NotificationType.INVOICE_HOLD_RELEASED,
        message=f"Invoice {invoice.invoice_number} is no longer on hold",
        payload={"invoice_id": invoice.id},
    )
    return invoice


@core_action
def approve_invoice(db: Session, *, invoice_id: int, actor: Actor) -> Invoice:
    require_admin(actor)
    invoice = get_invoice_or_error(db, invoice_id, lock=True)
    if invoice.is_archived:
        raise StateConflictError("Cannot approve archived invoice", code="ARCHIVED")
    if invoice.status != InvoiceStatus.PENDING_APPROVAL:
        raise StateConflictError("Invoice is not pending approval", code="NOT_PENDING")
    if invoice.vendor.status == VendorStatus.PENDING_APPROVAL:
        raise StateConflictError(
            "Vendor is pending approval; approve the invoice together with its vendor",
            code="VENDOR_PENDING",
        )
    if invoice.vendor.status == VendorStatus.REJECTED:
        raise StateConflictError("Vendor has been rejected", code="VENDOR_REJECTED")

    now = utcnow()
    if not guarded_update(
        db,
        Invoice,
        invoice.id,
        Invoice.status == InvoiceStatus.PENDING_APPROVAL,
        Invoice.is_archived.is_(False),
        status=InvoiceStatus.UNPAID,
        approved_by_user_id=actor.id,
        approved_at=now,
        updated_at=now,
    ):
        raise StateConflictError("Invoice is not pending approval", code="NOT_PENDING")
    db.refresh(invoice)

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="INVOICE_APPROVED",
        invoice_id=invoice.id,
        message=f"Invoice {invoice.invoice_number} approved",
    )
    notify_user_after_commit(
        db,
        user_id=invoice.created_by_user_id,
        notif_type=NotificationType.INVOICE_APPROVED,
        message=f"Invoice {invoice.invoice_number} was approved",
        payload={"invoice_id": invoice.id},
    )
    return invoice


@core_action
def reject_invoice(db: Session, *, invoice_id: int, reason: Optional[str], actor: Actor) -> Invoice:
    require_admin(actor)
    reason = require_reason(reason, label="Rejection reason")
    invoice = get_invoice_or_error(db, invoice_id, lock=True)
    if invoice.is_archived:
        raise StateConflictError("Cannot reject archived invoice", code="ARCHIVED")
    if invoice.status != InvoiceStatus.PENDING_APPROVAL:
        raise StateConflictError("Invoice is not pending approval", code="NOT_PENDING")

    now = utcnow()
    if not guarded_update(
        db,
        Invoice,
        invoice.id,
        Invoice.status == InvoiceStatus.PENDING_APPROVAL,
        Invoice.is_archived.is_(False),
        status=InvoiceStatus.REJECTED,
        rejection_reason=reason,
        rejected_by_user_id=actor.id,
        rejected_at=now,
        updated_at=now,
    ):
        raise StateConflictError("Invoice is not pending approval", code="NOT_PENDING")
    db.refresh(invoice)

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="INVOICE_REJECTED",
        invoice_id=invoice.id,
        message=f"Invoice {invoice.invoice_number} rejected",
        payload={"reason": reason},
    )
    notify_user_after_commit(
        db,
        user_id=invoice.created_by_user_id,
        notif_type=NotificationType.INVOICE_REJECTED,
        message=f"Invoice {invoice.invoice_number} was rejected: {reason}",
        payload={"invoice_id": invoice.id},
    )
    return invoice


@core_action
def request_archive(db: Session, *, invoice_id: int, reason: Optional[str], actor: Actor) -> dict:
    """Admins archive immediately; everyone else files an archive request for review."""
    invoice = archival.get_invoice_for_update(db, invoice_id)
    if invoice.is_archived:
        raise StateConflictError("Invoice is already archived", code="ALREADY_ARCHIVED")
    if actor.is_privileged:
        archival.archive_invoice_record(db, invoice=invoice, reason=reason, actor=actor)
        return {"archived": True, "invoice_id": invoice.id, "request_id": None}

    request = create_request_record(
        db,
        payload=InvoiceArchiveRequestData(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            reason=(reason or "").strip() or DEFAULT_ARCHIVE_REQUEST_REASON,
        ),
        requester=actor,
    )
    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="INVOICE_ARCHIVE_REQUESTED",
        invoice_id=invoice.id,
        message=f"Archive requested for invoice {invoice.invoice_number}",
        payload={"request_id": request.id},
    )
    return {"archived": False, "invoice_id": invoice.id, "request_id": request.id}


@core_action
def archive_invoice(db: Session, *, invoice_id: int, reason: Optional[str], actor: Actor) -> Invoice:
    require_admin(actor)
    invoice = archival.get_invoice_for_update(db, invoice_id)
    return archival.archive_invoice_record(db, invoice=invoice, reason=reason, actor=actor)


@core_action
def permanently_delete_invoice(db: Session, *, invoice_id: int, reason: Optional[str], actor: Actor) -> dict:
    require_super_admin(actor)
    invoice = archival.get_invoice_for_update(db, invoice_id)
    return archival.delete_invoice_record(db, invoice=invoice, reason=(reason or "").strip() or None, actor=actor)


@core_action
def register_attachment(
    db: Session,
    *,
    invoice_id: int,
    original_name: str,
    storage_path: str,
    size_bytes: int,
    actor: Actor,
    mime_type: Optional[str] = None,
) -> InvoiceAttachment:
    """Record an already-stored file against an invoice; archived invoices take no new files."""
    invoice = get_invoice_or_error(db, invoice_id)
    if invoice.is_archived:
        raise StateConflictError("Cannot add attachments to archived invoice", code="ARCHIVED")
    if not storage_path.strip():
        raise ValidationError("Storage path is required")
    attachment = InvoiceAttachment(
        invoice_id=invoice.id,
        uploaded_by_user_id=actor.id,
        original_name=original_name,
        storage_path=storage_path.strip(),
        size_bytes=size_bytes,
        mime_type=mime_type,
    )
    db.add(attachment)
    db.flush()
    return attachment


@core_action
def add_comment(db: Session, *, invoice_id: int, body: str, actor: Actor) -> InvoiceComment:
    invoice = get_invoice_or_error(db, invoice_id)
    text = (body or "").strip()
    if not text:
        raise ValidationError("Comment cannot be empty")
    comment = InvoiceComment(invoice_id=invoice.id, author_user_id=actor.id, body=text)
    db.add(comment)
    db.flush()
    return comment


@core_action
def get_invoice_detail(db: Session, *, invoice_id: int, actor: Actor, today: Optional[date] = None) -> InvoiceDetail:
    invoice = get_invoice_or_error(db, invoice_id)
    summary = summarize_payments(db, invoice)
    status = effective_status(invoice.status, invoice.amount, summary.total_paid)
    due_state = classify_due_state(status, invoice.due_date, summary.remaining_balance, today or _today())
    return InvoiceDetail(
        invoice=InvoiceRead.model_validate(invoice),
        payment_summary=summary,
        effective_status=status,
        due_state=DueStateRead.model_validate(due_state) if due_state else None,
    )
