from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from payables.core.errors import NotFoundError, StateConflictError
from payables.core.rbac import Actor
from payables.db.base import utcnow
from payables.models.invoice import Invoice
from payables.models.user import User
from payables.services.activity import log_activity
from payables.services.attachments import (
    ARCHIVED_FOLDER,
    DELETED_FOLDER,
    RelocationPlan,
    plan_relocation,
    relocate_after_commit,
)
from payables.services.transitions import guarded_update


DEFAULT_ARCHIVE_REASON = "Archived by admin"


def get_invoice_for_update(db: Session, invoice_id: int) -> Invoice:
    invoice = db.scalars(
        select(Invoice)
        .options(
            selectinload(Invoice.attachments),
            selectinload(Invoice.vendor),
            selectinload(Invoice.category),
            selectinload(Invoice.invoice_profile),
        )
        .where(Invoice.id == invoice_id)
        .with_for_update()
    ).first()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def invoice_snapshot(invoice: Invoice) -> dict:
    return {
        "invoice_id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "vendor": invoice.vendor.name if invoice.vendor else "N/A",
        "category": invoice.category.name if invoice.category else "N/A",
        "invoice_profile": invoice.invoice_profile.name if invoice.invoice_profile else "N/A",
        "amount": str(invoice.amount),
        "status": invoice.status.value,
        "invoice_date": invoice.invoice_date.isoformat() if invoice.invoice_date else "N/A",
        "due_date": invoice.due_date.isoformat() if invoice.due_date else "N/A",
    }


def _relocation_plan(db: Session, invoice: Invoice, *, action: str, folder: str, reason: Optional[str], actor: Actor) -> RelocationPlan:
    performer = db.get(User, actor.id)
    now = utcnow()
    return RelocationPlan(
        action=action,
        invoice_number=invoice.invoice_number,
        reason=reason,
        performed_by_name=performer.display_name if performer else f"user:{actor.id}",
        performed_by_email=performer.email if performer else "",
        invoice_data=invoice_snapshot(invoice),
        moves=plan_relocation(list(invoice.attachments), folder=folder, on=now.date()),
        update_rows=folder == ARCHIVED_FOLDER,
    )


def archive_invoice_record(db: Session, *, invoice: Invoice, reason: Optional[str], actor: Actor) -> Invoice:
    """Flag the invoice archived and queue attachment relocation for after commit."""
    if invoice.is_archived:
        raise StateConflictError("Invoice is already archived", code="ALREADY_ARCHIVED")
    reason = (reason or "").strip() or DEFAULT_ARCHIVE_REASON
    now = utcnow()
    if not guarded_update(
        db,
        Invoice,
        invoice.id,
        Invoice.is_archived.is_(False),
        is_archived=True,
        archived_by_user_id=actor.id,
        archived_at=now,
        archived_reason=reason,
        updated_at=now,
    ):
        raise StateConflictError("Invoice is already archived", code="ALREADY_ARCHIVED")
    db.refresh(invoice)

    plan = _relocation_plan(db, invoice, action="archived", folder=ARCHIVED_FOLDER, reason=reason, actor=actor)
    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="INVOICE_ARCHIVED",
        invoice_id=invoice.id,
        message=f"Invoice {invoice.invoice_number} archived",
        payload={"reason": reason, "files_scheduled": len(plan.moves)},
    )
    relocate_after_commit(db, plan)
    return invoice


def delete_invoice_record(db: Session, *, invoice: Invoice, reason: Optional[str], actor: Actor) -> dict:
    """Remove the invoice and its payments, attachments and comments in the current transaction.

    The tombstone activity row is written first and keeps the invoice snapshot.
    """
    plan = _relocation_plan(db, invoice, action="deleted", folder=DELETED_FOLDER, reason=reason, actor=actor)
    snapshot = plan.invoice_data
    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="INVOICE_DELETED",
        invoice_id=invoice.id,
        message=f"Invoice {invoice.invoice_number} permanently deleted",
        payload={"reason": reason, "invoice": snapshot, "files_scheduled": len(plan.moves)},
    )
    db.delete(invoice)
    db.flush()
    relocate_after_commit(db, plan)
    return snapshot
