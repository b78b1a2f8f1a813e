"""Vendor-gated invoice approval and the vendor rejection cascade.

Both are ordered transaction scripts: every row they touch changes inside one
transaction, and notifications are only queued for after the commit.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from payables.core.errors import StateConflictError
from payables.core.rbac import Actor, require_admin
from payables.core.results import core_action
from payables.db.base import utcnow
from payables.models.enums import InvoiceStatus, NotificationType, VendorStatus
from payables.models.invoice import Invoice
from payables.models.vendor import Vendor
from payables.schemas.invoice import VendorGateRead
from payables.schemas.vendor import JointApprovalRead, VendorRead, VendorRejectionRead
from payables.services.activity import log_activity
from payables.services.invoices import get_invoice_or_error
from payables.services.notifications import notify_user_after_commit
from payables.services.reasons import require_reason
from payables.services.transitions import guarded_update
from payables.services.vendors import get_vendor_or_error


@core_action
def check_vendor_gate(db: Session, *, invoice_id: int, actor: Actor) -> VendorGateRead:
    invoice = get_invoice_or_error(db, invoice_id)
    vendor = invoice.vendor
    return VendorGateRead(
        has_pending_vendor=vendor.status == VendorStatus.PENDING_APPROVAL,
        vendor_id=vendor.id,
        vendor_name=vendor.name,
        vendor_status=vendor.status.value,
    )


@core_action
def approve_invoice_and_vendor(db: Session, *, invoice_id: int, actor: Actor) -> JointApprovalRead:
    require_admin(actor)
    invoice = get_invoice_or_error(db, invoice_id, lock=True)
    vendor = invoice.vendor
    if invoice.is_archived:
        raise StateConflictError("Cannot approve archived invoice", code="ARCHIVED")
    if invoice.status != InvoiceStatus.PENDING_APPROVAL:
        raise StateConflictError("Invoice is not pending approval", code="NOT_PENDING")
    if vendor.status != VendorStatus.PENDING_APPROVAL:
        raise StateConflictError("Vendor is not pending approval", code="VENDOR_NOT_PENDING")

    now = utcnow()
    # Each write re-checks its precondition; either miss rolls back both.
    if not guarded_update(
        db,
        Vendor,
        vendor.id,
        Vendor.status == VendorStatus.PENDING_APPROVAL,
        status=VendorStatus.APPROVED,
        approved_by_user_id=actor.id,
        approved_at=now,
        updated_at=now,
    ):
        raise StateConflictError("Vendor is not pending approval", code="VENDOR_NOT_PENDING")
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
    db.refresh(vendor)
    db.refresh(invoice)

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="INVOICE_APPROVED",
        invoice_id=invoice.id,
        message=f"Invoice {invoice.invoice_number} approved with vendor {vendor.name}",
        payload={"vendor_id": vendor.id, "vendor_status": vendor.status.value, "joint": True},
    )
    notify_user_after_commit(
        db,
        user_id=invoice.created_by_user_id,
        notif_type=NotificationType.INVOICE_APPROVED,
        message=f"Invoice {invoice.invoice_number} and vendor {vendor.name} were approved",
        payload={"invoice_id": invoice.id, "vendor_id": vendor.id},
    )
    return JointApprovalRead(
        vendor_id=vendor.id,
        vendor_status=vendor.status,
        invoice_id=invoice.id,
        invoice_status=invoice.status.value,
    )


@core_action
def reject_vendor(db: Session, *, vendor_id: int, reason: Optional[str], actor: Actor) -> VendorRejectionRead:
    require_admin(actor)
    reason = require_reason(reason, label="Rejection reason")
    vendor = get_vendor_or_error(db, vendor_id)
    if vendor.status != VendorStatus.PENDING_APPROVAL:
        raise StateConflictError("Vendor is not pending approval", code="VENDOR_NOT_PENDING")

    now = utcnow()
    if not guarded_update(
        db,
        Vendor,
        vendor.id,
        Vendor.status == VendorStatus.PENDING_APPROVAL,
        status=VendorStatus.REJECTED,
        rejected_by_user_id=actor.id,
        rejected_at=now,
        rejection_reason=reason,
        updated_at=now,
    ):
        raise StateConflictError("Vendor is not pending approval", code="VENDOR_NOT_PENDING")
    db.refresh(vendor)

    pending_filter = (
        Invoice.vendor_id == vendor.id,
        Invoice.status == InvoiceStatus.PENDING_APPROVAL,
        Invoice.is_archived.is_(False),
    )
    affected = db.execute(
        select(Invoice.id, Invoice.invoice_number, Invoice.created_by_user_id)
        .where(*pending_filter)
        .with_for_update()
    ).all()
    cascade_reason = f"Vendor {vendor.name} was rejected: {reason}"
    if affected:
        db.execute(
            update(Invoice)
            .where(Invoice.id.in_([row.id for row in affected]), *pending_filter)
            .values(
                status=InvoiceStatus.REJECTED,
                rejection_reason=cascade_reason,
                rejected_by_user_id=actor.id,
                rejected_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
    # Drop stale copies of the cascaded rows from the identity map.
    db.expire_all()

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="VENDOR_REJECTED",
        message=f"Vendor {vendor.name} rejected",
        payload={"vendor_id": vendor.id, "reason": reason, "rejected_invoice_ids": [row.id for row in affected]},
    )
    invoices_by_creator: dict[int, list] = defaultdict(list)
    for row in affected:
        log_activity(
            db,
            actor_user_id=actor.id,
            activity_type="INVOICE_REJECTED",
            invoice_id=row.id,
            message=f"Invoice {row.invoice_number} rejected with its vendor",
            payload={"reason": cascade_reason, "vendor_id": vendor.id},
        )
        if row.created_by_user_id is not None:
            invoices_by_creator[row.created_by_user_id].append(row)

    if vendor.created_by_user_id is not None and vendor.created_by_user_id != actor.id:
        notify_user_after_commit(
            db,
            user_id=vendor.created_by_user_id,
            notif_type=NotificationType.VENDOR_REJECTED,
            message=f"Vendor {vendor.name} was rejected: {reason}",
            payload={"vendor_id": vendor.id},
        )
    for creator_id, rows in invoices_by_creator.items():
        if creator_id == actor.id:
            continue
        numbers = ", ".join(row.invoice_number for row in rows)
        notify_user_after_commit(
            db,
            user_id=creator_id,
            notif_type=NotificationType.INVOICE_REJECTED,
            message=f"Invoice(s) {numbers} rejected because vendor {vendor.name} was rejected",
            payload={"vendor_id": vendor.id, "invoice_ids": [row.id for row in rows]},
        )

    return VendorRejectionRead(
        vendor=VendorRead.model_validate(vendor),
        rejected_invoice_ids=[row.id for row in affected],
    )
