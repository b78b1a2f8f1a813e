from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select

from payables.core.errors import ErrorKind
from payables.models.audit import ActivityLog
from payables.models.enums import InvoiceStatus, NotificationType, VendorStatus
from payables.models.invoice import Invoice
from payables.models.notification import Notification
from payables.schemas.invoice import InvoiceCreate, InvoiceUpdate
from payables.schemas.payment import PaymentCreate
from payables.services import invoices, payments, vendor_approval

REASON = "Amount does not match the purchase order"


def _create_payload(vendor, **overrides) -> InvoiceCreate:
    data = {"invoice_number": "INV-100", "vendor_id": vendor.id, "amount": Decimal("1500.00")}
    data.update(overrides)
    return InvoiceCreate(**data)


def test_standard_user_submission_waits_for_approval(db, admin, user_actor, vendor):
    result = invoices.submit_invoice(db, data=_create_payload(vendor), actor=user_actor)

    assert result.success, result.error
    assert result.data.status == InvoiceStatus.PENDING_APPROVAL
    notes = db.scalars(select(Notification).where(Notification.user_id == admin.id)).all()
    assert [note.type for note in notes] == [NotificationType.INVOICE_PENDING_APPROVAL]


def test_admin_submission_with_approved_vendor_is_unpaid(db, admin_actor, vendor):
    result = invoices.submit_invoice(db, data=_create_payload(vendor), actor=admin_actor)

    assert result.success, result.error
    assert result.data.status == InvoiceStatus.UNPAID
    assert result.data.approved_by_user_id == admin_actor.id


def test_admin_submission_with_pending_vendor_stays_pending(db, admin_actor, make_vendor):
    pending_vendor = make_vendor("Newco", status=VendorStatus.PENDING_APPROVAL)
    result = invoices.submit_invoice(db, data=_create_payload(pending_vendor), actor=admin_actor)

    assert result.data.status == InvoiceStatus.PENDING_APPROVAL


def test_duplicate_number_for_same_vendor_is_rejected(db, user_actor, vendor, make_vendor):
    assert invoices.submit_invoice(db, data=_create_payload(vendor), actor=user_actor).success
    duplicate = invoices.submit_invoice(db, data=_create_payload(vendor), actor=user_actor)

    assert not duplicate.success
    assert duplicate.error_kind == ErrorKind.VALIDATION
    assert duplicate.error == 'Invoice number "INV-100" already exists for this vendor'

    other_vendor = make_vendor("Other Vendor")
    assert invoices.submit_invoice(db, data=_create_payload(other_vendor), actor=user_actor).success


def test_inactive_category_is_rejected(db, user_actor, vendor, category):
    category.is_active = False
    db.commit()
    result = invoices.submit_invoice(db, data=_create_payload(vendor, category_id=category.id), actor=user_actor)
    assert result.error == "Category is not active"


def test_approve_twice_fails_without_touching_audit_fields(db, admin_actor, super_actor, vendor, make_invoice):
    invoice = make_invoice(vendor, status=InvoiceStatus.PENDING_APPROVAL)

    first = invoices.approve_invoice(db, invoice_id=invoice.id, actor=admin_actor)
    assert first.success, first.error
    approved_at = first.data.approved_at

    second = invoices.approve_invoice(db, invoice_id=invoice.id, actor=super_actor)
    assert not second.success
    assert second.error_kind == ErrorKind.STATE_CONFLICT
    db.refresh(invoice)
    assert invoice.approved_by_user_id == admin_actor.id
    assert invoice.approved_at == approved_at


def test_approve_requires_admin(db, user_actor, vendor, make_invoice):
    invoice = make_invoice(vendor, status=InvoiceStatus.PENDING_APPROVAL)
    result = invoices.approve_invoice(db, invoice_id=invoice.id, actor=user_actor)
    assert result.error_kind == ErrorKind.AUTHORIZATION
    assert result.error == "Admin access required"


def test_approve_with_pending_vendor_is_blocked(db, admin_actor, make_vendor, make_invoice):
    invoice = make_invoice(make_vendor("Pending Co", status=VendorStatus.PENDING_APPROVAL), status=InvoiceStatus.PENDING_APPROVAL)
    result = invoices.approve_invoice(db, invoice_id=invoice.id, actor=admin_actor)
    assert result.code == "VENDOR_PENDING"


def test_reject_requires_reason_of_minimum_length(db, admin_actor, vendor, make_invoice):
    invoice = make_invoice(vendor, status=InvoiceStatus.PENDING_APPROVAL)

    short = invoices.reject_invoice(db, invoice_id=invoice.id, reason="no", actor=admin_actor)
    assert short.error_kind == ErrorKind.VALIDATION
    assert short.error == "Rejection reason must be at least 10 characters"

    ok = invoices.reject_invoice(db, invoice_id=invoice.id, reason=REASON, actor=admin_actor)
    assert ok.success
    assert ok.data.status == InvoiceStatus.REJECTED
    assert ok.data.rejection_reason == REASON


def test_hold_and_release(db, admin_actor, standard_user, vendor, make_invoice):
    invoice = make_invoice(vendor, created_by=standard_user)

    held = invoices.hold_invoice(db, invoice_id=invoice.id, reason="Waiting for GST credit note", actor=admin_actor)
    assert held.success, held.error
    assert held.data.status == InvoiceStatus.ON_HOLD

    again = invoices.hold_invoice(db, invoice_id=invoice.id, reason="Waiting for GST credit note", actor=admin_actor)
    assert again.error == "Invoice is already on hold"

    released = invoices.release_hold(db, invoice_id=invoice.id, actor=admin_actor)
    assert released.success
    assert released.data.status == InvoiceStatus.UNPAID
    assert released.data.hold_reason is None

    types = db.scalars(select(Notification.type).where(Notification.user_id == standard_user.id)).all()
    assert NotificationType.INVOICE_ON_HOLD in types
    assert NotificationType.INVOICE_HOLD_RELEASED in types


def test_hold_pending_invoice_is_a_conflict(db, admin_actor, vendor, make_invoice):
    invoice = make_invoice(vendor, status=InvoiceStatus.PENDING_APPROVAL)
    result = invoices.hold_invoice(db, invoice_id=invoice.id, reason="Waiting for GST credit note", actor=admin_actor)
    assert result.error_kind == ErrorKind.STATE_CONFLICT


def test_standard_user_edit_requeues_for_approval(db, admin_actor, user_actor, vendor, make_invoice):
    invoice = make_invoice(vendor, status=InvoiceStatus.UNPAID)
    result = invoices.edit_invoice(db, invoice_id=invoice.id, data=InvoiceUpdate(notes="Updated PO"), actor=user_actor)

    assert result.success, result.error
    assert result.data.status == InvoiceStatus.PENDING_APPROVAL
    assert result.data.approved_at is None


def test_admin_moving_invoice_to_unvetted_vendor_goes_back_through_the_gate(db, admin_actor, vendor, make_vendor, make_invoice):
    invoice = make_invoice(vendor, status=InvoiceStatus.UNPAID)
    newco = make_vendor("Newco", status=VendorStatus.PENDING_APPROVAL)

    edited = invoices.edit_invoice(db, invoice_id=invoice.id, data=InvoiceUpdate(vendor_id=newco.id), actor=admin_actor)
    assert edited.success, edited.error
    assert edited.data.status == InvoiceStatus.PENDING_APPROVAL
    assert edited.data.approved_by_user_id is None
    assert edited.data.approved_at is None

    paid = payments.create_payment(
        db,
        invoice_id=invoice.id,
        data=PaymentCreate(amount_paid=Decimal("1000.00"), payment_date=date.today()),
        actor=admin_actor,
    )
    assert paid.error_kind == ErrorKind.STATE_CONFLICT
    assert invoices.approve_invoice(db, invoice_id=invoice.id, actor=admin_actor).code == "VENDOR_PENDING"

    joint = vendor_approval.approve_invoice_and_vendor(db, invoice_id=invoice.id, actor=admin_actor)
    assert joint.success, joint.error
    assert joint.data.invoice_status == InvoiceStatus.UNPAID.value


def test_admin_edit_within_approved_vendors_keeps_status(db, admin_actor, vendor, make_vendor, make_invoice):
    invoice = make_invoice(vendor, status=InvoiceStatus.UNPAID)
    other = make_vendor("Other Vendor")

    edited = invoices.edit_invoice(db, invoice_id=invoice.id, data=InvoiceUpdate(vendor_id=other.id), actor=admin_actor)
    assert edited.success, edited.error
    assert edited.data.status == InvoiceStatus.UNPAID
    assert edited.data.vendor_id == other.id


def test_standard_user_can_put_invoice_on_hold(db, user_actor, admin, vendor, make_invoice):
    invoice = make_invoice(vendor, created_by=admin)

    held = invoices.hold_invoice(db, invoice_id=invoice.id, reason="Waiting for GST credit note", actor=user_actor)
    assert held.success, held.error
    assert held.data.status == InvoiceStatus.ON_HOLD
    assert held.data.hold_by_user_id == user_actor.id

    short = invoices.hold_invoice(db, invoice_id=make_invoice(vendor, invoice_number="INV-2").id, reason="wait", actor=user_actor)
    assert short.error_kind == ErrorKind.VALIDATION

    assert invoices.release_hold(db, invoice_id=invoice.id, actor=user_actor).error_kind == ErrorKind.AUTHORIZATION


def test_archive_then_edit_and_archive_again_fail(db, admin_actor, vendor, make_invoice):
    invoice = make_invoice(vendor)

    archived = invoices.archive_invoice(db, invoice_id=invoice.id, reason=None, actor=admin_actor)
    assert archived.success, archived.error
    assert archived.data.archived_reason == "Archived by admin"

    again = invoices.archive_invoice(db, invoice_id=invoice.id, reason=None, actor=admin_actor)
    assert again.error_kind == ErrorKind.STATE_CONFLICT
    assert again.error == "Invoice is already archived"

    edit = invoices.edit_invoice(db, invoice_id=invoice.id, data=InvoiceUpdate(notes="late"), actor=admin_actor)
    assert edit.error == "Cannot update archived invoice"


def test_request_archive_by_standard_user_files_a_request(db, admin, user_actor, vendor, make_invoice):
    invoice = make_invoice(vendor)

    result = invoices.request_archive(db, invoice_id=invoice.id, reason=None, actor=user_actor)
    assert result.success, result.error
    assert result.data["archived"] is False
    assert result.data["request_id"] is not None
    db.refresh(invoice)
    assert invoice.is_archived is False

    duplicate = invoices.request_archive(db, invoice_id=invoice.id, reason=None, actor=user_actor)
    assert duplicate.error == "An archive request for this invoice is already pending approval"


def test_request_archive_by_admin_archives_directly(db, admin_actor, vendor, make_invoice):
    invoice = make_invoice(vendor)
    result = invoices.request_archive(db, invoice_id=invoice.id, reason="Duplicate of INV-1", actor=admin_actor)
    assert result.data == {"archived": True, "invoice_id": invoice.id, "request_id": None}


def test_permanent_delete_requires_super_admin_and_leaves_tombstone(db, admin_actor, super_actor, vendor, make_invoice):
    invoice = make_invoice(vendor)
    invoice_id = invoice.id
    invoices.add_comment(db, invoice_id=invoice_id, body="Checked with vendor", actor=admin_actor)

    denied = invoices.permanently_delete_invoice(db, invoice_id=invoice_id, reason=None, actor=admin_actor)
    assert denied.error == "Super admin access required"

    deleted = invoices.permanently_delete_invoice(db, invoice_id=invoice_id, reason="Test data", actor=super_actor)
    assert deleted.success, deleted.error
    assert deleted.data["invoice_number"] == invoice.invoice_number
    assert db.get(Invoice, invoice_id) is None

    tombstone = db.scalars(
        select(ActivityLog).where(ActivityLog.invoice_id == invoice_id, ActivityLog.type == "INVOICE_DELETED")
    ).one()
    assert tombstone.payload_json["reason"] == "Test data"


def test_invoice_detail_includes_summary_and_due_state(db, admin_actor, vendor, make_invoice):
    invoice = make_invoice(vendor, due_in_days=-2)
    result = invoices.get_invoice_detail(db, invoice_id=invoice.id, actor=admin_actor)

    assert result.success
    assert result.data.payment_summary.remaining_balance == Decimal("1000.00")
    assert result.data.due_state.is_overdue


def test_missing_invoice_is_not_found(db, admin_actor):
    result = invoices.approve_invoice(db, invoice_id=999, actor=admin_actor)
    assert result.error_kind == ErrorKind.NOT_FOUND
