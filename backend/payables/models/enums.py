from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    STANDARD_USER = "standard_user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class InvoiceStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    ON_HOLD = "on_hold"
    REJECTED = "rejected"


class VendorStatus(str, Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TdsRounding(str, Enum):
    EXACT = "exact"
    ROUND_UP = "round_up"


class MasterDataEntityType(str, Enum):
    VENDOR = "vendor"
    CATEGORY = "category"
    INVOICE_PROFILE = "invoice_profile"
    PAYMENT_TYPE = "payment_type"
    INVOICE_ARCHIVE = "invoice_archive"


class RequestStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    INVOICE_PENDING_APPROVAL = "invoice_pending_approval"
    INVOICE_APPROVED = "invoice_approved"
    INVOICE_REJECTED = "invoice_rejected"
    INVOICE_ON_HOLD = "invoice_on_hold"
    INVOICE_HOLD_RELEASED = "invoice_hold_released"
    VENDOR_PENDING_APPROVAL = "vendor_pending_approval"
    VENDOR_APPROVED = "vendor_approved"
    VENDOR_REJECTED = "vendor_rejected"
    MASTER_DATA_REQUEST_PENDING = "master_data_request_pending"
    MASTER_DATA_REQUEST_APPROVED = "master_data_request_approved"
    MASTER_DATA_REQUEST_REJECTED = "master_data_request_rejected"
    ARCHIVE_REQUEST_PENDING = "archive_request_pending"
    PAYMENT_PENDING_APPROVAL = "payment_pending_approval"
    PAYMENT_APPROVED = "payment_approved"
    PAYMENT_REJECTED = "payment_rejected"


class DueSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
