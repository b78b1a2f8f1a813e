"""Import all models so SQLAlchemy metadata is fully registered."""

from payables.db.base import Base

from payables.models.audit import ActivityLog
from payables.models.invoice import Invoice, InvoiceAttachment, InvoiceComment
from payables.models.master import Category, Currency, InvoiceProfile, PaymentType
from payables.models.master_data_request import MasterDataRequest
from payables.models.notification import Notification
from payables.models.payment import Payment
from payables.models.user import User
from payables.models.vendor import Vendor

__all__ = [
    "Base",
    "ActivityLog",
    "Category",
    "Currency",
    "Invoice",
    "InvoiceAttachment",
    "InvoiceComment",
    "InvoiceProfile",
    "MasterDataRequest",
    "Notification",
    "Payment",
    "PaymentType",
    "User",
    "Vendor",
]
