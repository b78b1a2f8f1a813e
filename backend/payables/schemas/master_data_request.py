from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from payables.models.enums import MasterDataEntityType, RequestStatus
from payables.schemas.base import ORMModel


class VendorRequestData(BaseModel):
    entity_type: Literal["vendor"] = "vendor"
    name: str = Field(..., min_length=1, max_length=255)
    address: Optional[str] = None
    gst_exemption: bool = False
    bank_details: Optional[str] = None


class CategoryRequestData(BaseModel):
    entity_type: Literal["category"] = "category"
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class InvoiceProfileRequestData(BaseModel):
    entity_type: Literal["invoice_profile"] = "invoice_profile"
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    visible_to_all: bool = True


class PaymentTypeRequestData(BaseModel):
    entity_type: Literal["payment_type"] = "payment_type"
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    requires_reference: bool = False


class InvoiceArchiveRequestData(BaseModel):
    entity_type: Literal["invoice_archive"] = "invoice_archive"
    invoice_id: int
    invoice_number: str
    reason: str = "User requested archive"


RequestData = Annotated[
    Union[
        VendorRequestData,
        CategoryRequestData,
        InvoiceProfileRequestData,
        PaymentTypeRequestData,
        InvoiceArchiveRequestData,
    ],
    Field(discriminator="entity_type"),
]

_request_data_adapter: TypeAdapter[RequestData] = TypeAdapter(RequestData)


def decode_request_data(entity_type: MasterDataEntityType, data: dict) -> RequestData:
    """Decode a stored payload into its typed variant; raises pydantic.ValidationError."""
    return _request_data_adapter.validate_python({**data, "entity_type": MasterDataEntityType(entity_type).value})


def encode_request_data(payload: RequestData) -> dict:
    return payload.model_dump(mode="json", exclude={"entity_type"})


class MasterDataRequestCreate(BaseModel):
    payload: RequestData


class RequestApprove(BaseModel):
    admin_edits: Optional[dict] = None
    admin_notes: Optional[str] = None


class RequestReject(BaseModel):
    reason: str


class RequestResubmit(BaseModel):
    payload: RequestData


class BulkApprove(BaseModel):
    request_ids: list[int] = Field(..., min_length=1)


class BulkReject(BaseModel):
    request_ids: list[int] = Field(..., min_length=1)
    reason: str


class BulkFailure(BaseModel):
    request_id: int
    error: str


class BulkResult(BaseModel):
    succeeded: list[int]
    failed: list[BulkFailure]

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


class MasterDataRequestRead(ORMModel):
    id: int
    entity_type: MasterDataEntityType
    status: RequestStatus
    requester_id: int
    reviewer_id: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    request_data: dict
    admin_edits: Optional[dict] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    resubmission_count: int
    previous_attempt_id: Optional[int] = None
    superseded_by_id: Optional[int] = None
    created_entity_id: Optional[str] = None
    created_at: datetime
