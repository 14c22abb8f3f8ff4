from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from finvisor.models.receipt import ReceiptStatus

ALL = "all"


class ReceiptFilter(BaseModel):
    """Filter tuple for the receipt list. Any change means a full refetch."""
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    client_id: str = ALL
    member_id: str = ALL
    search: str = ""
    sort_order: Literal["desc", "asc"] = "desc"
    # Tenant boundary; set server-side from the user's organisation
    org_id: Optional[str] = None
    # Enterprise users only see their own clients; an empty list matches nothing
    allowed_client_ids: Optional[List[str]] = None

    model_config = ConfigDict(frozen=True)


class ReceiptValidateForm(BaseModel):
    """Fields editable in the detail view before validating a receipt."""
    vendor: Optional[str] = None
    document_number: Optional[str] = None
    gross_amount: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    city: Optional[str] = None
    address: Optional[str] = None
    payment_method: Optional[str] = None
    category: Optional[str] = None
    client_id: Optional[str] = None
    processed_by: Optional[str] = None


class ReceiptResponse(BaseModel):
    id: int = Field(validation_alias="_id", serialization_alias="id")
    org_id: Optional[str] = None
    client_id: Optional[str] = None
    processed_by: Optional[str] = None
    vendor: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    payment_method: Optional[str] = None
    document_number: Optional[str] = None
    category: Optional[str] = None
    gross_amount: Optional[Decimal] = None
    net_amount: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    status: ReceiptStatus
    receipt_number: Optional[int] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    receipt_date: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ReceiptListQuery(BaseModel):
    """Query string form of ``ReceiptFilter``."""
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    client_id: str = ALL
    member_id: str = ALL
    search: str = ""
    sort_order: Literal["desc", "asc"] = "desc"

    def to_filter(
        self,
        org_id: Optional[str] = None,
        allowed_client_ids: Optional[List[str]] = None
    ) -> ReceiptFilter:
        return ReceiptFilter(**self.model_dump(), org_id=org_id, allowed_client_ids=allowed_client_ids)
