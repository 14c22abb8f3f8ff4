from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import Field

from finvisor.models.base import StoreModel, to_decimal


class ReceiptStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    ERROR = "error"


# Allowed status moves; nothing leaves a terminal status
STATUS_TRANSITIONS = {
    ReceiptStatus.PENDING: {ReceiptStatus.PENDING, ReceiptStatus.PROCESSED, ReceiptStatus.ERROR},
    ReceiptStatus.PROCESSED: {ReceiptStatus.PROCESSED},
    ReceiptStatus.ERROR: {ReceiptStatus.ERROR},
}


def can_transition(current: ReceiptStatus, target: ReceiptStatus) -> bool:
    return target in STATUS_TRANSITIONS[current]


class Receipt(StoreModel):
    id: int = Field(alias="_id")
    org_id: Optional[str] = None
    client_id: Optional[str] = None
    processed_by: Optional[str] = None  # team member id

    vendor: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    payment_method: Optional[str] = None
    document_number: Optional[str] = None  # number printed on the paper receipt
    category: Optional[str] = None

    gross_amount: Optional[Decimal] = None  # TTC
    net_amount: Optional[Decimal] = None    # HT
    tax_amount: Optional[Decimal] = None    # TVA

    status: ReceiptStatus = ReceiptStatus.PENDING
    receipt_number: Optional[int] = None  # assigned by the ingestion pipeline

    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    receipt_date: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Column names used by the ingestion pipeline -> model field
LEGACY_FIELDS = {
    "id": "_id",
    "enseigne": "vendor",
    "adresse": "address",
    "ville": "city",
    "moyen_paiement": "payment_method",
    "numero_recu": "document_number",
    "categorie": "category",
    "montant_ttc": "gross_amount",
    "montant_ht": "net_amount",
    "tva": "tax_amount",
    "date_traitement": "processed_at",
    "date_recu": "receipt_date",
}

AMOUNT_FIELDS = ("gross_amount", "net_amount", "tax_amount")
REFERENCE_FIELDS = ("org_id", "client_id", "processed_by")


def normalize_receipt(row: Mapping[str, Any]) -> Receipt:
    """
    Build a strict ``Receipt`` from a raw store row.

    Accepts both the model field names and the pipeline's column names,
    BSON decimals, and the legacy ``montant`` column as a fallback for the
    gross amount. The net amount is derived as gross minus tax when it is
    not stored.
    """
    data: dict[str, Any] = {}
    for key, value in row.items():
        data[LEGACY_FIELDS.get(key, key)] = value

    if data.get("gross_amount") is None and row.get("montant") is not None:
        data["gross_amount"] = row["montant"]
    data.pop("montant", None)

    for field in AMOUNT_FIELDS:
        data[field] = to_decimal(data.get(field))

    for field in REFERENCE_FIELDS:
        value = data.get(field)
        data[field] = str(value) if value not in (None, "") else None

    if data.get("receipt_number") is not None:
        data["receipt_number"] = int(data["receipt_number"])

    status = data.get("status")
    if status is None:
        data.pop("status", None)
    else:
        data["status"] = str(status).lower()

    gross, net, tax = data["gross_amount"], data["net_amount"], data["tax_amount"]
    if net is None and gross is not None:
        data["net_amount"] = gross - (tax or Decimal("0"))

    known = set(Receipt.model_fields) | {"_id"}
    return Receipt(**{k: v for k, v in data.items() if k in known})
