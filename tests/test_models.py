from decimal import Decimal

from bson.decimal128 import Decimal128

from finvisor.models.base import to_bson_decimal, to_decimal
from finvisor.models.receipt import ReceiptStatus, can_transition, normalize_receipt


def test_normalize_pipeline_columns():
    receipt = normalize_receipt({
        "id": 17,
        "enseigne": "Total Energies",
        "ville": "Lyon",
        "montant_ttc": Decimal128("60.00"),
        "tva": 10,
        "client_id": 3,
        "status": "PROCESSED",
        "receipt_number": "8",
        "unknown_column": "ignored",
    })

    assert receipt.id == 17
    assert receipt.vendor == "Total Energies"
    assert receipt.city == "Lyon"
    assert receipt.gross_amount == Decimal("60.00")
    assert receipt.tax_amount == Decimal("10")
    assert receipt.net_amount == Decimal("50.00")
    assert receipt.client_id == "3"
    assert receipt.status == ReceiptStatus.PROCESSED
    assert receipt.receipt_number == 8


def test_normalize_falls_back_to_legacy_amount():
    receipt = normalize_receipt({"_id": 1, "montant": "24,50"})

    assert receipt.gross_amount == Decimal("24.50")
    assert receipt.net_amount == Decimal("24.50")
    assert receipt.status == ReceiptStatus.PENDING


def test_normalize_keeps_stored_net_amount():
    receipt = normalize_receipt({"_id": 1, "gross_amount": 12, "net_amount": 9, "tax_amount": 2})
    assert receipt.net_amount == Decimal("9")


def test_normalize_key_only_row():
    receipt = normalize_receipt({"_id": 5})
    assert receipt.id == 5
    assert receipt.gross_amount is None
    assert receipt.client_id is None


def test_to_decimal():
    assert to_decimal(None) is None
    assert to_decimal("") is None
    assert to_decimal("abc") is None
    assert to_decimal(True) is None
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal(Decimal128("3.30")) == Decimal("3.30")


def test_to_bson_decimal():
    assert to_bson_decimal(None) is None
    assert to_bson_decimal(Decimal("1.20")) == Decimal128("1.20")


def test_status_only_moves_forward():
    assert can_transition(ReceiptStatus.PENDING, ReceiptStatus.PROCESSED)
    assert can_transition(ReceiptStatus.PENDING, ReceiptStatus.ERROR)
    assert not can_transition(ReceiptStatus.PROCESSED, ReceiptStatus.PENDING)
    assert not can_transition(ReceiptStatus.ERROR, ReceiptStatus.PROCESSED)
