from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from bson.decimal128 import Decimal128

from finvisor.core.auth import CurrentUser
from finvisor.core.errors import FormValidationError, NotFoundError, PermissionDeniedError
from finvisor.schemas.receipt import ReceiptValidateForm
from finvisor.services.receipt_service import ReceiptService
from tests.factories import cursor_returning


def form(**fields):
    data = {"vendor": " Boulangerie Martin ", "gross_amount": Decimal("12.00"), "tax_amount": Decimal("2.00")}
    data.update(fields)
    return ReceiptValidateForm(**data)


@pytest.mark.asyncio
async def test_validate_marks_pending_receipt_processed(mock_db):
    receipts = mock_db["receipts"]
    receipts.find_one.return_value = {"_id": 42, "status": "pending", "receipt_number": 7}
    receipts.find_one_and_update.return_value = {
        "_id": 42, "status": "processed", "receipt_number": 7, "vendor": "Boulangerie Martin",
    }
    reconciler = MagicMock()

    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        updated = await ReceiptService.validate(42, form(), reconciler=reconciler)

    assert updated.status == "processed"
    reconciler.mark_local_action.assert_called_once_with(42)
    written = receipts.find_one_and_update.call_args.args[1]["$set"]
    assert written["vendor"] == "Boulangerie Martin"
    assert written["status"] == "processed"
    assert written["net_amount"] == Decimal128("10.00")
    assert "receipt_number" not in written
    assert "client_id" not in written


@pytest.mark.asyncio
async def test_validate_keeps_error_status(mock_db):
    receipts = mock_db["receipts"]
    receipts.find_one.return_value = {"_id": 5, "status": "error"}
    receipts.find_one_and_update.return_value = {"_id": 5, "status": "error"}

    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        await ReceiptService.validate(5, form())

    assert "status" not in receipts.find_one_and_update.call_args.args[1]["$set"]


@pytest.mark.asyncio
async def test_validate_missing_receipt(mock_db):
    mock_db["receipts"].find_one.return_value = None

    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        with pytest.raises(NotFoundError):
            await ReceiptService.validate(404, form())


@pytest.mark.asyncio
@pytest.mark.parametrize("fields, field", [
    ({"vendor": "  "}, "vendor"),
    ({"gross_amount": None}, "gross_amount"),
    ({"gross_amount": Decimal("-1")}, "gross_amount"),
    ({"tax_amount": Decimal("-0.5")}, "tax_amount"),
    ({"tax_amount": Decimal("13")}, "tax_amount"),
])
async def test_validate_rejects_invalid_form_before_writing(mock_db, fields, field):
    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        with pytest.raises(FormValidationError) as exc:
            await ReceiptService.validate(1, form(**fields))

    assert exc.value.field == field
    mock_db["receipts"].find_one_and_update.assert_not_called()


@pytest.mark.asyncio
async def test_enterprise_user_is_scoped_to_its_clients(mock_db):
    mock_db["enterprises"].find_one.return_value = {"email": "contact@horizon.fr", "name": "Horizon"}
    mock_db["clients"].find = MagicMock(return_value=cursor_returning([
        {"_id": "c1", "name": "horizon"},
        {"_id": "c2", "name": "Leroy"},
    ]))
    user = CurrentUser(id="u2", email="contact@horizon.fr", token="t")

    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        assert await ReceiptService.allowed_client_ids(user) == ["c1"]


@pytest.mark.asyncio
async def test_firm_user_sees_every_client(mock_db):
    mock_db["enterprises"].find_one.return_value = None
    user = CurrentUser(id="u1", email="anna@cabinet.fr", token="t")

    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        assert await ReceiptService.allowed_client_ids(user) is None


@pytest.mark.asyncio
async def test_validate_receipt_of_another_organisation(mock_db):
    # The scoped lookup finds nothing for a row of another organisation
    mock_db["receipts"].find_one.return_value = None

    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        with pytest.raises(NotFoundError):
            await ReceiptService.validate(42, form(), "org-1")

    mock_db["receipts"].find_one.assert_awaited_once_with({"_id": 42, "org_id": "org-1"})
    mock_db["receipts"].find_one_and_update.assert_not_called()


@pytest.mark.asyncio
async def test_validate_writes_within_the_organisation(mock_db):
    receipts = mock_db["receipts"]
    receipts.find_one.return_value = {"_id": 42, "status": "pending", "org_id": "org-1"}
    receipts.find_one_and_update.return_value = {"_id": 42, "status": "processed", "org_id": "org-1"}

    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        await ReceiptService.validate(42, form(), "org-1")

    assert receipts.find_one_and_update.call_args.args[0] == {"_id": 42, "org_id": "org-1"}


@pytest.mark.asyncio
async def test_organisation_comes_from_membership_first(mock_db, current_user):
    mock_db["org_members"].find_one.return_value = {"user_id": "user-1", "org_id": "org-7"}

    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        assert await ReceiptService.org_id_for(current_user) == "org-7"

    mock_db["profiles"].find_one.assert_not_called()


@pytest.mark.asyncio
async def test_organisation_falls_back_to_profile(mock_db, current_user):
    mock_db["org_members"].find_one.return_value = None
    mock_db["profiles"].find_one.return_value = {"user_id": "user-1", "org_id": "org-2"}

    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        assert await ReceiptService.org_id_for(current_user) == "org-2"


@pytest.mark.asyncio
async def test_user_without_organisation(mock_db, current_user):
    mock_db["org_members"].find_one.return_value = None
    mock_db["profiles"].find_one.return_value = {"user_id": "user-1"}

    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        with pytest.raises(PermissionDeniedError):
            await ReceiptService.org_id_for(current_user)


@pytest.mark.asyncio
async def test_enterprise_clients_are_looked_up_in_the_organisation(mock_db):
    mock_db["enterprises"].find_one.return_value = {"email": "contact@horizon.fr", "name": "Horizon"}
    mock_db["clients"].find = MagicMock(return_value=cursor_returning([{"_id": "c1", "name": "Horizon"}]))
    user = CurrentUser(id="u2", email="contact@horizon.fr", token="t")

    with patch("finvisor.services.receipt_service.get_database", return_value=mock_db):
        assert await ReceiptService.allowed_client_ids(user, "org-1") == ["c1"]

    assert mock_db["clients"].find.call_args.args[0] == {"org_id": "org-1"}
