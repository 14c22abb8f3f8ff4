from decimal import Decimal
from typing import Optional

from finvisor.core.auth import CurrentUser
from finvisor.core.errors import FormValidationError, NotFoundError, PermissionDeniedError
from finvisor.db.session import get_database
from finvisor.models.receipt import Receipt, ReceiptStatus, can_transition
from finvisor.repositories.billing_repo import ProfileRepository
from finvisor.repositories.client_repo import ClientRepository, TeamMemberRepository
from finvisor.repositories.receipt_repo import ReceiptRepository
from finvisor.schemas.receipt import ReceiptFilter, ReceiptValidateForm
from finvisor.schemas.feed import ReceiptDetail
from finvisor.services.receipt_feed import (
    ReceiptFeedReconciler,
    RepositoryReceiptSource,
    fetch_detail,
)
from finvisor.utils.safe_query import safe_query

# Fields copied as-is from the form when sent
TEXT_FIELDS = (
    "vendor", "document_number", "city", "address",
    "payment_method", "category", "client_id", "processed_by",
)


def validate_form(form: ReceiptValidateForm) -> None:
    """Check the required fields before anything is written."""
    if not form.vendor or not form.vendor.strip():
        raise FormValidationError("Vendor is required", field="vendor")
    if form.gross_amount is None:
        raise FormValidationError("Gross amount is required", field="gross_amount")
    if form.gross_amount < 0:
        raise FormValidationError("Gross amount cannot be negative", field="gross_amount")
    tax = form.tax_amount or Decimal("0")
    if tax < 0:
        raise FormValidationError("VAT amount cannot be negative", field="tax_amount")
    if tax > form.gross_amount:
        raise FormValidationError("VAT amount cannot exceed the gross amount", field="tax_amount")


class ReceiptService:
    @staticmethod
    async def org_id_for(user: CurrentUser) -> str:
        """Organisation the user works in. Raises ``PermissionDeniedError`` if none."""
        db = await get_database()
        org_id = await ProfileRepository(db).get_org_id(user.id)
        if not org_id:
            raise PermissionDeniedError("Organisation not found for this user")
        return org_id

    @staticmethod
    async def source(org_id: Optional[str] = None) -> RepositoryReceiptSource:
        db = await get_database()
        return RepositoryReceiptSource(
            ReceiptRepository(db), ClientRepository(db), TeamMemberRepository(db), org_id
        )

    @staticmethod
    async def allowed_client_ids(user: CurrentUser, org_id: Optional[str] = None) -> Optional[list[str]]:
        """
        Client scope of a user.

        Firm users see every client (None). An enterprise user only sees the
        clients named after its enterprise, possibly none at all.
        """
        if not user.email:
            return None
        db = await get_database()
        enterprise = await safe_query(
            db["enterprises"].find_one({"email": user.email}),
            context="enterprises.get"
        )
        if not enterprise:
            return None
        return await ClientRepository(db).client_ids_named(enterprise.get("name") or "", org_id)

    @staticmethod
    async def list_receipts(receipt_filter: ReceiptFilter) -> list[Receipt]:
        db = await get_database()
        return await ReceiptRepository(db).list_receipts(receipt_filter)

    @staticmethod
    async def get_detail(receipt_id: int, org_id: Optional[str] = None) -> ReceiptDetail:
        return await fetch_detail(await ReceiptService.source(org_id), receipt_id)

    @staticmethod
    async def validate(
        receipt_id: int,
        form: ReceiptValidateForm,
        org_id: Optional[str] = None,
        reconciler: Optional[ReceiptFeedReconciler] = None
    ) -> Receipt:
        """
        Save the edited fields and mark the receipt processed.

        The status only moves forward: a pending receipt becomes processed,
        an errored one stays errored. The pipeline's receipt number is never
        touched. When a reconciler is given, its echo of this write is
        suppressed.
        """
        validate_form(form)

        db = await get_database()
        repo = ReceiptRepository(db)
        existing = await repo.get_receipt(receipt_id, org_id)
        if existing is None:
            raise NotFoundError(f"Receipt {receipt_id} not found")

        tax = form.tax_amount or Decimal("0")
        fields = {field: getattr(form, field) for field in TEXT_FIELDS if field in form.model_fields_set}
        fields["vendor"] = form.vendor.strip()
        fields["gross_amount"] = form.gross_amount
        fields["tax_amount"] = tax
        fields["net_amount"] = form.gross_amount - tax
        if can_transition(existing.status, ReceiptStatus.PROCESSED):
            fields["status"] = ReceiptStatus.PROCESSED.value

        if reconciler is not None:
            reconciler.mark_local_action(receipt_id)

        updated = await repo.update_receipt(receipt_id, fields, org_id)
        if updated is None:
            raise NotFoundError(f"Receipt {receipt_id} not found")
        return updated

    @staticmethod
    async def delete(receipt_id: int, org_id: Optional[str] = None) -> bool:
        db = await get_database()
        return await ReceiptRepository(db).delete_receipt(receipt_id, org_id)
