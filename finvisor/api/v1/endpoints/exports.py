from fastapi import APIRouter, Depends, Response, status

from finvisor.api.deps import get_current_org_id, get_webhook_client
from finvisor.core.errors import NotFoundError
from finvisor.db.session import get_database
from finvisor.repositories.client_repo import ClientRepository
from finvisor.repositories.receipt_repo import ReceiptRepository
from finvisor.schemas.webhook import ExportRequest, ExportResult, ReminderRequest
from finvisor.services.webhook_client import WebhookClient

router = APIRouter()


@router.post("/exports", response_model=ExportResult)
async def export_receipts(
    request: ExportRequest,
    org_id: str = Depends(get_current_org_id),
    webhook: WebhookClient = Depends(get_webhook_client)
):
    """Export receipts to a spreadsheet, a CSV link or a PDF"""
    owned = await ReceiptRepository(await get_database()).owned_ids(request.receipt_ids, org_id)
    missing = [receipt_id for receipt_id in request.receipt_ids if receipt_id not in owned]
    if missing:
        raise NotFoundError(f"Receipts not found: {', '.join(str(i) for i in missing)}")

    result = await webhook.export_receipts(request.receipt_ids, request.format, org_id=org_id)
    if result.pdf is not None:
        return Response(
            content=result.pdf,
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{result.filename}"'}
        )
    return result

@router.post("/clients/{client_id}/reminders", status_code=status.HTTP_202_ACCEPTED)
async def send_reminder(
    client_id: str,
    request: ReminderRequest,
    org_id: str = Depends(get_current_org_id),
    webhook: WebhookClient = Depends(get_webhook_client)
):
    """Ask a client for their missing receipts"""
    client = await ClientRepository(await get_database()).get_client(client_id, org_id)
    if client is None:
        raise NotFoundError("Client not found")

    await webhook.send_client_reminder(
        client_id,
        str(request.email),
        request.message,
        org_id=org_id
    )
    return {"message": "Reminder sent"}
