from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from finvisor.api.deps import get_current_org_id, get_webhook_client
from finvisor.core.auth import CurrentUser, get_current_user
from finvisor.schemas.feed import ReceiptDetail
from finvisor.schemas.receipt import ReceiptListQuery, ReceiptResponse, ReceiptValidateForm
from finvisor.services.receipt_service import ReceiptService
from finvisor.services.webhook_client import WebhookClient

router = APIRouter()

@router.get("/", response_model=List[ReceiptResponse])
async def list_receipts(
    query: ReceiptListQuery = Depends(),
    current_user: CurrentUser = Depends(get_current_user),
    org_id: str = Depends(get_current_org_id)
):
    """List at most 100 receipts for the current filters"""
    allowed = await ReceiptService.allowed_client_ids(current_user, org_id)
    return await ReceiptService.list_receipts(query.to_filter(org_id, allowed))

@router.post("/upload", status_code=status.HTTP_202_ACCEPTED)
async def upload_receipt(
    file: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    org_id: str = Depends(get_current_org_id),
    webhook: WebhookClient = Depends(get_webhook_client)
):
    """Send a receipt file to the ingestion pipeline"""
    await webhook.upload_receipt(
        filename=file.filename or "receipt",
        content=await file.read(),
        content_type=file.content_type or "application/octet-stream",
        org_id=org_id,
        user_id=current_user.id,
        access_token=current_user.token
    )
    return {"message": "Receipt sent for analysis"}

@router.get("/{receipt_id}", response_model=ReceiptDetail)
async def get_receipt(
    receipt_id: int,
    org_id: str = Depends(get_current_org_id)
):
    """Get a receipt with its client and processing member names"""
    return await ReceiptService.get_detail(receipt_id, org_id)

@router.post("/{receipt_id}/validate", response_model=ReceiptResponse)
async def validate_receipt(
    receipt_id: int,
    form: ReceiptValidateForm,
    org_id: str = Depends(get_current_org_id)
):
    """Save edits and mark the receipt processed"""
    return await ReceiptService.validate(receipt_id, form, org_id)

@router.delete("/{receipt_id}")
async def delete_receipt(
    receipt_id: int,
    org_id: str = Depends(get_current_org_id)
):
    """Delete a receipt"""
    success = await ReceiptService.delete(receipt_id, org_id)
    if not success:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return {"message": "Receipt deleted successfully"}
