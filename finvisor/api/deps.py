from fastapi import Depends, Request

from finvisor.core.auth import CurrentUser, get_current_user
from finvisor.services.filter_store import FilterStore
from finvisor.services.receipt_service import ReceiptService
from finvisor.services.webhook_client import WebhookClient


def get_webhook_client() -> WebhookClient:
    return WebhookClient()


async def get_current_org_id(current_user: CurrentUser = Depends(get_current_user)) -> str:
    """Organisation every receipt read and write of the request is scoped to."""
    return await ReceiptService.org_id_for(current_user)


def get_filter_store(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user)
) -> FilterStore:
    """Filter preferences of the current user, in the app's storage."""
    storage = request.app.state.preferences_storage
    return FilterStore(storage, key=f"{request.app.state.preferences_key}:{current_user.id}")
