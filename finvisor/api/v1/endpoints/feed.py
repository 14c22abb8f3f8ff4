import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, WebSocketException, status
from pydantic import ValidationError

from finvisor.core.auth import CurrentUser, get_websocket_user
from finvisor.core.errors import PermissionDeniedError
from finvisor.db.session import get_database
from finvisor.realtime.feed import ChangeFeed
from finvisor.schemas.feed import (
    CloseDetailCommand,
    MarkLocalActionCommand,
    Notification,
    OpenDetailCommand,
    SetFilterCommand,
    feed_command_adapter,
)
from finvisor.schemas.receipt import ReceiptFilter
from finvisor.services.receipt_feed import ReceiptFeedReconciler
from finvisor.services.receipt_service import ReceiptService

logger = logging.getLogger(__name__)

router = APIRouter()


async def apply_command(
    reconciler: ReceiptFeedReconciler,
    command,
    allowed,
    org_id: Optional[str] = None
) -> None:
    """Run one browser command against the reconciler."""
    if isinstance(command, SetFilterCommand):
        # Organisation and client scope are decided server-side
        scoped = command.filter.model_copy(update={"org_id": org_id, "allowed_client_ids": allowed})
        await reconciler.set_filter(scoped)
    elif isinstance(command, OpenDetailCommand):
        await reconciler.open_detail(command.receipt_id)
    elif isinstance(command, CloseDetailCommand):
        reconciler.close_detail()
    elif isinstance(command, MarkLocalActionCommand):
        reconciler.mark_local_action(command.receipt_id)


@router.websocket("/feed")
async def receipt_feed(
    websocket: WebSocket,
    current_user: CurrentUser = Depends(get_websocket_user)
):
    """Live receipt list: one reconciler per connection."""
    try:
        org_id = await ReceiptService.org_id_for(current_user)
    except PermissionDeniedError as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)

    await websocket.accept()

    async def notify(notification: Notification) -> None:
        await websocket.send_json({"type": "notification", "data": notification.model_dump(mode="json")})

    async def push_snapshot() -> None:
        snapshot = reconciler.snapshot()
        await websocket.send_json({"type": "snapshot", "data": snapshot.model_dump(mode="json")})

    allowed = await ReceiptService.allowed_client_ids(current_user, org_id)
    reconciler = ReceiptFeedReconciler(
        await ReceiptService.source(org_id),
        ReceiptFilter(org_id=org_id, allowed_client_ids=allowed),
        notify=notify,
        on_change=push_snapshot
    )
    await reconciler.start(ChangeFeed(await get_database(), org_id=org_id))
    await push_snapshot()

    try:
        while True:
            message = await websocket.receive_text()
            try:
                command = feed_command_adapter.validate_json(message)
            except ValidationError as e:
                await notify(Notification(
                    title="Invalid command",
                    description=str(e.errors()[0]["msg"]),
                    variant="destructive"
                ))
                continue
            await apply_command(reconciler, command, allowed, org_id)
            await push_snapshot()
    except WebSocketDisconnect:
        logger.info("Receipt feed closed for user %s", current_user.id)
    finally:
        await reconciler.close()
