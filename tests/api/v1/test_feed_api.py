from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from starlette.websockets import WebSocketDisconnect

from finvisor.api.v1.endpoints.feed import apply_command
from finvisor.core.errors import PermissionDeniedError
from finvisor.schemas.feed import feed_command_adapter
from finvisor.schemas.receipt import ReceiptFilter
from tests.factories import make_receipt


class StaticSource:
    def __init__(self):
        self.rows = {1: make_receipt(1), 2: make_receipt(2)}
        self.filters = []

    async def list_receipts(self, receipt_filter):
        self.filters.append(receipt_filter)
        return list(self.rows.values())

    async def get_receipt(self, receipt_id):
        return self.rows.get(receipt_id)

    async def get_member_name(self, member_id):
        return "Claire Dupont"

    async def get_client_name(self, client_id):
        return "SARL Horizon"


@pytest.fixture
def feed_env():
    source = StaticSource()
    subscription = MagicMock()
    subscription.close = AsyncMock()
    with patch("finvisor.services.receipt_service.ReceiptService.org_id_for",
               new_callable=AsyncMock, return_value="org-1"), \
            patch("finvisor.services.receipt_service.ReceiptService.source",
                  new_callable=AsyncMock, return_value=source) as mock_source, \
            patch("finvisor.services.receipt_service.ReceiptService.allowed_client_ids",
                  new_callable=AsyncMock, return_value=["client-1"]), \
            patch("finvisor.api.v1.endpoints.feed.get_database", new_callable=AsyncMock), \
            patch("finvisor.api.v1.endpoints.feed.ChangeFeed") as change_feed:
        change_feed.return_value.subscribe.return_value = subscription
        yield source, subscription, mock_source, change_feed


def test_feed_session(client, feed_env):
    source, subscription, _, _ = feed_env

    with client.websocket_connect("/api/v1/receipts/feed") as websocket:
        first = websocket.receive_json()
        assert first["type"] == "snapshot"
        assert [r["id"] for r in first["data"]["receipts"]] == [1, 2]

        websocket.send_json({"action": "open_detail", "receipt_id": 2})
        snapshot = websocket.receive_json()["data"]
        assert snapshot["selected_id"] == 2
        assert snapshot["detail"]["status"] == "ready"
        assert snapshot["detail"]["client_name"] == "SARL Horizon"

        websocket.send_json({"action": "bogus"})
        message = websocket.receive_json()
        assert message["type"] == "notification"
        assert message["data"]["variant"] == "destructive"

    subscription.close.assert_awaited()
    assert source.filters[0].allowed_client_ids == ["client-1"]


def test_feed_is_scoped_to_the_user_organisation(client, feed_env):
    source, _, mock_source, change_feed = feed_env

    with client.websocket_connect("/api/v1/receipts/feed") as websocket:
        websocket.receive_json()

    assert source.filters[0].org_id == "org-1"
    mock_source.assert_awaited_once_with("org-1")
    assert change_feed.call_args.kwargs["org_id"] == "org-1"


def test_non_json_frame_keeps_the_session(client, feed_env):
    with client.websocket_connect("/api/v1/receipts/feed") as websocket:
        websocket.receive_json()

        websocket.send_text("not json")
        message = websocket.receive_json()
        assert message["type"] == "notification"
        assert message["data"]["title"] == "Invalid command"

        websocket.send_json({"action": "close_detail"})
        assert websocket.receive_json()["type"] == "snapshot"


def test_feed_refused_without_organisation(client):
    with patch("finvisor.services.receipt_service.ReceiptService.org_id_for",
               new_callable=AsyncMock, side_effect=PermissionDeniedError("Organisation not found for this user")):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/api/v1/receipts/feed") as websocket:
                websocket.receive_json()

    assert exc.value.code == 1008


@pytest.mark.asyncio
async def test_set_filter_keeps_server_side_scope():
    reconciler = MagicMock()
    reconciler.set_filter = AsyncMock()
    command = feed_command_adapter.validate_python({
        "action": "set_filter",
        "filter": {"search": "garage", "org_id": "OTHER-ORG", "allowed_client_ids": ["someone-else"]},
    })

    await apply_command(reconciler, command, ["client-1"], "org-1")

    applied = reconciler.set_filter.call_args.args[0]
    assert isinstance(applied, ReceiptFilter)
    assert applied.search == "garage"
    assert applied.org_id == "org-1"
    assert applied.allowed_client_ids == ["client-1"]


@pytest.mark.asyncio
async def test_mark_local_action_command():
    reconciler = MagicMock()
    command = feed_command_adapter.validate_json('{"action": "mark_local_action", "receipt_id": 42}')

    await apply_command(reconciler, command, None)

    reconciler.mark_local_action.assert_called_once_with(42)
