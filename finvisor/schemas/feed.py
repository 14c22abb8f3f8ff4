from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from finvisor.schemas.receipt import ReceiptFilter, ReceiptResponse


class ChangeType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """One notification from the change feed."""
    type: ChangeType
    table: str
    old: Optional[Dict[str, Any]] = None
    new: Optional[Dict[str, Any]] = None
    # Fields written by an update, when the feed reports them
    updated_fields: Optional[List[str]] = None


class FeedStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class DetailStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class ReceiptDetail(BaseModel):
    """A receipt plus the display names of its foreign references."""
    receipt_id: int
    status: DetailStatus = DetailStatus.LOADING
    receipt: Optional[ReceiptResponse] = None
    processed_by_name: Optional[str] = None
    client_name: Optional[str] = None
    error: Optional[str] = None


class Notification(BaseModel):
    title: str
    description: str = ""
    variant: Literal["default", "success", "warning", "destructive"] = "default"


class FeedSnapshot(BaseModel):
    filter: ReceiptFilter
    receipts: List[ReceiptResponse] = []
    list_error: Optional[str] = None
    selected_id: Optional[int] = None
    detail_open: bool = False
    detail: Optional[ReceiptDetail] = None


# WebSocket messages sent by the browser

class SetFilterCommand(BaseModel):
    action: Literal["set_filter"]
    filter: ReceiptFilter


class OpenDetailCommand(BaseModel):
    action: Literal["open_detail"]
    receipt_id: int


class CloseDetailCommand(BaseModel):
    action: Literal["close_detail"]


class MarkLocalActionCommand(BaseModel):
    action: Literal["mark_local_action"]
    receipt_id: int


FeedCommand = Annotated[
    Union[SetFilterCommand, OpenDetailCommand, CloseDetailCommand, MarkLocalActionCommand],
    Field(discriminator="action")
]

feed_command_adapter = TypeAdapter(FeedCommand)
