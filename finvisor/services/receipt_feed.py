"""
Receipt feed reconciler.

Keeps one session's receipt list and detail view consistent with the change
feed. Three actors mutate receipts: the local user, other users and the
ingestion pipeline, and the local user's own writes echoing back through the
feed. The list is never patched in place; every event triggers a refetch, so
the cached list always matches a fresh ``list()`` of the current filter.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

from finvisor.core.errors import FinvisorError, NotFoundError, report_error
from finvisor.models.receipt import Receipt, ReceiptStatus, normalize_receipt
from finvisor.realtime.feed import ChangeFeed, FeedSubscription
from finvisor.schemas.feed import (
    ChangeEvent,
    ChangeType,
    DetailStatus,
    FeedSnapshot,
    FeedStatus,
    Notification,
    ReceiptDetail,
)
from finvisor.schemas.receipt import ReceiptFilter, ReceiptResponse

logger = logging.getLogger(__name__)

Notifier = Callable[[Notification], Awaitable[None]]


class ReceiptSource(Protocol):
    """Remote reads the reconciler depends on."""

    async def list_receipts(self, receipt_filter: ReceiptFilter) -> list[Receipt]: ...

    async def get_receipt(self, receipt_id: int) -> Optional[Receipt]: ...

    async def get_member_name(self, member_id: str) -> Optional[str]: ...

    async def get_client_name(self, client_id: str) -> Optional[str]: ...


@dataclass(frozen=True)
class FeedDecision:
    """What to do in response to one change event."""
    refetch: bool = True
    open_id: Optional[int] = None
    notification: Optional[Notification] = None


def decide_insert(detail_open: bool, selected_id: Optional[int], record: Receipt) -> FeedDecision:
    if detail_open and selected_id == record.id:
        return FeedDecision()
    return FeedDecision(
        open_id=record.id,
        notification=Notification(
            title="New receipt",
            description=f"{record.vendor or 'A receipt'} has been added.",
            variant="success"
        )
    )


def decide_update(
    armed_id: Optional[int],
    old: Optional[Receipt],
    new: Receipt,
    updated_fields: Optional[list[str]] = None
) -> tuple[FeedDecision, Optional[int]]:
    """
    Decide the reaction to an update and return the next armed id.

    An armed id matching the update is consumed and suppresses the reaction.
    Without a pre-image, a transition is only assumed for the fields the
    update actually wrote; with neither, the update is a plain refetch.
    """
    if armed_id is not None and armed_id == new.id:
        return FeedDecision(), None

    if old is not None:
        numbered = new.receipt_number is not None and old.receipt_number is None
        processed = new.status == ReceiptStatus.PROCESSED and old.status != ReceiptStatus.PROCESSED
    else:
        written = set(updated_fields or ())
        numbered = new.receipt_number is not None and "receipt_number" in written
        processed = new.status == ReceiptStatus.PROCESSED and "status" in written

    if numbered or processed:
        label = f"Receipt #{new.receipt_number}" if new.receipt_number is not None else "Receipt"
        return FeedDecision(
            open_id=new.id,
            notification=Notification(
                title="Receipt validated",
                description=f"{label} has been processed.",
                variant="success"
            )
        ), armed_id

    return FeedDecision(), armed_id


async def _lookup_name(
    lookup: Callable[[str], Awaitable[Optional[str]]],
    reference: Optional[str]
) -> Optional[str]:
    if reference is None:
        return None
    try:
        return await lookup(reference)
    except FinvisorError as e:
        logger.warning("Display name lookup failed for %s: %s", reference, e.message)
        return None


async def fetch_detail(source: ReceiptSource, receipt_id: int) -> ReceiptDetail:
    """
    Load a receipt and the display names of its references.

    The row itself is required: a missing row or a failed read raises. The
    names are best effort and stay None when their lookup fails.
    """
    receipt = await source.get_receipt(receipt_id)
    if receipt is None:
        raise NotFoundError(f"Receipt {receipt_id} not found")

    processed_by_name, client_name = await asyncio.gather(
        _lookup_name(source.get_member_name, receipt.processed_by),
        _lookup_name(source.get_client_name, receipt.client_id),
    )
    return ReceiptDetail(
        receipt_id=receipt_id,
        status=DetailStatus.READY,
        receipt=ReceiptResponse.model_validate(receipt),
        processed_by_name=processed_by_name,
        client_name=client_name
    )


class ReceiptFeedReconciler:
    """Page-local cache of receipts kept in sync with the change feed."""

    def __init__(
        self,
        source: ReceiptSource,
        receipt_filter: Optional[ReceiptFilter] = None,
        notify: Optional[Notifier] = None,
        on_change: Optional[Callable[[], Awaitable[None]]] = None
    ):
        self.source = source
        self.filter = receipt_filter or ReceiptFilter()
        self.notify = notify
        self.on_change = on_change

        self.receipts: list[Receipt] = []
        self.list_error: Optional[str] = None
        self.selected_id: Optional[int] = None
        self.detail_open = False
        self.detail: Optional[ReceiptDetail] = None
        self.armed_id: Optional[int] = None

        self.subscription: Optional[FeedSubscription] = None
        self._feed_status: Optional[FeedStatus] = None

    # Lifecycle

    async def start(self, feed: ChangeFeed) -> None:
        """Load the list and subscribe to the feed."""
        await self.refresh()
        self.subscription = feed.subscribe(self.handle_event, self.handle_feed_status)

    async def close(self) -> None:
        if self.subscription is not None:
            await self.subscription.close()
            self.subscription = None

    # List

    async def list(self, receipt_filter: ReceiptFilter) -> list[Receipt]:
        """Fetch at most 100 receipts for a filter. Raises ``QueryError``."""
        return await self.source.list_receipts(receipt_filter)

    async def refresh(self) -> None:
        """Rebuild the cached list from scratch."""
        try:
            self.receipts = await self.list(self.filter)
            self.list_error = None
        except FinvisorError as e:
            self.receipts = []
            self.list_error = e.message
            await self._notify_error(e, "Loading receipts")

    async def set_filter(self, receipt_filter: ReceiptFilter) -> None:
        if receipt_filter == self.filter:
            return
        self.filter = receipt_filter
        await self.refresh()

    # Detail

    async def open_detail(self, receipt_id: int) -> None:
        self.selected_id = receipt_id
        self.detail = None
        self.detail_open = True
        await self._load_detail(receipt_id)

    def close_detail(self) -> None:
        self.selected_id = None
        self.detail = None
        self.detail_open = False

    async def _load_detail(self, receipt_id: int) -> None:
        self.detail = ReceiptDetail(receipt_id=receipt_id)
        try:
            result = await fetch_detail(self.source, receipt_id)
        except FinvisorError as e:
            result = ReceiptDetail(receipt_id=receipt_id, status=DetailStatus.ERROR, error=e.message)
            await self._notify_error(e, "Loading receipt")

        # Drop the result if the selection moved on while fetching
        if self.detail_open and self.selected_id == receipt_id:
            self.detail = result

    # Change events

    def mark_local_action(self, receipt_id: int) -> None:
        """Suppress the reaction to the next update for ``receipt_id``."""
        self.armed_id = receipt_id

    async def on_remote_insert(self, record: Receipt) -> None:
        await self._apply(decide_insert(self.detail_open, self.selected_id, record))

    async def on_remote_update(
        self,
        old: Optional[Receipt],
        new: Receipt,
        updated_fields: Optional[list[str]] = None
    ) -> None:
        decision, self.armed_id = decide_update(self.armed_id, old, new, updated_fields)
        await self._apply(decision)

    async def on_remote_delete(self, record: Optional[Receipt] = None) -> None:
        await self.refresh()

    async def handle_event(self, event: ChangeEvent) -> None:
        """Route one feed event."""
        await self._route(event)
        if self.on_change is not None:
            await self.on_change()

    async def _route(self, event: ChangeEvent) -> None:
        if event.table != "receipts":
            # Client or team member renamed: refresh the joined names
            if self.detail_open and self.selected_id is not None:
                await self._load_detail(self.selected_id)
            return

        if not self._in_org(event):
            logger.debug("Ignoring %s event from another organisation", event.type.value)
            return

        if event.type is ChangeType.INSERT and event.new:
            await self.on_remote_insert(normalize_receipt(event.new))
        elif event.type is ChangeType.UPDATE and event.new:
            old = normalize_receipt(event.old) if event.old else None
            await self.on_remote_update(old, normalize_receipt(event.new), event.updated_fields)
        elif event.type is ChangeType.DELETE:
            await self.on_remote_delete(normalize_receipt(event.old) if event.old else None)
        else:
            await self.refresh()

    def _in_org(self, event: ChangeEvent) -> bool:
        if self.filter.org_id is None:
            return True
        row = event.new or event.old
        # A delete without pre-image only carries the key; the refetch is scoped anyway
        if not row or "org_id" not in row:
            return event.type is ChangeType.DELETE
        return row["org_id"] == self.filter.org_id

    async def handle_feed_status(self, status: FeedStatus) -> None:
        previous, self._feed_status = self._feed_status, status
        if status is FeedStatus.DISCONNECTED:
            await self._emit(Notification(
                title="Live updates interrupted",
                description="Reconnecting to the receipt feed…",
                variant="warning"
            ))
        elif previous is FeedStatus.DISCONNECTED:
            # Events may have been missed while offline
            await self.refresh()
        if self.on_change is not None:
            await self.on_change()

    async def _apply(self, decision: FeedDecision) -> None:
        if decision.refetch:
            await self.refresh()
        if decision.open_id is not None:
            await self.open_detail(decision.open_id)
        if decision.notification is not None:
            await self._emit(decision.notification)

    # Notifications

    async def _emit(self, notification: Notification) -> None:
        if self.notify is not None:
            await self.notify(notification)

    async def _notify_error(self, error: FinvisorError, operation: str) -> None:
        message = report_error(error, "ReceiptFeed", operation)
        await self._emit(Notification(title="Error", description=message, variant="destructive"))

    def snapshot(self) -> FeedSnapshot:
        return FeedSnapshot(
            filter=self.filter,
            receipts=[ReceiptResponse.model_validate(r) for r in self.receipts],
            list_error=self.list_error,
            selected_id=self.selected_id,
            detail_open=self.detail_open,
            detail=self.detail
        )


class RepositoryReceiptSource:
    """``ReceiptSource`` backed by the MongoDB repositories."""

    def __init__(self, receipts, clients, members, org_id: Optional[str] = None):
        self.receipts = receipts
        self.clients = clients
        self.members = members
        self.org_id = org_id

    async def list_receipts(self, receipt_filter: ReceiptFilter) -> list[Receipt]:
        return await self.receipts.list_receipts(receipt_filter)

    async def get_receipt(self, receipt_id: int) -> Optional[Receipt]:
        return await self.receipts.get_receipt(receipt_id, self.org_id)

    async def get_member_name(self, member_id: str) -> Optional[str]:
        return await self.members.get_member_name(member_id, self.org_id)

    async def get_client_name(self, client_id: str) -> Optional[str]:
        return await self.clients.get_client_name(client_id, self.org_id)
