"""Change feed over MongoDB change streams."""
import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from finvisor.core.config import settings
from finvisor.db.mongo import WATCHED_COLLECTIONS
from finvisor.schemas.feed import ChangeEvent, ChangeType, FeedStatus

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]
StatusHandler = Callable[[FeedStatus], Awaitable[None]]

OPERATION_TYPES = {
    "insert": ChangeType.INSERT,
    "update": ChangeType.UPDATE,
    "replace": ChangeType.UPDATE,
    "delete": ChangeType.DELETE,
}


def to_change_event(change: Mapping[str, Any]) -> Optional[ChangeEvent]:
    """Map a raw change stream document to a ``ChangeEvent``; None for other operations."""
    change_type = OPERATION_TYPES.get(change.get("operationType"))
    if change_type is None:
        return None

    table = change.get("ns", {}).get("coll", "")
    before = change.get("fullDocumentBeforeChange")

    if change_type is ChangeType.INSERT:
        return ChangeEvent(type=change_type, table=table, new=change.get("fullDocument"))
    if change_type is ChangeType.UPDATE:
        description = change.get("updateDescription")
        updated_fields = None
        if description is not None:
            updated_fields = (
                list(description.get("updatedFields", {}))
                + list(description.get("removedFields", []))
            )
        return ChangeEvent(
            type=change_type,
            table=table,
            old=before,
            new=change.get("fullDocument"),
            updated_fields=updated_fields
        )
    return ChangeEvent(type=change_type, table=table, old=before or change.get("documentKey"))


class FeedSubscription:
    """
    A live subscription to the change feed.

    Events are handed to the handler one at a time, in stream order. When the
    connection drops, the status handler is told ``disconnected``; the
    subscription then retries with capped exponential backoff, resuming after
    the last event seen, and reports ``connected`` once the stream is back.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        tables: Iterable[str],
        handler: ChangeHandler,
        on_status: Optional[StatusHandler] = None,
        initial_backoff: float = 1.0,
        max_backoff: float = 30.0,
        org_id: Optional[str] = None
    ):
        self.db = db
        self.tables = list(tables)
        self.org_id = org_id
        self.handler = handler
        self.on_status = on_status
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.status: Optional[FeedStatus] = None
        self.resume_token = None
        self._task: Optional[asyncio.Task] = None

    @property
    def pipeline(self) -> list[dict]:
        match: dict[str, Any] = {
            "ns.coll": {"$in": self.tables},
            "operationType": {"$in": list(OPERATION_TYPES)}
        }
        if self.org_id is not None:
            # Deletes without a pre-image only carry the key and cannot be told apart
            match["$or"] = [
                {"fullDocument.org_id": self.org_id},
                {"fullDocumentBeforeChange.org_id": self.org_id},
                {"operationType": "delete", "fullDocumentBeforeChange": None},
            ]
        return [{"$match": match}]

    def start(self) -> "FeedSubscription":
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self

    async def close(self) -> None:
        """Release the stream. Safe to call more than once."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Change feed subscription closed")

    @property
    def closed(self) -> bool:
        return self._task is None

    async def _set_status(self, status: FeedStatus) -> None:
        if status == self.status:
            return
        self.status = status
        logger.info("Change feed %s", status.value)
        if self.on_status is not None:
            await self.on_status(status)

    async def _run(self) -> None:
        delay = self.initial_backoff
        while True:
            try:
                async with self.db.watch(
                    self.pipeline,
                    full_document="updateLookup",
                    full_document_before_change="whenAvailable",
                    resume_after=self.resume_token
                ) as stream:
                    await self._set_status(FeedStatus.CONNECTED)
                    delay = self.initial_backoff
                    async for change in stream:
                        self.resume_token = stream.resume_token
                        if change.get("operationType") == "invalidate":
                            self.resume_token = None
                            break
                        event = to_change_event(change)
                        if event is not None:
                            await self._dispatch(event)
            except PyMongoError as e:
                logger.warning("Change feed dropped: %s (retrying in %.1fs)", e, delay)
                await self._set_status(FeedStatus.DISCONNECTED)
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_backoff)

    async def _dispatch(self, event: ChangeEvent) -> None:
        try:
            await self.handler(event)
        except Exception:
            # One bad event must not stop the feed
            logger.exception("Change handler failed for %s on %s", event.type.value, event.table)


class ChangeFeed:
    """Factory for subscriptions on the watched collections."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        tables: Iterable[str] = WATCHED_COLLECTIONS,
        org_id: Optional[str] = None
    ):
        """Watch ``tables``, keeping only the rows of ``org_id`` when given."""
        self.db = db
        self.tables = tuple(tables)
        self.org_id = org_id

    def subscribe(
        self,
        handler: ChangeHandler,
        on_status: Optional[StatusHandler] = None
    ) -> FeedSubscription:
        return FeedSubscription(
            self.db,
            self.tables,
            handler,
            on_status,
            initial_backoff=settings.FEED_RECONNECT_INITIAL_SECONDS,
            max_backoff=settings.FEED_RECONNECT_MAX_SECONDS,
            org_id=self.org_id
        ).start()
