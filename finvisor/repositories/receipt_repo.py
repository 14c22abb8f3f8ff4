import re
from datetime import datetime, timezone
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from finvisor.core.config import settings
from finvisor.models.base import to_bson_decimal
from finvisor.models.receipt import AMOUNT_FIELDS, Receipt, normalize_receipt
from finvisor.schemas.receipt import ALL, ReceiptFilter
from finvisor.utils.safe_query import safe_query

# Text fields matched by the free-text search
SEARCH_FIELDS = ("document_number", "vendor", "address")


def build_match(receipt_filter: ReceiptFilter) -> dict:
    """Translate a filter tuple into a MongoDB match document."""
    match: dict[str, Any] = {}

    if receipt_filter.org_id is not None:
        match["org_id"] = receipt_filter.org_id

    if receipt_filter.date_from and receipt_filter.date_to:
        match["processed_at"] = {
            "$gte": receipt_filter.date_from,
            "$lte": receipt_filter.date_to
        }

    if receipt_filter.allowed_client_ids is not None:
        match["client_id"] = {"$in": list(receipt_filter.allowed_client_ids)}
    else:
        if receipt_filter.client_id and receipt_filter.client_id != ALL:
            match["client_id"] = receipt_filter.client_id
        if receipt_filter.member_id and receipt_filter.member_id != ALL:
            match["processed_by"] = receipt_filter.member_id

    search = receipt_filter.search.strip()
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        match["$or"] = [{field: pattern} for field in SEARCH_FIELDS]

    return match


def receipt_key(receipt_id: int, org_id: Optional[str] = None) -> dict:
    """Query for one receipt, restricted to an organisation when given."""
    key: dict[str, Any] = {"_id": receipt_id}
    if org_id is not None:
        key["org_id"] = org_id
    return key


def build_list_pipeline(receipt_filter: ReceiptFilter, limit: int) -> list[dict]:
    """Aggregation pipeline: filter, sort by processing date (nulls last) then creation date."""
    direction = 1 if receipt_filter.sort_order == "asc" else -1
    return [
        {"$match": build_match(receipt_filter)},
        {"$addFields": {"_has_processed_at": {
            "$cond": [{"$ifNull": ["$processed_at", False]}, 1, 0]
        }}},
        {"$sort": {"_has_processed_at": -1, "processed_at": direction, "created_at": direction}},
        {"$limit": limit},
        {"$project": {"_has_processed_at": 0}},
    ]


class ReceiptRepository:
    """Receipt database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["receipts"]

    async def list_receipts(
        self,
        receipt_filter: ReceiptFilter,
        limit: Optional[int] = None
    ) -> list[Receipt]:
        """List receipts matching the filter, capped at the configured limit."""
        limit = limit or settings.RECEIPT_LIST_LIMIT
        cursor = self.collection.aggregate(build_list_pipeline(receipt_filter, limit))
        docs = await safe_query(cursor.to_list(length=limit), context="receipts.list")
        return [normalize_receipt(doc) for doc in docs]

    async def find_for_period(self, receipt_filter: ReceiptFilter) -> list[Receipt]:
        """Every receipt matching the filter, uncapped, for dashboard totals."""
        cursor = self.collection.find(build_match(receipt_filter))
        docs = await safe_query(cursor.to_list(None), context="receipts.period")
        return [normalize_receipt(doc) for doc in docs]

    async def get_receipt(self, receipt_id: int, org_id: Optional[str] = None) -> Optional[Receipt]:
        """Get a receipt by id, None when it belongs to another organisation."""
        doc = await safe_query(
            self.collection.find_one(receipt_key(receipt_id, org_id)),
            context="receipts.get"
        )
        if doc:
            return normalize_receipt(doc)
        return None

    async def update_receipt(
        self,
        receipt_id: int,
        fields: dict,
        org_id: Optional[str] = None
    ) -> Optional[Receipt]:
        """Apply a partial update and return the stored receipt."""
        update = dict(fields)
        for field in AMOUNT_FIELDS:
            if field in update:
                update[field] = to_bson_decimal(update[field])
        update["updated_at"] = datetime.now(timezone.utc)

        doc = await safe_query(
            self.collection.find_one_and_update(
                receipt_key(receipt_id, org_id),
                {"$set": update},
                return_document=ReturnDocument.AFTER
            ),
            context="receipts.update"
        )
        if doc:
            return normalize_receipt(doc)
        return None

    async def delete_receipt(self, receipt_id: int, org_id: Optional[str] = None) -> bool:
        result = await safe_query(
            self.collection.delete_one(receipt_key(receipt_id, org_id)),
            context="receipts.delete"
        )
        return result.deleted_count > 0

    async def owned_ids(self, receipt_ids: list[int], org_id: str) -> set[int]:
        """The subset of ``receipt_ids`` belonging to the organisation."""
        cursor = self.collection.find({"_id": {"$in": list(receipt_ids)}, "org_id": org_id}, {"_id": 1})
        docs = await safe_query(cursor.to_list(None), context="receipts.owned")
        return {doc["_id"] for doc in docs}
