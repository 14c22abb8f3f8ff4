from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from bson.decimal128 import Decimal128
from pydantic import BaseModel, ConfigDict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Coerce a stored amount (Decimal128, float, int, str) to Decimal."""
    if value is None or value == "":
        return None
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(str(value).replace(",", ".").strip())
    except InvalidOperation:
        return None


def to_bson_decimal(value: Optional[Decimal]) -> Optional[Decimal128]:
    """Convert a Decimal to its BSON form for writes."""
    if value is None:
        return None
    return Decimal128(str(value))


class StoreModel(BaseModel):
    """Base for documents read from the store; ``_id`` maps to ``id``."""

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        from_attributes=True
    )
