from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from finvisor.schemas.receipt import ALL


class FilterPreferences(BaseModel):
    """Cross-page filters remembered between sessions."""
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    client_id: str = ALL
    member_id: str = ALL


class DateRangeUpdate(BaseModel):
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class FilterPreferencesUpdate(BaseModel):
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    client_id: Optional[str] = None
    member_id: Optional[str] = None
