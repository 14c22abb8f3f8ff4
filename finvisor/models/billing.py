from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from finvisor.models.base import StoreModel, _utcnow


class Plan(str, Enum):
    ESSENTIEL = "essentiel"
    AVANCE = "avance"
    EXPERT = "expert"


class Profile(StoreModel):
    user_id: str
    email: Optional[str] = None
    org_id: Optional[str] = None
    receipts_credits: int = 0


class Subscription(StoreModel):
    user_id: str
    org_id: Optional[str] = None
    stripe_customer_id: str
    stripe_subscription_id: str
    plan: str
    interval: str
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    updated_at: datetime = Field(default_factory=_utcnow)
