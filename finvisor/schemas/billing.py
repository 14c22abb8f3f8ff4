from typing import Optional

from pydantic import BaseModel


class PlanLimits(BaseModel):
    can_add_clients: bool = False
    can_add_team_members: bool = False
    can_process_receipts: bool = False
    max_receipts: Optional[int] = 0  # None means unlimited
    max_team_members: Optional[int] = 0
    has_unlimited_receipts: bool = False
    has_unlimited_team_members: bool = False
    has_priority_support: bool = False
    has_client_portal: bool = False


class CreditsResponse(BaseModel):
    credits: int
    success: bool = True


class LimitsResponse(BaseModel):
    plan: Optional[str] = None
    subscribed: bool = False
    limits: PlanLimits
