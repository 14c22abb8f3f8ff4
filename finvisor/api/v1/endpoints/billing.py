from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from finvisor.core.auth import CurrentUser, get_current_user
from finvisor.schemas.billing import CreditsResponse, LimitsResponse
from finvisor.services.billing_service import BillingService, limits_for

router = APIRouter()

@router.get("/limits", response_model=LimitsResponse)
async def get_limits(current_user: CurrentUser = Depends(get_current_user)):
    """Plan limits of the current user"""
    plan = await BillingService.current_plan(current_user.id)
    return LimitsResponse(plan=plan, subscribed=plan is not None, limits=limits_for(plan))

@router.post("/credits/decrement", response_model=CreditsResponse)
async def decrement_credits(current_user: CurrentUser = Depends(get_current_user)):
    """Consume one receipt credit"""
    remaining = await BillingService.decrement_credits(current_user.id)
    return CreditsResponse(credits=remaining)

@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature")
):
    """Payment provider events; authenticated by signature, not by user token"""
    payload = await request.body()
    event = BillingService.construct_event(payload, stripe_signature)
    await BillingService.handle_event(event)
    return {"received": True}
