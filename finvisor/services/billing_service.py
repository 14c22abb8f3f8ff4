"""Plan limits, receipt credits and payment provider webhook handling."""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import stripe

from finvisor.core.config import settings
from finvisor.core.errors import CreditsExhaustedError, NotFoundError, WebhookError
from finvisor.db.session import get_database
from finvisor.models.billing import Plan, Subscription
from finvisor.repositories.billing_repo import ProfileRepository, SubscriptionRepository
from finvisor.schemas.billing import PlanLimits

logger = logging.getLogger(__name__)

TRIAL_RECEIPTS = 5

UNLIMITED = PlanLimits(
    can_add_clients=True,
    can_add_team_members=True,
    can_process_receipts=True,
    max_receipts=None,
    max_team_members=None,
    has_unlimited_receipts=True,
    has_unlimited_team_members=True,
    has_priority_support=True,
    has_client_portal=True,
)

PLAN_LIMITS = {
    Plan.ESSENTIEL.value: PlanLimits(
        can_add_clients=True,
        can_add_team_members=True,
        can_process_receipts=True,
        max_receipts=750,
        max_team_members=10,
    ),
    Plan.AVANCE.value: UNLIMITED,
    Plan.EXPERT.value: UNLIMITED,
}

# No subscription: trial credits only
TRIAL_LIMITS = PlanLimits(can_process_receipts=True, max_receipts=TRIAL_RECEIPTS, max_team_members=0)


def limits_for(plan: Optional[str]) -> PlanLimits:
    if not plan:
        return TRIAL_LIMITS
    # Unknown plans get nothing
    return PLAN_LIMITS.get(plan, PlanLimits())


def plan_for_price(price_id: str) -> Optional[tuple[str, str]]:
    """(plan, interval) for a configured price id."""
    value = settings.STRIPE_PRICE_PLANS.get(price_id)
    if not value:
        return None
    plan, _, interval = value.partition(":")
    return plan, interval or "monthly"


def plan_from_lookup_key(lookup_key: str) -> tuple[str, str]:
    plan = Plan.AVANCE.value if "avance" in lookup_key else Plan.ESSENTIEL.value
    interval = "yearly" if "yearly" in lookup_key else "monthly"
    return plan, interval


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class BillingService:
    @staticmethod
    async def decrement_credits(user_id: str) -> int:
        """Consume one receipt credit and return what is left."""
        db = await get_database()
        remaining = await ProfileRepository(db).decrement_credits(user_id)
        if remaining is None:
            logger.info("No receipt credits remaining for %s", user_id)
            raise CreditsExhaustedError("No receipt credits remaining")
        logger.info("Credits decremented for %s: %d left", user_id, remaining)
        return remaining

    @staticmethod
    async def current_plan(user_id: str) -> Optional[str]:
        db = await get_database()
        subscription = await SubscriptionRepository(db).get_active(user_id)
        return subscription.plan if subscription else None

    @staticmethod
    def construct_event(payload: bytes, signature: Optional[str]) -> dict:
        """Verify the signature when a secret is configured, else trust the body."""
        if not signature:
            raise WebhookError("No stripe-signature header found", status_code=400)
        try:
            if settings.STRIPE_WEBHOOK_SECRET:
                event = stripe.Webhook.construct_event(
                    payload, signature, settings.STRIPE_WEBHOOK_SECRET
                )
                logger.info("Webhook signature verified")
            else:
                logger.warning("No webhook secret, skipping signature verification")
                event = stripe.Event.construct_from(json.loads(payload), stripe.api_key)
        except ValueError as e:
            raise WebhookError("Invalid payload", status_code=400) from e
        except stripe.SignatureVerificationError as e:
            raise WebhookError("Invalid signature", status_code=400) from e
        return event

    @staticmethod
    async def handle_event(event) -> None:
        """Mirror subscription lifecycle events into the subscriptions collection."""
        event_type = event["type"]
        logger.info("Stripe event %s", event_type)
        db = await get_database()
        subscriptions = SubscriptionRepository(db)

        if event_type in ("customer.subscription.created", "customer.subscription.updated"):
            subscription = event["data"]["object"]
            customer_id = subscription["customer"]
            customer = await asyncio.to_thread(
                stripe.Customer.retrieve, customer_id, api_key=settings.STRIPE_SECRET_KEY
            )
            email = getattr(customer, "email", None)
            if not email:
                raise WebhookError("Customer has no email", status_code=400)

            profile = await ProfileRepository(db).get_by_email(email)
            if profile is None:
                raise NotFoundError(f"User not found for email: {email}")

            price = subscription["items"]["data"][0]["price"]
            plan_info = plan_for_price(price["id"]) or plan_from_lookup_key(price.get("lookup_key") or "")
            plan, interval = plan_info

            await subscriptions.upsert_by_stripe_id(Subscription(
                user_id=profile.user_id,
                org_id=profile.org_id,
                stripe_customer_id=customer_id,
                stripe_subscription_id=subscription["id"],
                plan=plan,
                interval=interval,
                status=subscription["status"],
                current_period_start=_timestamp(subscription.get("current_period_start")),
                current_period_end=_timestamp(subscription.get("current_period_end")),
                cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
            ))
            logger.info("Subscription %s saved (%s/%s)", subscription["id"], plan, interval)

        elif event_type == "customer.subscription.deleted":
            subscription = event["data"]["object"]
            await subscriptions.mark_canceled(subscription["id"])
            logger.info("Subscription %s marked as canceled", subscription["id"])
