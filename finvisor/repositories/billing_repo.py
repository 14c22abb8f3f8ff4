from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from finvisor.models.billing import Profile, Subscription
from finvisor.utils.safe_query import safe_query


class ProfileRepository:
    """User profile and receipt credit operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["profiles"]

    async def get_by_user_id(self, user_id: str) -> Optional[Profile]:
        doc = await safe_query(
            self.collection.find_one({"user_id": user_id}),
            context="profiles.get"
        )
        if doc:
            return Profile(**doc)
        return None

    async def get_org_id(self, user_id: str) -> Optional[str]:
        """Organisation of a user: membership first, then the profile."""
        member = await safe_query(
            self.db["org_members"].find_one({"user_id": user_id}, {"org_id": 1}),
            context="org_members.get"
        )
        if member and member.get("org_id"):
            return str(member["org_id"])
        profile = await self.get_by_user_id(user_id)
        return profile.org_id if profile else None

    async def get_by_email(self, email: str) -> Optional[Profile]:
        doc = await safe_query(
            self.collection.find_one({"email": email}),
            context="profiles.get_by_email"
        )
        if doc:
            return Profile(**doc)
        return None

    async def decrement_credits(self, user_id: str) -> Optional[int]:
        """
        Take one receipt credit.

        Returns the remaining credits, or None when the profile has none left
        (or does not exist). The check and the decrement are one atomic update.
        """
        doc = await safe_query(
            self.collection.find_one_and_update(
                {"user_id": user_id, "receipts_credits": {"$gt": 0}},
                {"$inc": {"receipts_credits": -1}},
                projection={"receipts_credits": 1},
                return_document=ReturnDocument.AFTER
            ),
            context="profiles.decrement_credits"
        )
        if doc is None:
            return None
        return doc.get("receipts_credits", 0)


class SubscriptionRepository:
    """Subscription rows mirrored from the payment provider."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["subscriptions"]

    async def upsert_by_stripe_id(self, subscription: Subscription) -> None:
        data = subscription.model_dump()
        await safe_query(
            self.collection.update_one(
                {"stripe_subscription_id": subscription.stripe_subscription_id},
                {"$set": data},
                upsert=True
            ),
            context="subscriptions.upsert"
        )

    async def mark_canceled(self, stripe_subscription_id: str) -> bool:
        result = await safe_query(
            self.collection.update_one(
                {"stripe_subscription_id": stripe_subscription_id},
                {"$set": {"status": "canceled", "updated_at": datetime.now(timezone.utc)}}
            ),
            context="subscriptions.cancel"
        )
        return result.matched_count > 0

    async def get_active(self, user_id: str) -> Optional[Subscription]:
        doc = await safe_query(
            self.collection.find_one(
                {"user_id": user_id, "status": {"$in": ["active", "trialing"]}},
                sort=[("current_period_end", -1)]
            ),
            context="subscriptions.get_active"
        )
        if doc:
            return Subscription(**doc)
        return None
