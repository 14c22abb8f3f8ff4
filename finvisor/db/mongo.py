import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from finvisor.core.config import settings

logger = logging.getLogger(__name__)

# Collections watched by the change feed
WATCHED_COLLECTIONS = ("receipts", "clients", "team_members")


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    await create_indexes()
    await enable_pre_images()
    logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
    logger.info("Disconnected from MongoDB")

async def create_indexes():
    """Create database indexes."""
    # Receipt list ordering and filters
    await mongodb.db["receipts"].create_index(
        [("processed_at", DESCENDING), ("created_at", DESCENDING)]
    )
    await mongodb.db["receipts"].create_index([("org_id", ASCENDING), ("client_id", ASCENDING)])
    await mongodb.db["receipts"].create_index("processed_by")

    await mongodb.db["clients"].create_index("org_id")
    await mongodb.db["team_members"].create_index("org_id")

    await mongodb.db["profiles"].create_index("user_id", unique=True)
    await mongodb.db["profiles"].create_index("email")
    await mongodb.db["subscriptions"].create_index("stripe_subscription_id", unique=True)

async def enable_pre_images():
    """Record pre-images so update and delete events carry the old document."""
    for name in WATCHED_COLLECTIONS:
        try:
            await mongodb.db.command(
                {"collMod": name, "changeStreamPreAndPostImages": {"enabled": True}}
            )
        except OperationFailure as e:
            # Standalone servers and collections not created yet
            logger.warning("Pre-images unavailable for %s: %s", name, e)

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
