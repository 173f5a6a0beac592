import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from dealdrop.core.config import settings

logger = logging.getLogger(__name__)

# Global MongoDB client
_client: AsyncIOMotorClient = None
_database: AsyncIOMotorDatabase = None


async def connect_to_mongo():
    """Connect to MongoDB and make sure the indexes the engine relies on exist."""
    global _client, _database
    _client = AsyncIOMotorClient(settings.MONGODB_URI)
    _database = _client[settings.MONGODB_DB_NAME]
    await ensure_indexes(_database)
    logger.info(f"Connected to MongoDB: {settings.MONGODB_DB_NAME}")


async def close_mongo_connection():
    """Close MongoDB connection."""
    global _client
    if _client:
        _client.close()
        logger.info("Closed MongoDB connection")


def get_database() -> AsyncIOMotorDatabase:
    """Get MongoDB database instance."""
    return _database


async def ensure_indexes(db: AsyncIOMotorDatabase):
    """
    Create the indexes the redemption ledger and region gate depend on.
    
    The unique (user_id, deal_id) indexes are the authority for
    "already claimed" and "already saved" under concurrent requests.
    The unique (reposted_from, recurrence_slot) index allows one successor
    per template per recurrence cycle.
    """
    await db.deal_claims.create_index(
        [("user_id", ASCENDING), ("deal_id", ASCENDING)],
        unique=True,
        name="uniq_claim_user_deal"
    )
    await db.saved_deals.create_index(
        [("user_id", ASCENDING), ("deal_id", ASCENDING)],
        unique=True,
        name="uniq_saved_user_deal"
    )
    await db.enabled_states.create_index("region", unique=True, name="uniq_region")
    await db.deals.create_index(
        [("reposted_from", ASCENDING), ("recurrence_slot", ASCENDING)],
        unique=True,
        partialFilterExpression={"recurrence_slot": {"$type": "string"}},
        name="uniq_successor_slot"
    )
    await db.deals.create_index([("is_active", ASCENDING), ("end_time", ASCENDING)])
    await db.deals.create_index([("is_recurring", ASCENDING), ("end_time", ASCENDING)])
    await db.deals.create_index([("merchant_id", ASCENDING), ("created_at", DESCENDING)])
    await db.merchants.create_index("user_id")
    await db.audit_logs.create_index([("timestamp", DESCENDING)])
