import logging
from typing import List, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from dealdrop.models.claim import SavedDeal
from dealdrop.models.deal import is_live
from dealdrop.services.deal_store import DealStore

logger = logging.getLogger(__name__)


class SavedDealService:
    """Bookmarks. Independent of claims and not concurrency sensitive."""

    def __init__(self, db: AsyncIOMotorDatabase, store: DealStore):
        self.db = db
        self.store = store

    async def save(self, user_id: str, deal_id: str) -> Tuple[dict, bool]:
        """Idempotent create. Returns the bookmark and whether it was created now."""
        deal = await self.store.require_deal(deal_id)
        deal_key = str(deal["_id"])
        query = {"user_id": user_id, "deal_id": deal_key}

        existing = await self.db.saved_deals.find_one(query)
        if existing:
            return existing, False

        document = SavedDeal(user_id=user_id, deal_id=deal_key, saved_at=self.store.clock()).model_dump(exclude={"id"})
        try:
            result = await self.db.saved_deals.insert_one(document)
        except DuplicateKeyError:
            return await self.db.saved_deals.find_one(query), False

        document["_id"] = result.inserted_id
        logger.info(f"User {user_id} saved deal {deal_key}")
        return document, True

    async def unsave(self, user_id: str, deal_id: str) -> bool:
        result = await self.db.saved_deals.delete_one({"user_id": user_id, "deal_id": str(deal_id)})
        return result.deleted_count == 1

    async def list_saved(self, user_id: str) -> List[dict]:
        """Bookmarks whose deal is still live, newest first."""
        now = self.store.clock()
        saved = await self.db.saved_deals.find({"user_id": user_id}).to_list(length=None)
        saved.sort(key=lambda item: item["saved_at"], reverse=True)

        deals = await self.store.get_deals_by_ids(item["deal_id"] for item in saved)
        live = [deal for deal in deals if is_live(deal, now)]
        deals_by_id = {str(deal["_id"]): deal for deal in await self.store.attach_merchants(live, active_only=True)}

        return [
            {**item, "deal": deals_by_id[item["deal_id"]]}
            for item in saved
            if item["deal_id"] in deals_by_id
        ]
