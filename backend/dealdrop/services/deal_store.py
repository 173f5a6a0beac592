"""
Deal store: owns Merchant and Deal documents.

The redemption counter is only ever changed through the conditional
updates in this module; nothing reads the counter and writes it back.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pydantic import ValidationError

from dealdrop.core.exceptions import ConflictError, InvalidArgumentError, NotFoundError
from dealdrop.models.deal import (
    Deal,
    compute_discount_percentage,
    is_live,
    validate_deal_fields,
)
from dealdrop.models.merchant import Merchant
from dealdrop.schemas.deal import DealCreate
from dealdrop.schemas.merchant import MerchantCreate
from dealdrop.utils.helpers import get_current_timestamp, parse_object_id

logger = logging.getLogger(__name__)

PRICING_FIELDS = ("original_price", "discounted_price")


class DealStore:
    """Persistence for merchants and deals."""

    def __init__(self, db: AsyncIOMotorDatabase, clock: Callable[[], datetime] = get_current_timestamp):
        self.db = db
        self.clock = clock

    # Merchants

    async def create_merchant(self, user_id: str, data: MerchantCreate) -> dict:
        merchant = Merchant(user_id=user_id, created_at=self.clock(), **data.model_dump())
        document = merchant.model_dump(exclude={"id"})
        result = await self.db.merchants.insert_one(document)
        document["_id"] = result.inserted_id
        logger.info(f"Created merchant {result.inserted_id} for user {user_id}")
        return document

    async def get_merchant(self, merchant_id) -> Optional[dict]:
        oid = parse_object_id(merchant_id)
        if oid is None:
            return None
        return await self.db.merchants.find_one({"_id": oid})

    async def require_merchant(self, merchant_id) -> dict:
        merchant = await self.get_merchant(merchant_id)
        if not merchant:
            raise NotFoundError("Merchant not found")
        return merchant

    async def list_active_merchants(self) -> List[dict]:
        return await self.db.merchants.find({"is_active": True}).to_list(length=None)

    async def list_merchants_by_user(self, user_id: str) -> List[dict]:
        return await self.db.merchants.find({"user_id": user_id}).to_list(length=None)

    async def get_merchants_by_ids(self, merchant_ids: Iterable[str]) -> Dict[str, dict]:
        oids = [oid for oid in (parse_object_id(mid) for mid in set(merchant_ids)) if oid is not None]
        if not oids:
            return {}
        merchants = await self.db.merchants.find({"_id": {"$in": oids}}).to_list(length=None)
        return {str(merchant["_id"]): merchant for merchant in merchants}

    async def update_merchant(self, merchant_id, updates: dict) -> dict:
        merchant = await self.require_merchant(merchant_id)
        if not updates:
            return merchant
        updated = await self.db.merchants.find_one_and_update(
            {"_id": merchant["_id"]},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if not updated:
            raise NotFoundError("Merchant not found")
        return updated

    async def deactivate_merchant(self, merchant_id) -> dict:
        """Soft removal: deals keep referencing the merchant."""
        merchant = await self.update_merchant(merchant_id, {"is_active": False})
        logger.info(f"Deactivated merchant {merchant['_id']}")
        return merchant

    # Deals

    async def create_deal(self, merchant_id: str, data: DealCreate) -> dict:
        return await self.insert_deal(
            Deal(merchant_id=str(merchant_id), created_at=self.clock(), **data.model_dump())
        )

    async def insert_deal(self, deal: Deal) -> dict:
        document = deal.model_dump(exclude={"id"})
        result = await self.db.deals.insert_one(document)
        document["_id"] = result.inserted_id
        return document

    async def get_deal(self, deal_id) -> Optional[dict]:
        oid = parse_object_id(deal_id)
        if oid is None:
            return None
        return await self.db.deals.find_one({"_id": oid})

    async def get_deals_by_ids(self, deal_ids: Iterable[str]) -> List[dict]:
        oids = [oid for oid in (parse_object_id(did) for did in set(deal_ids)) if oid is not None]
        if not oids:
            return []
        return await self.db.deals.find({"_id": {"$in": oids}}).to_list(length=None)

    async def require_deal(self, deal_id) -> dict:
        deal = await self.get_deal(deal_id)
        if not deal:
            raise NotFoundError("Deal not found")
        return deal

    async def update_deal(self, deal_id, updates: dict) -> dict:
        """
        Apply a merchant edit.

        Pricing and time invariants are checked against the merged deal and
        ``max_redemptions`` is only lowered if it stays at or above the
        redemptions already taken, checked in the same conditional update.
        """
        deal = await self.require_deal(deal_id)
        updates = {
            key: value.value if isinstance(value, Enum) else value
            for key, value in updates.items()
            if value is not None
        }
        if not updates:
            return deal

        if updates.get("is_recurring") is False and "recurring_interval" not in updates:
            updates["recurring_interval"] = None

        merged = {**deal, **updates}
        try:
            validate_deal_fields(
                merged["original_price"],
                merged["discounted_price"],
                merged["start_time"],
                merged["end_time"],
                merged.get("is_recurring", False),
                merged.get("recurring_interval")
            )
        except ValueError as e:
            raise InvalidArgumentError(str(e))

        if any(field in updates for field in PRICING_FIELDS):
            updates["discount_percentage"] = compute_discount_percentage(
                merged["original_price"], merged["discounted_price"]
            )

        query = {"_id": deal["_id"]}
        if "max_redemptions" in updates:
            query["current_redemptions"] = {"$lte": updates["max_redemptions"]}

        updated = await self.db.deals.find_one_and_update(
            query,
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if not updated:
            if "max_redemptions" in updates:
                raise ConflictError("max_redemptions cannot be lower than redemptions already claimed")
            raise NotFoundError("Deal not found")
        return updated

    async def delete_deal(self, deal_id) -> bool:
        """
        Remove a deal. Claims are historical records and are kept;
        bookmarks pointing at the deal are dropped.
        """
        deal = await self.require_deal(deal_id)
        await self.db.deals.delete_one({"_id": deal["_id"]})
        await self.db.saved_deals.delete_many({"deal_id": str(deal["_id"])})
        logger.info(f"Deleted deal {deal['_id']}")
        return True

    async def attach_merchants(self, deals: List[dict], active_only: bool = False) -> List[dict]:
        """Join each deal with its merchant under the ``merchant`` key."""
        merchants = await self.get_merchants_by_ids(deal["merchant_id"] for deal in deals)
        joined = []
        for deal in deals:
            merchant = merchants.get(deal["merchant_id"])
            if active_only and (not merchant or not merchant.get("is_active", True)):
                continue
            joined.append({**deal, "merchant": merchant})
        return joined

    async def list_live_deals(self, now: Optional[datetime] = None) -> List[dict]:
        """All live deals of active merchants, newest first, with merchants attached."""
        now = now or self.clock()
        candidates = await self.db.deals.find({
            "is_active": True,
            "end_time": {"$gt": now}
        }).to_list(length=None)
        live = [deal for deal in candidates if is_live(deal, now)]
        live.sort(key=lambda deal: deal["created_at"], reverse=True)
        return await self.attach_merchants(live, active_only=True)

    async def list_deals_by_merchant(self, merchant_id: str) -> List[dict]:
        deals = await self.db.deals.find({"merchant_id": str(merchant_id)}).to_list(length=None)
        deals.sort(key=lambda deal: deal["created_at"], reverse=True)
        return deals

    async def list_expired_deals(
        self,
        now: Optional[datetime] = None,
        merchant_id: Optional[str] = None,
        recurring_only: bool = False
    ) -> List[dict]:
        """Active deals whose end time has passed, latest end first."""
        now = now or self.clock()
        query = {"is_active": True, "end_time": {"$lte": now}}
        if merchant_id is not None:
            query["merchant_id"] = str(merchant_id)
        if recurring_only:
            query["is_recurring"] = True
        deals = await self.db.deals.find(query).to_list(length=None)
        deals.sort(key=lambda deal: deal["end_time"], reverse=True)
        return deals

    # Redemption counter

    async def try_increment_redemptions(self, deal: dict, now: datetime) -> bool:
        """
        Take one redemption slot in a single conditional update.

        The filter pins ``max_redemptions`` to the value the caller saw, so a
        concurrent edit of the ceiling makes the update miss instead of
        racing it. Returns False when no slot was taken.
        """
        result = await self.db.deals.update_one(
            {
                "_id": deal["_id"],
                "is_active": True,
                "end_time": {"$gt": now},
                "max_redemptions": deal["max_redemptions"],
                "current_redemptions": {"$lt": deal["max_redemptions"]}
            },
            {"$inc": {"current_redemptions": 1}}
        )
        return result.modified_count == 1

    async def release_redemption(self, deal_id) -> bool:
        """Give a slot back. Never takes the counter below zero."""
        oid = parse_object_id(deal_id)
        result = await self.db.deals.update_one(
            {"_id": oid, "current_redemptions": {"$gt": 0}},
            {"$inc": {"current_redemptions": -1}}
        )
        return result.modified_count == 1

    # Recurrence markers

    async def mark_recurred(self, deal_id, previous: Optional[datetime], at: datetime) -> bool:
        """
        Compare-and-set ``last_recurred_at`` from ``previous`` to ``at``.

        Only one of several concurrent reposts of the same deal wins.
        """
        result = await self.db.deals.update_one(
            {"_id": parse_object_id(deal_id), "last_recurred_at": previous},
            {"$set": {"last_recurred_at": at}}
        )
        return result.modified_count == 1

    async def get_successor(self, template_id, slot: str) -> Optional[dict]:
        return await self.db.deals.find_one({"reposted_from": str(template_id), "recurrence_slot": slot})

    def build_successor(self, template: dict, start_time: datetime, end_time: datetime, slot: str) -> Deal:
        """A fresh, non-recurring copy of ``template`` with its own redemption pool."""
        try:
            return Deal(
                merchant_id=template["merchant_id"],
                title=template["title"],
                description=template.get("description"),
                original_price=template["original_price"],
                discounted_price=template["discounted_price"],
                category=template["category"],
                start_time=start_time,
                end_time=end_time,
                max_redemptions=template["max_redemptions"],
                current_redemptions=0,
                is_active=True,
                is_recurring=False,
                recurring_interval=None,
                reposted_from=str(template["_id"]),
                recurrence_slot=slot,
                created_at=self.clock()
            )
        except ValidationError as e:
            raise InvalidArgumentError(f"Cannot repost deal: {e.errors()[0]['msg']}")
