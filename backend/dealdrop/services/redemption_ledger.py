"""
Redemption ledger: at most one claim per user per deal, never more claims
than a deal's ``max_redemptions``.

Claim ordering:
    1. load the deal and fail fast if it is missing, not live, or already
       claimed by this user (no side effects);
    2. take a slot with the store's atomic conditional increment;
    3. insert the claim, guarded by the unique (user_id, deal_id) index.
If step 3 fails for any reason the slot taken in step 2 is given back, so
the counter never keeps a redemption without a matching claim.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, DuplicateKeyError, ExecutionTimeout

from dealdrop.core.exceptions import (
    AlreadyClaimedError,
    ConflictError,
    DealExhaustedError,
    DealInactiveError,
    TransientError,
)
from dealdrop.models.claim import Claim
from dealdrop.services.deal_store import DealStore

logger = logging.getLogger(__name__)

CLAIM_VIEWS = ("all", "active", "archived")


class RedemptionLedger:
    """Claims and the redemption counter they drive."""

    # Attempts at the conditional increment when the ceiling is edited concurrently
    MAX_INCREMENT_ATTEMPTS = 3

    def __init__(self, db: AsyncIOMotorDatabase, store: DealStore, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.store = store
        self.clock = clock or store.clock

    async def claim(self, user_id: str, deal_id: str) -> dict:
        """
        Claim a deal for ``user_id``.

        Raises:
            NotFoundError: the deal does not exist
            DealInactiveError: the deal is switched off, ended, or its merchant is inactive
            AlreadyClaimedError: this user already holds a claim on the deal
            DealExhaustedError: no redemption slot is left
            TransientError: the store is unreachable
        """
        try:
            return await self._claim(user_id, deal_id)
        except (ConnectionFailure, ExecutionTimeout) as e:
            logger.warning(f"Store unavailable while claiming deal {deal_id}: {e}")
            raise TransientError()

    async def _claim(self, user_id: str, deal_id: str) -> dict:
        now = self.clock()
        deal = await self.store.require_deal(deal_id)
        merchant = await self.store.get_merchant(deal["merchant_id"])
        if not merchant or not merchant.get("is_active", True):
            raise DealInactiveError()
        self._check_claimable(deal, now)

        deal_key = str(deal["_id"])
        existing = await self.db.deal_claims.find_one({"user_id": user_id, "deal_id": deal_key})
        if existing:
            raise AlreadyClaimedError()

        await self._take_slot(deal, now)

        document = Claim(user_id=user_id, deal_id=deal_key, claimed_at=now).model_dump(exclude={"id"})
        try:
            result = await self.db.deal_claims.insert_one(document)
        except DuplicateKeyError:
            await self._give_back_slot(deal_key)
            logger.info(f"Concurrent duplicate claim by {user_id} on deal {deal_key} rejected")
            raise AlreadyClaimedError()
        except Exception:
            await self._give_back_slot(deal_key)
            raise

        document["_id"] = result.inserted_id
        logger.info(f"User {user_id} claimed deal {deal_key}")
        return document

    @staticmethod
    def _check_claimable(deal: dict, now: datetime):
        if not deal.get("is_active", True) or now >= deal["end_time"]:
            raise DealInactiveError()
        if deal.get("current_redemptions", 0) >= deal["max_redemptions"]:
            raise DealExhaustedError()

    async def _take_slot(self, deal: dict, now: datetime):
        for _ in range(self.MAX_INCREMENT_ATTEMPTS):
            if await self.store.try_increment_redemptions(deal, now):
                return
            # Missed: the deal ran out, ended, or its ceiling changed under us.
            deal = await self.store.require_deal(deal["_id"])
            self._check_claimable(deal, now)
        raise DealExhaustedError()

    async def _give_back_slot(self, deal_key: str):
        try:
            await self.store.release_redemption(deal_key)
        except Exception as e:
            logger.error(f"Failed to release redemption slot on deal {deal_key}: {e}", exc_info=True)

    async def unclaim(self, user_id: str, deal_id: str) -> bool:
        """
        Withdraw a claim and return its slot to the pool.

        Idempotent: returns False when there was nothing to withdraw. Claims on
        deals that have ended or were removed are history and stay put.
        """
        now = self.clock()
        deal = await self.store.get_deal(deal_id)
        deal_key = str(deal["_id"]) if deal else str(deal_id)

        claim = await self.db.deal_claims.find_one({"user_id": user_id, "deal_id": deal_key})
        if not claim:
            return False
        if not deal or not deal.get("is_active", True) or now >= deal["end_time"]:
            raise ConflictError("Claims on ended deals are kept as history")

        result = await self.db.deal_claims.delete_one({"_id": claim["_id"]})
        if result.deleted_count != 1:
            return False
        await self.store.release_redemption(deal_key)
        logger.info(f"User {user_id} withdrew claim on deal {deal_key}")
        return True

    async def list_claims(self, user_id: str, view: str = "all") -> List[dict]:
        """
        Claims of ``user_id``, newest first, each with its deal under ``deal``.

        ``view`` is ``active`` (deal still running), ``archived`` (deal ended or
        deleted) or ``all``. Deleted deals show up as ``deal: None``.
        """
        now = self.clock()
        claims = await self.db.deal_claims.find({"user_id": user_id}).to_list(length=None)
        claims.sort(key=lambda claim: claim["claimed_at"], reverse=True)

        deals = await self.store.get_deals_by_ids(claim["deal_id"] for claim in claims)
        deals_by_id = {str(deal["_id"]): deal for deal in await self.store.attach_merchants(deals)}

        results = []
        for claim in claims:
            deal = deals_by_id.get(claim["deal_id"])
            running = bool(deal) and deal.get("is_active", True) and now < deal["end_time"]
            if view == "active" and not running:
                continue
            if view == "archived" and running:
                continue
            results.append({**claim, "deal": deal})
        return results
