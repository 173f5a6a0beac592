"""
Tests for the redemption ledger: claim ordering, uniqueness and the
redemption ceiling under concurrent claims.
"""
import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock
from bson import ObjectId
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from dealdrop.core.exceptions import (
    AlreadyClaimedError,
    ConflictError,
    DealExhaustedError,
    DealInactiveError,
    NotFoundError,
    TransientError,
)
from dealdrop.services.redemption_ledger import RedemptionLedger

from conftest import NOW, add_deal, add_merchant


@pytest.fixture
def ledger(db, store):
    return RedemptionLedger(db, store)


async def stored_counter(store, deal) -> int:
    return (await store.get_deal(deal["_id"]))["current_redemptions"]


class TestClaim:
    """Test single claims."""

    @pytest.mark.asyncio
    async def test_claim_takes_one_slot(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant, max_redemptions=50, current_redemptions=49)

        claim = await ledger.claim("user_1", str(deal["_id"]))

        assert claim["user_id"] == "user_1"
        assert claim["deal_id"] == str(deal["_id"])
        assert claim["claimed_at"] == NOW
        assert claim["status"] == "claimed"
        assert await stored_counter(store, deal) == 50

    @pytest.mark.asyncio
    async def test_last_slot_then_exhausted(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant, max_redemptions=50, current_redemptions=49)

        await ledger.claim("user_1", str(deal["_id"]))
        with pytest.raises(DealExhaustedError):
            await ledger.claim("user_2", str(deal["_id"]))

        assert await stored_counter(store, deal) == 50
        assert await db.deal_claims.count_documents({}) == 1

    @pytest.mark.asyncio
    async def test_second_claim_by_same_user(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant)

        await ledger.claim("user_1", str(deal["_id"]))
        with pytest.raises(AlreadyClaimedError):
            await ledger.claim("user_1", str(deal["_id"]))

        assert await stored_counter(store, deal) == 1

    @pytest.mark.asyncio
    async def test_unknown_deal(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.claim("user_1", str(ObjectId()))

    @pytest.mark.asyncio
    async def test_ended_deal_is_inactive(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant, start_time=NOW - timedelta(hours=2), end_time=NOW)

        with pytest.raises(DealInactiveError):
            await ledger.claim("user_1", str(deal["_id"]))
        assert await stored_counter(store, deal) == 0

    @pytest.mark.asyncio
    async def test_switched_off_deal_is_inactive(self, db, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant, is_active=False)

        with pytest.raises(DealInactiveError):
            await ledger.claim("user_1", str(deal["_id"]))

    @pytest.mark.asyncio
    async def test_deactivated_merchant_is_inactive(self, db, ledger):
        merchant = await add_merchant(db, is_active=False)
        deal = await add_deal(db, merchant)

        with pytest.raises(DealInactiveError):
            await ledger.claim("user_1", str(deal["_id"]))

    @pytest.mark.asyncio
    async def test_insert_race_gives_slot_back(self, db, store, ledger):
        """The unique index rejects the insert after the pre-check passed."""
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant)
        ledger.db = AsyncMock()
        ledger.db.deal_claims.find_one = AsyncMock(return_value=None)
        ledger.db.deal_claims.insert_one = AsyncMock(side_effect=DuplicateKeyError("dup"))

        with pytest.raises(AlreadyClaimedError):
            await ledger.claim("user_1", str(deal["_id"]))

        assert await stored_counter(store, deal) == 0

    @pytest.mark.asyncio
    async def test_store_outage_is_transient(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant)
        ledger.db = AsyncMock()
        ledger.db.deal_claims.find_one = AsyncMock(side_effect=ConnectionFailure("down"))

        with pytest.raises(TransientError):
            await ledger.claim("user_1", str(deal["_id"]))

        assert await stored_counter(store, deal) == 0

    @pytest.mark.asyncio
    async def test_failed_insert_gives_slot_back(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant)
        ledger.db = AsyncMock()
        ledger.db.deal_claims.find_one = AsyncMock(return_value=None)
        ledger.db.deal_claims.insert_one = AsyncMock(side_effect=RuntimeError("write failed"))

        with pytest.raises(RuntimeError):
            await ledger.claim("user_1", str(deal["_id"]))

        assert await stored_counter(store, deal) == 0


class TestConcurrentClaims:
    """Test the ceiling and uniqueness under concurrency."""

    @pytest.mark.asyncio
    async def test_ceiling_holds_under_contention(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant, max_redemptions=5)

        results = await asyncio.gather(
            *[ledger.claim(f"user_{i}", str(deal["_id"])) for i in range(20)],
            return_exceptions=True
        )

        claims = [result for result in results if isinstance(result, dict)]
        failures = [result for result in results if isinstance(result, Exception)]
        assert len(claims) == 5
        assert all(isinstance(failure, DealExhaustedError) for failure in failures)
        assert await stored_counter(store, deal) == 5
        assert await db.deal_claims.count_documents({"deal_id": str(deal["_id"])}) == 5

    @pytest.mark.asyncio
    async def test_two_claims_for_last_slot(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant, max_redemptions=50, current_redemptions=49)

        results = await asyncio.gather(
            ledger.claim("user_1", str(deal["_id"])),
            ledger.claim("user_2", str(deal["_id"])),
            return_exceptions=True
        )

        assert sum(isinstance(result, dict) for result in results) == 1
        assert sum(isinstance(result, DealExhaustedError) for result in results) == 1
        assert await stored_counter(store, deal) == 50

    @pytest.mark.asyncio
    async def test_same_user_racing_itself(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant)

        results = await asyncio.gather(
            *[ledger.claim("user_1", str(deal["_id"])) for _ in range(5)],
            return_exceptions=True
        )

        assert sum(isinstance(result, dict) for result in results) == 1
        assert sum(isinstance(result, AlreadyClaimedError) for result in results) == 4
        assert await stored_counter(store, deal) == 1


class TestUnclaim:
    """Test withdrawing claims."""

    @pytest.mark.asyncio
    async def test_unclaim_returns_slot(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant)
        await ledger.claim("user_1", str(deal["_id"]))

        assert await ledger.unclaim("user_1", str(deal["_id"])) is True
        assert await stored_counter(store, deal) == 0
        assert await ledger.unclaim("user_1", str(deal["_id"])) is False

    @pytest.mark.asyncio
    async def test_claims_on_ended_deals_are_kept(self, db, store, clock, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant)
        await ledger.claim("user_1", str(deal["_id"]))
        clock.advance(days=1)

        with pytest.raises(ConflictError):
            await ledger.unclaim("user_1", str(deal["_id"]))
        assert await db.deal_claims.count_documents({}) == 1

    @pytest.mark.asyncio
    async def test_claims_on_deleted_deals_are_kept(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant)
        await ledger.claim("user_1", str(deal["_id"]))
        await store.delete_deal(str(deal["_id"]))

        with pytest.raises(ConflictError):
            await ledger.unclaim("user_1", str(deal["_id"]))
        assert await db.deal_claims.count_documents({"user_id": "user_1"}) == 1

    @pytest.mark.asyncio
    async def test_withdrawn_claim_can_be_taken_again(self, db, store, ledger):
        merchant = await add_merchant(db)
        deal = await add_deal(db, merchant, max_redemptions=1)
        await ledger.claim("user_1", str(deal["_id"]))
        await ledger.unclaim("user_1", str(deal["_id"]))

        claim = await ledger.claim("user_2", str(deal["_id"]))

        assert claim["user_id"] == "user_2"
        assert await db.deal_claims.count_documents({}) == 1
        assert await stored_counter(store, deal) == 1


class TestListClaims:
    """Test claim history views."""

    @pytest.mark.asyncio
    async def test_views(self, db, store, clock, ledger):
        merchant = await add_merchant(db)
        running = await add_deal(db, merchant, title="running", end_time=NOW + timedelta(days=2))
        ending = await add_deal(db, merchant, title="ending")
        removed = await add_deal(db, merchant, title="removed")
        for deal in (ending, removed, running):
            await ledger.claim("user_1", str(deal["_id"]))
            clock.advance(minutes=1)
        await store.delete_deal(str(removed["_id"]))
        clock.advance(days=1)

        everything = await ledger.list_claims("user_1")
        active = await ledger.list_claims("user_1", "active")
        archived = await ledger.list_claims("user_1", "archived")

        assert [claim["deal_id"] for claim in everything] == [
            str(running["_id"]), str(removed["_id"]), str(ending["_id"])
        ]
        assert [claim["deal_id"] for claim in active] == [str(running["_id"])]
        assert {claim["deal_id"] for claim in archived} == {str(removed["_id"]), str(ending["_id"])}
        assert next(claim for claim in everything if claim["deal_id"] == str(removed["_id"]))["deal"] is None
        assert active[0]["deal"]["merchant"]["_id"] == merchant["_id"]
