"""
Tests for deal discovery: radius, region gating, explore mode and search.
"""
import pytest
from unittest.mock import AsyncMock
from pymongo.errors import ServerSelectionTimeoutError

from dealdrop.models.user import Location
from dealdrop.services.discovery_service import DiscoveryService, matches_query
from dealdrop.services.region_gate import RegionGateService
from dealdrop.utils.geolocation import distance_km

from conftest import NOW, add_deal, add_merchant

PHOENIX_ORIGIN = Location(lat=33.45, lng=-112.07)
NEARBY = {"lat": 33.50, "lng": -112.00}
TUCSON = {"lat": 32.2226, "lng": -110.9747}
LAS_VEGAS = {"lat": 36.1699, "lng": -115.1398}


@pytest.fixture
def region_gate(db):
    return RegionGateService(db, ttl_seconds=0)


@pytest.fixture
def discovery(store, region_gate):
    return DiscoveryService(store, region_gate, default_radius_km=50)


class TestRadius:
    """Test radius filtering."""

    @pytest.mark.asyncio
    async def test_nearby_merchant_is_visible(self, db, discovery):
        merchant = await add_merchant(db, location=NEARBY)
        deal = await add_deal(db, merchant)

        deals = await discovery.find_visible_deals(origin=PHOENIX_ORIGIN, radius_km=50)

        assert [found["_id"] for found in deals] == [deal["_id"]]
        assert 0 < deals[0]["distance_km"] < 10

    @pytest.mark.asyncio
    async def test_far_merchant_is_left_out(self, db, discovery):
        merchant = await add_merchant(db, location=TUCSON)
        await add_deal(db, merchant)

        assert await discovery.find_visible_deals(origin=PHOENIX_ORIGIN, radius_km=50) == []

    @pytest.mark.asyncio
    async def test_radius_boundary_is_inclusive(self, db, discovery):
        merchant = await add_merchant(db, location=NEARBY)
        await add_deal(db, merchant)
        exact = distance_km(PHOENIX_ORIGIN, Location(**NEARBY))

        assert len(await discovery.find_visible_deals(origin=PHOENIX_ORIGIN, radius_km=exact)) == 1
        assert await discovery.find_visible_deals(origin=PHOENIX_ORIGIN, radius_km=exact - 0.01) == []

    @pytest.mark.asyncio
    async def test_default_radius(self, db, discovery):
        near = await add_merchant(db, location=NEARBY)
        far = await add_merchant(db, user_id="other", location=TUCSON)
        await add_deal(db, near)
        await add_deal(db, far)

        deals = await discovery.find_visible_deals(origin=PHOENIX_ORIGIN)

        assert [found["merchant_id"] for found in deals] == [str(near["_id"])]

    @pytest.mark.asyncio
    async def test_expired_deal_never_visible(self, db, discovery):
        merchant = await add_merchant(db, location=NEARBY)
        await add_deal(db, merchant, end_time=NOW, start_time=NOW.replace(hour=8))

        assert await discovery.find_visible_deals(origin=PHOENIX_ORIGIN) == []
        assert await discovery.find_visible_deals(origin=PHOENIX_ORIGIN, explore_mode=True) == []


class TestRegionGate:
    """Test region gating."""

    @pytest.mark.asyncio
    async def test_disabled_region_hides_everything(self, db, discovery, region_gate):
        merchant = await add_merchant(db, location=NEARBY)
        await add_deal(db, merchant)
        await region_gate.set_state("Arizona", False)

        assert await discovery.find_visible_deals(origin=PHOENIX_ORIGIN) == []

    @pytest.mark.asyncio
    async def test_explore_mode_bypasses_gate_and_radius(self, db, discovery, region_gate):
        near = await add_merchant(db, location=NEARBY)
        far = await add_merchant(db, user_id="other", location=LAS_VEGAS)
        await add_deal(db, near)
        await add_deal(db, far)
        await region_gate.set_state("Arizona", False)

        deals = await discovery.find_visible_deals(origin=PHOENIX_ORIGIN, explore_mode=True)

        assert len(deals) == 2
        assert all(deal["distance_km"] is not None for deal in deals)

    @pytest.mark.asyncio
    async def test_unknown_region_is_not_gated(self, db, discovery):
        london = {"lat": 51.5074, "lng": -0.1278}
        merchant = await add_merchant(db, location=london)
        await add_deal(db, merchant)

        deals = await discovery.find_visible_deals(origin=Location(**london))

        assert len(deals) == 1

    @pytest.mark.asyncio
    async def test_gate_outage_degrades_to_empty(self, db, store):
        merchant = await add_merchant(db, location=NEARBY)
        await add_deal(db, merchant)
        gate = AsyncMock()
        gate.is_enabled = AsyncMock(side_effect=ServerSelectionTimeoutError("no primary"))
        discovery = DiscoveryService(store, gate, default_radius_km=50)

        assert await discovery.find_visible_deals(origin=PHOENIX_ORIGIN) == []

    @pytest.mark.asyncio
    async def test_overlap_uses_first_region(self, db, discovery, region_gate):
        """Las Vegas is gated by Nevada even though it is inside the California box too."""
        merchant = await add_merchant(db, location=LAS_VEGAS)
        await add_deal(db, merchant)
        await region_gate.set_state("California", False)

        assert len(await discovery.find_visible_deals(origin=Location(**LAS_VEGAS))) == 1

        await region_gate.set_state("Nevada", False)
        assert await discovery.find_visible_deals(origin=Location(**LAS_VEGAS)) == []


class TestQuery:
    """Test text search and unfiltered listing."""

    @pytest.mark.asyncio
    async def test_no_origin_lists_every_live_deal(self, db, discovery, region_gate):
        near = await add_merchant(db, location=NEARBY)
        far = await add_merchant(db, user_id="other", location=LAS_VEGAS)
        await add_deal(db, near)
        await add_deal(db, far)
        await region_gate.set_state("Arizona", False)

        deals = await discovery.find_visible_deals()

        assert len(deals) == 2
        assert all("distance_km" not in deal for deal in deals)

    @pytest.mark.asyncio
    async def test_query_matches_deal_and_merchant_fields(self, db, discovery):
        merchant = await add_merchant(db, location=NEARBY, name="Sonoran Tacos")
        await add_deal(db, merchant, title="Taco Tuesday")
        await add_deal(db, merchant, title="Cold brew", category="drinks")

        by_title = await discovery.find_visible_deals(query="taco tue")
        by_merchant = await discovery.find_visible_deals(query="SONORAN")
        by_category = await discovery.find_visible_deals(query="drinks")

        assert [deal["title"] for deal in by_title] == ["Taco Tuesday"]
        assert len(by_merchant) == 2
        assert [deal["title"] for deal in by_category] == ["Cold brew"]

    def test_matches_query_ignores_missing_fields(self):
        deal = {"title": "Pizza", "description": None, "category": "food", "merchant": None}
        assert matches_query(deal, "pizz")
        assert not matches_query(deal, "sushi")
