"""
Discovery: which live deals a requester can see.

Order of filters: text query first, then explore mode short-circuits,
then the region gate, then the radius. Results keep the store's order
(newest first).
"""
import logging
from typing import List, Optional

from pymongo.errors import PyMongoError

from dealdrop.core.config import settings
from dealdrop.models.user import Location
from dealdrop.services.deal_store import DealStore
from dealdrop.services.region_gate import RegionGateService
from dealdrop.utils.geolocation import distance_km, is_within_radius, region_of

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("title", "description", "category")
MERCHANT_SEARCH_FIELDS = ("name", "address")


def matches_query(deal: dict, query: str) -> bool:
    """Case-insensitive substring match on deal and merchant text fields."""
    needle = query.lower()
    merchant = deal.get("merchant") or {}
    haystacks = [deal.get(field) for field in SEARCH_FIELDS]
    haystacks += [merchant.get(field) for field in MERCHANT_SEARCH_FIELDS]
    return any(needle in value.lower() for value in haystacks if value)


def merchant_point(deal: dict) -> Optional[Location]:
    location = (deal.get("merchant") or {}).get("location")
    if not location:
        return None
    return Location(**location)


class DiscoveryService:
    """Composes the deal store, region gate and geo index."""

    def __init__(
        self,
        store: DealStore,
        region_gate: RegionGateService,
        default_radius_km: float = settings.DEFAULT_SEARCH_RADIUS_KM
    ):
        self.store = store
        self.region_gate = region_gate
        self.default_radius_km = default_radius_km

    async def find_visible_deals(
        self,
        origin: Optional[Location] = None,
        radius_km: Optional[float] = None,
        explore_mode: bool = False,
        query: Optional[str] = None
    ) -> List[dict]:
        """
        Live deals visible to a requester.

        Args:
            origin: Requester location, if known
            radius_km: Search radius (boundary inclusive), defaults to the configured radius
            explore_mode: Skip region gating and radius filtering
            query: Optional free-text filter

        Returns:
            Deals with ``merchant`` attached, plus ``distance_km`` when an origin is given.
            An empty list when the origin's region is disabled.
        """
        radius_km = self.default_radius_km if radius_km is None else radius_km
        deals = await self.store.list_live_deals()

        if query and query.strip():
            deals = [deal for deal in deals if matches_query(deal, query.strip())]

        if origin is None:
            return deals

        with_distance = []
        for deal in deals:
            point = merchant_point(deal)
            distance = distance_km(origin, point) if point else None
            with_distance.append({**deal, "distance_km": distance})

        if explore_mode:
            return with_distance

        match = region_of(origin)
        if match.is_known:
            if match.is_ambiguous:
                logger.debug(f"Origin {origin.lat},{origin.lng} matches {match.candidates}, using {match.region}")
            try:
                enabled = await self.region_gate.is_enabled(match.region)
            except PyMongoError as e:
                logger.warning(f"Region gate unavailable, returning no deals: {e}")
                return []
            if not enabled:
                return []

        visible = []
        for deal in with_distance:
            point = merchant_point(deal)
            if point and is_within_radius(origin, point, radius_km):
                visible.append(deal)
        return visible
