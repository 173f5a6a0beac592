"""
RegionGate: one owned configuration record per region saying whether
discovery is open there.

Reads are cached for at most ``ttl_seconds``; writes go straight to the
store and drop the cache of the instance that made them.
"""
import logging
import time
from typing import Callable, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from dealdrop.core.config import settings
from dealdrop.core.exceptions import InvalidArgumentError
from dealdrop.models.region import EnabledState
from dealdrop.utils.geolocation import KNOWN_REGIONS
from dealdrop.utils.helpers import get_current_timestamp

logger = logging.getLogger(__name__)


class RegionGateService:
    """Read/write interface over the ``enabled_states`` collection."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        ttl_seconds: float = settings.REGION_GATE_CACHE_TTL_SECONDS,
        default_enabled: bool = settings.REGION_DEFAULT_ENABLED,
        timer: Callable[[], float] = time.monotonic
    ):
        self.db = db
        self.ttl_seconds = ttl_seconds
        self.default_enabled = default_enabled
        self.timer = timer
        self._cache: Optional[Dict[str, dict]] = None
        self._loaded_at = 0.0

    def invalidate(self):
        self._cache = None

    async def _rows(self) -> Dict[str, dict]:
        if self._cache is not None and self.timer() - self._loaded_at < self.ttl_seconds:
            return self._cache
        rows = await self.db.enabled_states.find({}).to_list(length=None)
        self._cache = {row["region"]: row for row in rows}
        self._loaded_at = self.timer()
        return self._cache

    async def is_enabled(self, region: str) -> bool:
        row = (await self._rows()).get(region)
        if row is None:
            return self.default_enabled
        return bool(row.get("is_enabled"))

    async def list_states(self) -> List[dict]:
        """Effective gate for every known region, in region table order."""
        rows = await self._rows()
        states = []
        for region in KNOWN_REGIONS:
            row = rows.get(region)
            states.append({
                "region": region,
                "is_enabled": bool(row["is_enabled"]) if row else self.default_enabled,
                "updated_at": row.get("updated_at") if row else None
            })
        return states

    async def set_state(self, region: str, is_enabled: bool, actor_id: Optional[str] = None) -> dict:
        if region not in KNOWN_REGIONS:
            raise InvalidArgumentError(f"Unknown region: {region}")

        state = EnabledState(
            region=region,
            is_enabled=is_enabled,
            updated_by=actor_id,
            updated_at=get_current_timestamp()
        )
        row = await self.db.enabled_states.find_one_and_update(
            {"region": region},
            {"$set": state.model_dump(exclude={"id"})},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        self.invalidate()
        logger.info(f"Region {region} {'enabled' if is_enabled else 'disabled'} by {actor_id or 'system'}")
        return row
