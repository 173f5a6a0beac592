"""
Deal lifecycle: state reporting and reposting.

A deal is never revived in place. Reposting writes a new deal with an
empty redemption pool and stamps ``last_recurred_at`` on the original,
which is otherwise left untouched as history.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from pymongo.errors import DuplicateKeyError

from dealdrop.core.config import settings
from dealdrop.core.exceptions import ConflictError, InvalidArgumentError
from dealdrop.models.deal import RECURRENCE_THRESHOLDS, DealState, RecurringInterval, deal_state
from dealdrop.services.deal_store import DealStore

logger = logging.getLogger(__name__)


def recurrence_threshold(interval) -> timedelta:
    try:
        return RECURRENCE_THRESHOLDS[RecurringInterval(interval)]
    except ValueError:
        raise InvalidArgumentError(f"Invalid recurring interval: {interval}")


def recurrence_slot(last_recurred_at: Optional[datetime]) -> str:
    """Key of the current recurrence cycle: the previous repost time, or 'initial'."""
    return last_recurred_at.isoformat() if last_recurred_at else "initial"


class DealLifecycle:
    """State machine over stored deals."""

    def __init__(self, store: DealStore, repost_duration: timedelta = timedelta(hours=settings.REPOST_DURATION_HOURS)):
        self.store = store
        self.repost_duration = repost_duration

    def state_of(self, deal: Optional[dict], now: Optional[datetime] = None) -> DealState:
        return deal_state(deal, now or self.store.clock())

    @staticmethod
    def repost_due(deal: dict, now: datetime) -> bool:
        """
        True when an ended recurring deal has waited a full interval since
        its last repost (or since creation if it was never reposted).
        """
        if not deal.get("is_recurring") or not deal.get("is_active", True):
            return False
        if now < deal["end_time"]:
            return False
        threshold = recurrence_threshold(deal.get("recurring_interval"))
        elapsed = now - (deal.get("last_recurred_at") or deal["created_at"])
        return elapsed >= threshold

    async def repost(self, deal: dict, start_time: datetime, end_time: datetime, now: Optional[datetime] = None) -> Optional[dict]:
        """
        Create the successor of ``deal``.

        The successor is written first under the template's current
        recurrence slot, then ``last_recurred_at`` is moved on. A second
        repost in the same cycle hits the unique slot index and returns None.
        If the marker write is lost after the insert, the next attempt finds
        the slot taken and only catches the marker up.
        """
        now = now or self.store.clock()
        previous = deal.get("last_recurred_at")
        slot = recurrence_slot(previous)
        successor = self.store.build_successor(deal, start_time, end_time, slot)

        try:
            created = await self.store.insert_deal(successor)
        except DuplicateKeyError:
            existing = await self.store.get_successor(deal["_id"], slot)
            reposted_at = existing["created_at"] if existing else now
            if await self.store.mark_recurred(deal["_id"], previous, reposted_at):
                logger.warning(f"Deal {deal['_id']} had a successor for slot {slot} but no marker; marker restored")
            else:
                logger.info(f"Deal {deal['_id']} was already reposted concurrently")
            return None

        await self.store.mark_recurred(deal["_id"], previous, now)
        logger.info(f"Reposted deal {deal['_id']} as {created['_id']} ({start_time} - {end_time})")
        return created

    async def auto_repost(self, deal: dict, now: datetime) -> Optional[dict]:
        """Scheduled repost: always a fresh instance of ``repost_duration`` starting now."""
        return await self.repost(deal, now, now + self.repost_duration, now)

    async def manual_repost(self, deal_id: str, start_time: datetime, end_time: datetime) -> dict:
        """Owner-triggered repost of an ended deal with a caller-chosen window."""
        now = self.store.clock()
        deal = await self.store.require_deal(deal_id)
        if deal.get("is_active", True) and now < deal["end_time"]:
            raise ConflictError("Only ended deals can be reposted")

        created = await self.repost(deal, start_time, end_time, now)
        if created is None:
            raise ConflictError("Deal is already being reposted")
        return created
