from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from dealdrop.utils.helpers import get_current_timestamp


class RecurringInterval(str, Enum):
    """How often an expired recurring deal is reposted."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Monthly is a fixed 30-day window, not calendar aware.
RECURRENCE_THRESHOLDS = {
    RecurringInterval.DAILY: timedelta(hours=24),
    RecurringInterval.WEEKLY: timedelta(hours=7 * 24),
    RecurringInterval.MONTHLY: timedelta(hours=30 * 24),
}


class DealState(str, Enum):
    """Deal lifecycle states."""
    ACTIVE = "active"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    REPOSTED = "reposted"
    DELETED = "deleted"
    INACTIVE = "inactive"


def compute_discount_percentage(original_price: float, discounted_price: float) -> int:
    """Whole-number percentage saved."""
    return round((original_price - discounted_price) / original_price * 100)


def validate_deal_fields(
    original_price: float,
    discounted_price: float,
    start_time: datetime,
    end_time: datetime,
    is_recurring: bool,
    recurring_interval: Optional[str]
):
    """Cross-field deal invariants. Raises ValueError describing the first violation."""
    if discounted_price >= original_price:
        raise ValueError("discounted_price must be lower than original_price")
    if end_time <= start_time:
        raise ValueError("end_time must be after start_time")
    if is_recurring and not recurring_interval:
        raise ValueError("recurring_interval is required for recurring deals")
    if not is_recurring and recurring_interval:
        raise ValueError("recurring_interval is only allowed for recurring deals")


class Deal(BaseModel):
    """Deal model for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    merchant_id: str
    title: str
    description: Optional[str] = None
    original_price: float = Field(gt=0)
    discounted_price: float = Field(ge=0)
    discount_percentage: int = 0
    category: str
    start_time: datetime
    end_time: datetime
    max_redemptions: int = Field(default=100, ge=1)
    current_redemptions: int = Field(default=0, ge=0)
    is_active: bool = True
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    last_recurred_at: Optional[datetime] = None
    reposted_from: Optional[str] = None  # Template deal this instance was reposted from
    recurrence_slot: Optional[str] = None  # Unique per template; one successor per cycle
    created_at: datetime = Field(default_factory=get_current_timestamp)
    
    @model_validator(mode="after")
    def check_invariants(self):
        validate_deal_fields(
            self.original_price,
            self.discounted_price,
            self.start_time,
            self.end_time,
            self.is_recurring,
            self.recurring_interval
        )
        if self.current_redemptions > self.max_redemptions:
            raise ValueError("current_redemptions cannot exceed max_redemptions")
        self.discount_percentage = compute_discount_percentage(self.original_price, self.discounted_price)
        return self
    
    class Config:
        populate_by_name = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "merchant_id": "65a1f0c2e4b0a1b2c3d4e5f6",
                "title": "Half-price cold brew",
                "original_price": 6.0,
                "discounted_price": 3.0,
                "category": "food",
                "start_time": "2024-01-01T08:00:00",
                "end_time": "2024-01-01T12:00:00",
                "max_redemptions": 50,
                "is_recurring": True,
                "recurring_interval": "daily"
            }
        }


def is_live(deal: dict, now: datetime) -> bool:
    """A deal is live iff it is active, not yet ended and not yet exhausted."""
    return (
        bool(deal.get("is_active", True))
        and now < deal["end_time"]
        and deal.get("current_redemptions", 0) < deal.get("max_redemptions", 1)
    )


def deal_state(deal: Optional[dict], now: datetime) -> DealState:
    """
    Lifecycle state of a stored deal.
    
    Active -> Expired is purely a function of the clock. An ended deal that
    has spawned a successor is Reposted. A sold-out deal is Exhausted
    whether or not it has ended. A deal that no longer exists is Deleted.
    """
    if deal is None:
        return DealState.DELETED
    if not deal.get("is_active", True):
        return DealState.INACTIVE
    ended = now >= deal["end_time"]
    if ended and deal.get("last_recurred_at"):
        return DealState.REPOSTED
    if deal.get("current_redemptions", 0) >= deal.get("max_redemptions", 1):
        return DealState.EXHAUSTED
    if ended:
        return DealState.EXPIRED
    return DealState.ACTIVE
