from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator, model_validator

from dealdrop.models.deal import RecurringInterval, DealState, validate_deal_fields
from dealdrop.schemas.merchant import MerchantResponse
from dealdrop.utils.helpers import to_naive_utc


class DealWindowInput(BaseModel):
    """Incoming deal windows are stored as naive UTC, like every other timestamp."""
    
    @field_validator("start_time", "end_time", mode="after", check_fields=False)
    @classmethod
    def normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class DealCreate(DealWindowInput):
    """Schema for creating a deal."""
    title: str = Field(min_length=1)
    description: Optional[str] = None
    original_price: float = Field(gt=0)
    discounted_price: float = Field(ge=0)
    category: str
    start_time: datetime
    end_time: datetime
    max_redemptions: int = Field(default=100, ge=1)
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    
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
        return self
    
    class Config:
        json_schema_extra = {
            "example": {
                "title": "Half-price cold brew",
                "description": "Any size, all morning",
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


class DealUpdate(DealWindowInput):
    """Schema for a merchant edit. Cross-field checks run against the merged deal."""
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    original_price: Optional[float] = Field(None, gt=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    max_redemptions: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    is_recurring: Optional[bool] = None
    recurring_interval: Optional[RecurringInterval] = None


class RepostRequest(DealWindowInput):
    """Manual repost window supplied by the owning merchant."""
    start_time: datetime
    end_time: datetime
    
    @model_validator(mode="after")
    def check_window(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class DealResponse(BaseModel):
    """Schema for deal response."""
    id: str
    merchant_id: str
    title: str
    description: Optional[str] = None
    original_price: float
    discounted_price: float
    discount_percentage: int
    category: str
    start_time: datetime
    end_time: datetime
    max_redemptions: int
    current_redemptions: int
    is_active: bool
    is_recurring: bool
    recurring_interval: Optional[RecurringInterval] = None
    last_recurred_at: Optional[datetime] = None
    reposted_from: Optional[str] = None
    state: DealState
    created_at: datetime
    merchant: Optional[MerchantResponse] = None
    distance_km: Optional[float] = None
    
    class Config:
        from_attributes = True


class ProcessRecurringResponse(BaseModel):
    """Summary of one recurrence sweep."""
    processed: int
    examined: int
    failed: int
