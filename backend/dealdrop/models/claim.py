from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from dealdrop.utils.helpers import get_current_timestamp


class ClaimStatus(str, Enum):
    CLAIMED = "claimed"


class Claim(BaseModel):
    """
    A user's one-time redemption of a deal. Never mutated.
    
    Kept as history once the deal has ended or been removed; only a claim
    withdrawn while its deal is still running is deleted.
    """
    id: Optional[str] = Field(None, alias="_id")
    user_id: str
    deal_id: str
    claimed_at: datetime = Field(default_factory=get_current_timestamp)
    status: ClaimStatus = ClaimStatus.CLAIMED
    
    class Config:
        populate_by_name = True
        use_enum_values = True


class SavedDeal(BaseModel):
    """A bookmark, independent of claims."""
    id: Optional[str] = Field(None, alias="_id")
    user_id: str
    deal_id: str
    saved_at: datetime = Field(default_factory=get_current_timestamp)
    
    class Config:
        populate_by_name = True
        use_enum_values = True
