from typing import Optional
from datetime import datetime
from pydantic import BaseModel

from dealdrop.models.deal import DealState
from dealdrop.schemas.deal import DealResponse


class ClaimResponse(BaseModel):
    """Schema for claim response."""
    id: str
    user_id: str
    deal_id: str
    claimed_at: datetime
    status: str
    deal: Optional[DealResponse] = None
    deal_state: DealState  # "deleted" once the deal is gone


class SavedDealResponse(BaseModel):
    """Schema for saved deal response."""
    id: str
    user_id: str
    deal_id: str
    saved_at: datetime
    deal: Optional[DealResponse] = None
