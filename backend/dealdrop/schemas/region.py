from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel


class EnabledStateUpdate(BaseModel):
    """Schema for toggling a RegionGate."""
    region: str
    is_enabled: bool


class EnabledStateResponse(BaseModel):
    """Effective gate for one known region."""
    region: str
    is_enabled: bool
    updated_at: Optional[datetime] = None


class EnabledStatesResponse(BaseModel):
    states: List[EnabledStateResponse]
