from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from dealdrop.utils.helpers import get_current_timestamp


class EnabledState(BaseModel):
    """RegionGate row: whether discovery is open in a named region."""
    id: Optional[str] = Field(None, alias="_id")
    region: str
    is_enabled: bool = False
    updated_by: Optional[str] = None
    updated_at: datetime = Field(default_factory=get_current_timestamp)
    
    class Config:
        populate_by_name = True
