from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from dealdrop.models.user import Location
from dealdrop.utils.helpers import get_current_timestamp


class Merchant(BaseModel):
    """Merchant model for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    user_id: str
    name: str
    description: Optional[str] = None
    category: str
    location: Location
    address: str
    phone: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=get_current_timestamp)
    
    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "user_id": "user123",
                "name": "Desert Bean Coffee",
                "category": "food",
                "location": {"lat": 33.4484, "lng": -112.0740},
                "address": "100 N Central Ave, Phoenix, AZ",
                "is_active": True
            }
        }
