from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field
from dealdrop.models.user import Location


class MerchantCreate(BaseModel):
    """Schema for creating a merchant."""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    category: str
    location: Location
    address: str
    phone: Optional[str] = None


class MerchantUpdate(BaseModel):
    """Schema for updating a merchant."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    location: Optional[Location] = None
    address: Optional[str] = None
    phone: Optional[str] = None


class MerchantResponse(BaseModel):
    """Schema for merchant response."""
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    category: str
    location: Location
    address: str
    phone: Optional[str] = None
    is_active: bool
    created_at: datetime
    
    class Config:
        from_attributes = True
