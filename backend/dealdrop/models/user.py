from enum import Enum
from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """User role enumeration (claimed by the external auth service)."""
    CUSTOMER = "customer"
    MERCHANT = "merchant"
    SUPER_MERCHANT = "super_merchant"


MERCHANT_ROLES = (UserRole.MERCHANT.value, UserRole.SUPER_MERCHANT.value)


class Location(BaseModel):
    """Geographic location model."""
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
