from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from dealdrop.utils.helpers import get_current_timestamp


class AuditStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class AuditLog(BaseModel):
    """Audit log entry for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    user_id: str = "anonymous"
    action: str
    details: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: AuditStatus = AuditStatus.SUCCESS
    timestamp: datetime = Field(default_factory=get_current_timestamp)
    
    class Config:
        populate_by_name = True
        use_enum_values = True
