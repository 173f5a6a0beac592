from typing import Optional
from datetime import datetime
from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: str
    action: str
    details: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: str
    timestamp: datetime


class AuditStatsResponse(BaseModel):
    total_actors: int
    actions_today: int
    errors: int
