from typing import List
from fastapi import APIRouter, Depends, Query

from dealdrop.api.deps import get_audit, get_super_merchant
from dealdrop.api.responses import audit_log_response
from dealdrop.schemas.audit import AuditLogResponse, AuditStatsResponse
from dealdrop.services.audit_service import AuditService

router = APIRouter()


@router.get("/logs", response_model=List[AuditLogResponse])
async def get_audit_logs(
    limit: int = Query(50, ge=1, le=500),
    current_user: dict = Depends(get_super_merchant),
    audit: AuditService = Depends(get_audit)
):
    """Most recent audit entries (super merchants only)."""
    logs = await audit.list_logs(limit)
    return [audit_log_response(log) for log in logs]


@router.get("/stats", response_model=AuditStatsResponse)
async def get_audit_stats(
    current_user: dict = Depends(get_super_merchant),
    audit: AuditService = Depends(get_audit)
):
    return AuditStatsResponse(**await audit.stats())
