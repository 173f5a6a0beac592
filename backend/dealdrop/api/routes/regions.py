from fastapi import APIRouter, Depends, Request

from dealdrop.api.deps import get_audit, get_region_gate, get_super_merchant
from dealdrop.schemas.region import EnabledStateResponse, EnabledStatesResponse, EnabledStateUpdate
from dealdrop.services.audit_service import AuditService
from dealdrop.services.region_gate import RegionGateService

router = APIRouter()


@router.get("/enabled-states", response_model=EnabledStatesResponse)
async def get_enabled_states(
    region_gate: RegionGateService = Depends(get_region_gate)
):
    """Effective discovery gate of every known region."""
    states = await region_gate.list_states()
    return EnabledStatesResponse(states=[EnabledStateResponse(**state) for state in states])


@router.post("/enabled-states", response_model=EnabledStateResponse)
async def set_enabled_state(
    state: EnabledStateUpdate,
    request: Request,
    current_user: dict = Depends(get_super_merchant),
    region_gate: RegionGateService = Depends(get_region_gate),
    audit: AuditService = Depends(get_audit)
):
    """Open or close discovery in a region (super merchants only)."""
    async with audit.track(request, current_user["_id"], "Update Enabled State", state):
        row = await region_gate.set_state(state.region, state.is_enabled, current_user["_id"])
    return EnabledStateResponse(
        region=row["region"],
        is_enabled=row["is_enabled"],
        updated_at=row.get("updated_at")
    )
