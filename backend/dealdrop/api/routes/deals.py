from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request, Response, status
from pydantic import ValidationError

from dealdrop.api.deps import (
    get_audit,
    get_current_user,
    get_deal_store,
    get_discovery,
    get_ledger,
    get_lifecycle,
    get_saved_deal_service,
    get_scheduler,
    get_super_merchant,
)
from dealdrop.api.responses import claim_response, deal_response, saved_deal_response
from dealdrop.api.routes.merchants import require_owned_merchant
from dealdrop.core.exceptions import ForbiddenError, InvalidArgumentError
from dealdrop.models.user import Location
from dealdrop.schemas.claim import ClaimResponse, SavedDealResponse
from dealdrop.schemas.deal import DealCreate, DealResponse, DealUpdate, ProcessRecurringResponse, RepostRequest
from dealdrop.services.audit_service import AuditService
from dealdrop.services.deal_lifecycle import DealLifecycle
from dealdrop.services.deal_store import DealStore
from dealdrop.services.discovery_service import DiscoveryService
from dealdrop.services.recurrence_scheduler import RecurrenceScheduler
from dealdrop.services.redemption_ledger import RedemptionLedger
from dealdrop.services.saved_deals import SavedDealService

router = APIRouter()


async def require_deal_owner(deal: dict, current_user: dict, store: DealStore) -> dict:
    """The deal's merchant, if the current user owns it."""
    merchant = await store.get_merchant(deal["merchant_id"])
    if not merchant or merchant["user_id"] != current_user["_id"]:
        raise ForbiddenError("You can only manage deals of your own merchants")
    return merchant


@router.get("", response_model=List[DealResponse])
async def get_deals(
    q: Optional[str] = None,
    discovery: DiscoveryService = Depends(get_discovery)
):
    """All currently live deals, without any location filter."""
    deals = await discovery.find_visible_deals(query=q)
    now = discovery.store.clock()
    return [deal_response(deal, now) for deal in deals]


@router.get("/location", response_model=List[DealResponse])
async def get_deals_by_location(
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius: Optional[float] = Query(None, description="Search radius in kilometers"),
    explore: bool = False,
    q: Optional[str] = None,
    discovery: DiscoveryService = Depends(get_discovery)
):
    """
    Live deals near a location.

    - Deals farther than ``radius`` km (default 50) are left out.
    - If the location's region is disabled the list is empty.
    - ``explore=true`` skips both the region gate and the radius.
    """
    if lat is None or lng is None:
        raise InvalidArgumentError("Latitude and longitude are required")
    if radius is not None and radius <= 0:
        raise InvalidArgumentError("Radius must be positive")
    try:
        origin = Location(lat=lat, lng=lng)
    except ValidationError:
        raise InvalidArgumentError("Latitude must be within [-90, 90] and longitude within [-180, 180]")

    deals = await discovery.find_visible_deals(
        origin=origin,
        radius_km=radius,
        explore_mode=explore,
        query=q
    )
    now = discovery.store.clock()
    return [deal_response(deal, now) for deal in deals]


@router.get("/search", response_model=List[DealResponse])
async def search_deals(
    q: str = Query(..., min_length=1),
    discovery: DiscoveryService = Depends(get_discovery)
):
    """
    Search live deals by title, description, category, merchant name or address.
    """
    deals = await discovery.find_visible_deals(query=q, explore_mode=True)
    now = discovery.store.clock()
    return [deal_response(deal, now) for deal in deals]


@router.post("/process-recurring", response_model=ProcessRecurringResponse)
async def process_recurring_deals(
    request: Request,
    current_user: dict = Depends(get_super_merchant),
    scheduler: RecurrenceScheduler = Depends(get_scheduler),
    audit: AuditService = Depends(get_audit)
):
    """Run a recurrence sweep now (super merchants only)."""
    async with audit.track(request, current_user["_id"], "Process Recurring Deals"):
        result = await scheduler.run_sweep()
    return ProcessRecurringResponse(**result)


@router.get("/{deal_id}", response_model=DealResponse)
async def get_deal(
    deal_id: str,
    store: DealStore = Depends(get_deal_store)
):
    """Get a single deal by ID."""
    deal = await store.require_deal(deal_id)
    [deal] = await store.attach_merchants([deal])
    return deal_response(deal, store.clock())


@router.put("/{deal_id}", response_model=DealResponse)
async def update_deal(
    deal_id: str,
    deal_update: DealUpdate,
    request: Request,
    current_user: dict = Depends(get_current_user),
    store: DealStore = Depends(get_deal_store),
    audit: AuditService = Depends(get_audit)
):
    """Edit a deal (owning merchant only)."""
    async with audit.track(request, current_user["_id"], "Update Deal", deal_update):
        deal = await store.require_deal(deal_id)
        await require_deal_owner(deal, current_user, store)
        updated = await store.update_deal(deal_id, deal_update.model_dump(exclude_unset=True))
    [updated] = await store.attach_merchants([updated])
    return deal_response(updated, store.clock())


@router.delete("/{deal_id}")
async def delete_deal(
    deal_id: str,
    request: Request,
    current_user: dict = Depends(get_current_user),
    store: DealStore = Depends(get_deal_store),
    audit: AuditService = Depends(get_audit)
):
    """
    Delete a deal (owning merchant only).

    Existing claims are kept as history.
    """
    async with audit.track(request, current_user["_id"], "Delete Deal"):
        deal = await store.require_deal(deal_id)
        await require_deal_owner(deal, current_user, store)
        await store.delete_deal(deal_id)
    return {"message": "Deal deleted successfully"}


@router.post("/{deal_id}/claim", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED)
async def claim_deal(
    deal_id: str,
    request: Request,
    current_user: dict = Depends(get_current_user),
    ledger: RedemptionLedger = Depends(get_ledger),
    audit: AuditService = Depends(get_audit)
):
    """
    Claim a deal.

    Returns 404 for an unknown deal, 400 when it is no longer available,
    409 when already claimed by this user or out of redemptions.
    """
    async with audit.track(request, current_user["_id"], "Claim Deal"):
        claim = await ledger.claim(current_user["_id"], deal_id)
    claim["deal"] = await ledger.store.get_deal(claim["deal_id"])
    return claim_response(claim, ledger.clock())


@router.delete("/{deal_id}/claim")
async def unclaim_deal(
    deal_id: str,
    request: Request,
    current_user: dict = Depends(get_current_user),
    ledger: RedemptionLedger = Depends(get_ledger),
    audit: AuditService = Depends(get_audit)
):
    """Withdraw a claim while the deal is still running."""
    async with audit.track(request, current_user["_id"], "Unclaim Deal"):
        removed = await ledger.unclaim(current_user["_id"], deal_id)
    return {"message": "Claim withdrawn" if removed else "Deal was not claimed"}


@router.post("/{deal_id}/save", response_model=SavedDealResponse, status_code=status.HTTP_201_CREATED)
async def save_deal(
    deal_id: str,
    request: Request,
    response: Response,
    current_user: dict = Depends(get_current_user),
    saved_deals: SavedDealService = Depends(get_saved_deal_service),
    audit: AuditService = Depends(get_audit)
):
    """Bookmark a deal. Saving twice is harmless (200 instead of 201)."""
    async with audit.track(request, current_user["_id"], "Save Deal"):
        saved, created = await saved_deals.save(current_user["_id"], deal_id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return saved_deal_response(saved, saved_deals.store.clock())


@router.delete("/{deal_id}/save")
async def unsave_deal(
    deal_id: str,
    request: Request,
    current_user: dict = Depends(get_current_user),
    saved_deals: SavedDealService = Depends(get_saved_deal_service),
    audit: AuditService = Depends(get_audit)
):
    """Remove a bookmark."""
    async with audit.track(request, current_user["_id"], "Unsave Deal"):
        await saved_deals.unsave(current_user["_id"], deal_id)
    return {"message": "Deal unsaved successfully"}


@router.post("/{deal_id}/repost", response_model=DealResponse, status_code=status.HTTP_201_CREATED)
async def repost_deal(
    deal_id: str,
    repost: RepostRequest,
    request: Request,
    current_user: dict = Depends(get_current_user),
    lifecycle: DealLifecycle = Depends(get_lifecycle),
    audit: AuditService = Depends(get_audit)
):
    """
    Repost an ended deal with a new time window (owning merchant only).

    The new deal starts with no redemptions; the original is kept as history.
    """
    store = lifecycle.store
    async with audit.track(request, current_user["_id"], "Repost Deal", repost):
        deal = await store.require_deal(deal_id)
        await require_deal_owner(deal, current_user, store)
        created = await lifecycle.manual_repost(deal_id, repost.start_time, repost.end_time)
    [created] = await store.attach_merchants([created])
    return deal_response(created, store.clock())


@router.post("/{merchant_id}/deals", response_model=DealResponse, status_code=status.HTTP_201_CREATED)
async def create_deal(
    merchant_id: str,
    deal: DealCreate,
    request: Request,
    current_user: dict = Depends(get_current_user),
    store: DealStore = Depends(get_deal_store),
    audit: AuditService = Depends(get_audit)
):
    """Create a deal for a merchant (owner only)."""
    async with audit.track(request, current_user["_id"], "Create Deal", deal):
        merchant = await require_owned_merchant(merchant_id, current_user, store)
        created = await store.create_deal(str(merchant["_id"]), deal)
    return deal_response({**created, "merchant": merchant}, store.clock())
