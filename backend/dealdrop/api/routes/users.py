from typing import List
from fastapi import APIRouter, Depends

from dealdrop.api.deps import get_current_user, get_ledger, get_saved_deal_service
from dealdrop.api.responses import claim_response, saved_deal_response
from dealdrop.core.exceptions import InvalidArgumentError
from dealdrop.schemas.claim import ClaimResponse, SavedDealResponse
from dealdrop.services.redemption_ledger import CLAIM_VIEWS, RedemptionLedger
from dealdrop.services.saved_deals import SavedDealService

router = APIRouter()


@router.get("/claimed-deals", response_model=List[ClaimResponse])
async def get_claimed_deals(
    view: str = "all",
    current_user: dict = Depends(get_current_user),
    ledger: RedemptionLedger = Depends(get_ledger)
):
    """
    Claims of the current user, newest first.

    ``view=active`` keeps claims on deals still running, ``view=archived``
    the ones on ended or deleted deals.
    """
    if view not in CLAIM_VIEWS:
        raise InvalidArgumentError(f"view must be one of: {', '.join(CLAIM_VIEWS)}")
    claims = await ledger.list_claims(current_user["_id"], view)
    now = ledger.clock()
    return [claim_response(claim, now) for claim in claims]


@router.get("/saved-deals", response_model=List[SavedDealResponse])
async def get_saved_deals(
    current_user: dict = Depends(get_current_user),
    saved_deals: SavedDealService = Depends(get_saved_deal_service)
):
    """Bookmarks of the current user whose deal is still live."""
    saved = await saved_deals.list_saved(current_user["_id"])
    now = saved_deals.store.clock()
    return [saved_deal_response(item, now) for item in saved]
