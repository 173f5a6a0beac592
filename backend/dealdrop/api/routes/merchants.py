from typing import List
from fastapi import APIRouter, Depends, Request, status

from dealdrop.api.deps import get_audit, get_current_merchant, get_current_user, get_deal_store
from dealdrop.api.responses import deal_response, merchant_response
from dealdrop.core.exceptions import ForbiddenError
from dealdrop.schemas.deal import DealResponse
from dealdrop.schemas.merchant import MerchantCreate, MerchantResponse, MerchantUpdate
from dealdrop.services.audit_service import AuditService
from dealdrop.services.deal_store import DealStore

router = APIRouter()


async def require_owned_merchant(merchant_id: str, current_user: dict, store: DealStore) -> dict:
    merchant = await store.require_merchant(merchant_id)
    if merchant["user_id"] != current_user["_id"]:
        raise ForbiddenError("You can only manage your own merchants")
    return merchant


@router.get("", response_model=List[MerchantResponse])
async def get_merchants(
    store: DealStore = Depends(get_deal_store)
):
    """List active merchants."""
    merchants = await store.list_active_merchants()
    return [merchant_response(merchant) for merchant in merchants]


@router.get("/mine", response_model=List[MerchantResponse])
async def get_my_merchants(
    current_user: dict = Depends(get_current_user),
    store: DealStore = Depends(get_deal_store)
):
    """Merchants owned by the current user, including deactivated ones."""
    merchants = await store.list_merchants_by_user(current_user["_id"])
    return [merchant_response(merchant) for merchant in merchants]


@router.post("", response_model=MerchantResponse, status_code=status.HTTP_201_CREATED)
async def create_merchant(
    merchant: MerchantCreate,
    request: Request,
    current_user: dict = Depends(get_current_merchant),
    store: DealStore = Depends(get_deal_store),
    audit: AuditService = Depends(get_audit)
):
    """
    Create a merchant (merchants only).

    The merchant will be owned by the current user.
    """
    async with audit.track(request, current_user["_id"], "Create Merchant", merchant):
        created = await store.create_merchant(current_user["_id"], merchant)
    return merchant_response(created)


@router.get("/{merchant_id}", response_model=MerchantResponse)
async def get_merchant(
    merchant_id: str,
    store: DealStore = Depends(get_deal_store)
):
    """Get merchant profile by ID."""
    merchant = await store.require_merchant(merchant_id)
    return merchant_response(merchant)


@router.put("/{merchant_id}", response_model=MerchantResponse)
async def update_merchant(
    merchant_id: str,
    merchant_update: MerchantUpdate,
    request: Request,
    current_user: dict = Depends(get_current_user),
    store: DealStore = Depends(get_deal_store),
    audit: AuditService = Depends(get_audit)
):
    """Update merchant profile (owner only)."""
    async with audit.track(request, current_user["_id"], "Update Merchant", merchant_update):
        await require_owned_merchant(merchant_id, current_user, store)
        updates = merchant_update.model_dump(exclude_unset=True, exclude_none=True)
        updated = await store.update_merchant(merchant_id, updates)
    return merchant_response(updated)


@router.delete("/{merchant_id}", response_model=MerchantResponse)
async def deactivate_merchant(
    merchant_id: str,
    request: Request,
    current_user: dict = Depends(get_current_user),
    store: DealStore = Depends(get_deal_store),
    audit: AuditService = Depends(get_audit)
):
    """
    Deactivate a merchant (owner only).

    Merchants are never hard-deleted; their deals stop being visible.
    """
    async with audit.track(request, current_user["_id"], "Deactivate Merchant"):
        await require_owned_merchant(merchant_id, current_user, store)
        merchant = await store.deactivate_merchant(merchant_id)
    return merchant_response(merchant)


@router.get("/{merchant_id}/deals", response_model=List[DealResponse])
async def get_merchant_deals(
    merchant_id: str,
    store: DealStore = Depends(get_deal_store)
):
    """All deals of a merchant, newest first."""
    merchant = await store.require_merchant(merchant_id)
    deals = await store.list_deals_by_merchant(str(merchant["_id"]))
    now = store.clock()
    return [deal_response({**deal, "merchant": merchant}, now) for deal in deals]


@router.get("/{merchant_id}/deals/expired", response_model=List[DealResponse])
async def get_merchant_expired_deals(
    merchant_id: str,
    store: DealStore = Depends(get_deal_store)
):
    """Ended deals of a merchant, most recently ended first (candidates for reposting)."""
    merchant = await store.require_merchant(merchant_id)
    now = store.clock()
    deals = await store.list_expired_deals(now, merchant_id=str(merchant["_id"]))
    return [deal_response({**deal, "merchant": merchant}, now) for deal in deals]

