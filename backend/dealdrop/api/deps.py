from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from motor.motor_asyncio import AsyncIOMotorDatabase

from dealdrop.core.database import get_database
from dealdrop.core.exceptions import ForbiddenError, UnauthorizedError
from dealdrop.core.security import decode_access_token
from dealdrop.models.user import MERCHANT_ROLES, UserRole
from dealdrop.services.audit_service import AuditService
from dealdrop.services.deal_lifecycle import DealLifecycle
from dealdrop.services.deal_store import DealStore
from dealdrop.services.discovery_service import DiscoveryService
from dealdrop.services.recurrence_scheduler import RecurrenceScheduler
from dealdrop.services.redemption_ledger import RedemptionLedger
from dealdrop.services.region_gate import RegionGateService
from dealdrop.services.saved_deals import SavedDealService

# Security scheme; missing credentials are handled per dependency
security = HTTPBearer(auto_error=False)

# Shared so its short-lived cache is reused across requests
_region_gate: Optional[RegionGateService] = None


async def get_db() -> AsyncIOMotorDatabase:
    """Dependency to get database instance."""
    return get_database()


def _user_from_credentials(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[dict]:
    if not credentials:
        return None
    payload = decode_access_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        return None
    return {
        "_id": str(payload["sub"]),
        "role": payload.get("role", UserRole.CUSTOMER.value)
    }


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """
    Dependency to get the acting user from the bearer token.
    
    Sessions belong to the external auth service; the token's ``sub`` is an
    opaque user id and ``role`` its role.
    
    Raises:
        UnauthorizedError: If the token is missing or invalid
    """
    user = _user_from_credentials(credentials)
    if user is None:
        raise UnauthorizedError()
    return user


async def get_current_merchant(
    current_user: dict = Depends(get_current_user)
) -> dict:
    """Dependency to ensure the current user is a merchant."""
    if current_user.get("role") not in MERCHANT_ROLES:
        raise ForbiddenError("Only merchants can access this endpoint")
    return current_user


async def get_super_merchant(
    current_user: dict = Depends(get_current_user)
) -> dict:
    """Dependency to ensure the current user is a super merchant."""
    if current_user.get("role") != UserRole.SUPER_MERCHANT.value:
        raise ForbiddenError("Only super merchants can access this endpoint")
    return current_user


def get_deal_store(db: AsyncIOMotorDatabase = Depends(get_db)) -> DealStore:
    return DealStore(db)


def get_ledger(
    db: AsyncIOMotorDatabase = Depends(get_db),
    store: DealStore = Depends(get_deal_store)
) -> RedemptionLedger:
    return RedemptionLedger(db, store)


def get_saved_deal_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    store: DealStore = Depends(get_deal_store)
) -> SavedDealService:
    return SavedDealService(db, store)


def get_region_gate(db: AsyncIOMotorDatabase = Depends(get_db)) -> RegionGateService:
    global _region_gate
    if _region_gate is None or _region_gate.db is not db:
        _region_gate = RegionGateService(db)
    return _region_gate


def get_discovery(
    store: DealStore = Depends(get_deal_store),
    region_gate: RegionGateService = Depends(get_region_gate)
) -> DiscoveryService:
    return DiscoveryService(store, region_gate)


def get_lifecycle(store: DealStore = Depends(get_deal_store)) -> DealLifecycle:
    return DealLifecycle(store)


def get_scheduler(
    request: Request,
    store: DealStore = Depends(get_deal_store),
    lifecycle: DealLifecycle = Depends(get_lifecycle)
) -> RecurrenceScheduler:
    """The app's background scheduler, so on-demand sweeps share its lock."""
    scheduler = getattr(request.app.state, "recurrence_scheduler", None)
    if scheduler is None:
        scheduler = RecurrenceScheduler(store, lifecycle)
    return scheduler


def get_audit(db: AsyncIOMotorDatabase = Depends(get_db)) -> AuditService:
    return AuditService(db)
