"""Builders turning stored documents into response schemas."""
from datetime import datetime
from typing import Optional

from dealdrop.models.deal import deal_state
from dealdrop.schemas.audit import AuditLogResponse
from dealdrop.schemas.claim import ClaimResponse, SavedDealResponse
from dealdrop.schemas.deal import DealResponse
from dealdrop.schemas.merchant import MerchantResponse


def merchant_response(merchant: dict) -> MerchantResponse:
    return MerchantResponse(
        id=str(merchant["_id"]),
        user_id=merchant["user_id"],
        name=merchant["name"],
        description=merchant.get("description"),
        category=merchant["category"],
        location=merchant["location"],
        address=merchant["address"],
        phone=merchant.get("phone"),
        is_active=merchant.get("is_active", True),
        created_at=merchant["created_at"]
    )


def deal_response(deal: dict, now: datetime) -> DealResponse:
    merchant = deal.get("merchant")
    distance = deal.get("distance_km")
    return DealResponse(
        id=str(deal["_id"]),
        merchant_id=deal["merchant_id"],
        title=deal["title"],
        description=deal.get("description"),
        original_price=deal["original_price"],
        discounted_price=deal["discounted_price"],
        discount_percentage=deal["discount_percentage"],
        category=deal["category"],
        start_time=deal["start_time"],
        end_time=deal["end_time"],
        max_redemptions=deal["max_redemptions"],
        current_redemptions=deal.get("current_redemptions", 0),
        is_active=deal.get("is_active", True),
        is_recurring=deal.get("is_recurring", False),
        recurring_interval=deal.get("recurring_interval"),
        last_recurred_at=deal.get("last_recurred_at"),
        reposted_from=deal.get("reposted_from"),
        state=deal_state(deal, now),
        created_at=deal["created_at"],
        merchant=merchant_response(merchant) if merchant else None,
        distance_km=round(distance, 2) if distance is not None else None
    )


def _optional_deal(deal: Optional[dict], now: datetime) -> Optional[DealResponse]:
    return deal_response(deal, now) if deal else None


def claim_response(claim: dict, now: datetime) -> ClaimResponse:
    return ClaimResponse(
        id=str(claim["_id"]),
        user_id=claim["user_id"],
        deal_id=claim["deal_id"],
        claimed_at=claim["claimed_at"],
        status=claim.get("status", "claimed"),
        deal=_optional_deal(claim.get("deal"), now),
        deal_state=deal_state(claim.get("deal"), now)
    )


def saved_deal_response(saved: dict, now: datetime) -> SavedDealResponse:
    return SavedDealResponse(
        id=str(saved["_id"]),
        user_id=saved["user_id"],
        deal_id=saved["deal_id"],
        saved_at=saved["saved_at"],
        deal=_optional_deal(saved.get("deal"), now)
    )


def audit_log_response(log: dict) -> AuditLogResponse:
    return AuditLogResponse(
        id=str(log["_id"]),
        user_id=log.get("user_id", "anonymous"),
        action=log["action"],
        details=log.get("details"),
        ip_address=log.get("ip_address"),
        user_agent=log.get("user_agent"),
        status=log.get("status", "success"),
        timestamp=log["timestamp"]
    )
