"""
Audit sink

Every state-changing request leaves one entry: who acted (or "anonymous"),
the action name, the serialized request context, and the outcome. Writing
an entry must never fail the request it describes.
"""
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from dealdrop.models.audit import AuditLog, AuditStatus
from dealdrop.utils.helpers import get_current_timestamp

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"

# Secrets/tokens to filter from audit logs
SECRET_FIELDS = {'password', 'token', 'authorization', 'secret', 'api_key'}


def _filter_secrets(data: Any) -> Any:
    """Filter secrets from audit log data"""
    if isinstance(data, list):
        return [_filter_secrets(item) for item in data]
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        if any(secret_field in str(key).lower() for secret_field in SECRET_FIELDS):
            filtered[key] = "[REDACTED]"
        else:
            filtered[key] = _filter_secrets(value)
    return filtered


def request_context(request: Optional[Request], body: Any = None) -> Dict[str, Any]:
    """Serializable view of the request an action came from."""
    context: Dict[str, Any] = {}
    if request is not None:
        context.update({
            "path": request.url.path,
            "method": request.method,
            "query": dict(request.query_params),
            "params": dict(request.path_params)
        })
    if body is not None:
        context["body"] = body.model_dump() if hasattr(body, "model_dump") else body
    return _filter_secrets(context)


class AuditService:
    """Fire-and-forget audit log writer."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def record(
        self,
        actor_id: Optional[str],
        action: str,
        details: Optional[Dict[str, Any]] = None,
        status: AuditStatus = AuditStatus.SUCCESS,
        request: Optional[Request] = None
    ) -> bool:
        """Write one entry. Returns False (and logs) if the write failed."""
        try:
            entry = AuditLog(
                user_id=actor_id or ANONYMOUS,
                action=action,
                details=json.dumps(details or {}, default=str),
                ip_address=request.client.host if request is not None and request.client else None,
                user_agent=request.headers.get("user-agent", "") if request is not None else None,
                status=status,
                timestamp=get_current_timestamp()
            )
            await self.db.audit_logs.insert_one(entry.model_dump(exclude={"id"}))
            return True
        except Exception as e:
            logger.warning(f"Audit logging failed for '{action}': {e}")
            return False

    @asynccontextmanager
    async def track(self, request: Optional[Request], actor_id: Optional[str], action: str, body: Any = None):
        """
        Audit the wrapped block: one ``success`` entry when it completes, one
        ``error`` entry when it raises. The exception is always re-raised.
        """
        details = request_context(request, body)
        try:
            yield
        except Exception as e:
            details["error"] = e.detail if isinstance(e, HTTPException) else str(e)
            await self.record(actor_id, action, details, AuditStatus.ERROR, request)
            raise
        await self.record(actor_id, action, details, AuditStatus.SUCCESS, request)

    async def list_logs(self, limit: int = 50) -> List[dict]:
        return await self.db.audit_logs.find(
            {},
            sort=[("timestamp", DESCENDING)],
            limit=limit
        ).to_list(length=limit)

    async def stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or get_current_timestamp()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        actors = await self.db.audit_logs.distinct("user_id")
        actions_today = await self.db.audit_logs.count_documents({
            "timestamp": {"$gte": start_of_day, "$lt": start_of_day + timedelta(days=1)}
        })
        errors = await self.db.audit_logs.count_documents({"status": AuditStatus.ERROR.value})
        return {
            "total_actors": len([actor for actor in actors if actor != ANONYMOUS]),
            "actions_today": actions_today,
            "errors": errors
        }
