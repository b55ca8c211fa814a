"""Read-side queries over security events recorded in the audit ledger."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm.errors import ValidationError
from hrsm.repositories.audit_log_repository import AuditLogRepository
from hrsm.utils import now_utc

SECURITY_CATEGORIES = ("authentication", "authorization", "security", "system", "data_access", "data_modification")

# Named views over the ledger, keyed by the path segment the API exposes.
CATEGORY_VIEWS: Dict[str, Dict[str, Any]] = {
    "login-history": {"action": {"$in": ["login_success", "login_failed", "logout"]}},
    "2fa": {"action": {"$regex": "^2fa_"}},
    "password": {"action": {"$in": ["password_changed", "password_reset", "password_policy_violation"]}},
    "account": {"action": {"$in": ["account_locked", "account_unlocked", "account_created", "account_deactivated"]}},
    "permissions": {"category": "authorization"},
    "data-access": {"category": "data_access"},
    "system": {"category": "system"},
}


class SecurityAuditService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._repo = AuditLogRepository(db)

    async def user_activity(self, tenant_id: str, user_id: str, *, limit: int = 100) -> List[Dict[str, Any]]:
        return await self._repo.list({"tenant_id": tenant_id, "user_id": user_id}, limit=limit)

    async def suspicious_activities(self, tenant_id: str, *, days: int = 7, now: Optional[datetime] = None) -> Dict[str, Any]:
        if days < 1:
            raise ValidationError("days must be at least 1")
        since = (now or now_utc()) - timedelta(days=days)
        flt = {
            "tenant_id": tenant_id,
            "created_at": {"$gte": since},
            "$or": [{"severity": {"$in": ["high", "critical"]}}, {"status": "failure"}],
        }
        activities = await self._repo.list(flt, limit=500)
        return {"activities": activities, "count": len(activities), "period": f"Last {days} days"}

    async def failed_logins(self, tenant_id: str, *, minutes: int = 30, now: Optional[datetime] = None) -> Dict[str, Any]:
        if minutes < 1:
            raise ValidationError("minutes must be at least 1")
        since = (now or now_utc()) - timedelta(minutes=minutes)
        flt = {"tenant_id": tenant_id, "action": "login_failed", "created_at": {"$gte": since}}
        failed = await self._repo.list(flt, limit=500)
        return {"failedLogins": failed, "count": len(failed), "period": f"Last {minutes} minutes"}

    async def stats(self, tenant_id: str, *, days: int = 30, now: Optional[datetime] = None) -> Dict[str, Any]:
        since = (now or now_utc()) - timedelta(days=days)
        base = {"tenant_id": tenant_id, "created_at": {"$gte": since}}

        async def _group(field: str) -> Dict[str, int]:
            out: Dict[str, int] = {}
            for value in await self._repo.distinct(field, base):
                if value is None:
                    continue
                out[str(value)] = await self._repo.count({**base, field: value})
            return out

        return {
            "period_days": days,
            "total": await self._repo.count(base),
            "by_severity": await _group("severity"),
            "by_category": await _group("category"),
            "by_action": await _group("action"),
            "failed_logins": await self._repo.count({**base, "action": "login_failed"}),
            "unique_users": len(await self._repo.distinct("user_id", base)),
        }

    async def category_view(self, tenant_id: str, view: str, *, limit: int = 100) -> List[Dict[str, Any]]:
        if view not in CATEGORY_VIEWS:
            raise ValidationError(f"Unknown view '{view}'", errors=[f"view must be one of: {', '.join(CATEGORY_VIEWS)}"])
        return await self._repo.list({"tenant_id": tenant_id, **CATEGORY_VIEWS[view]}, limit=limit)

    async def ip_activity(self, tenant_id: str, ip_address: str, *, limit: int = 100) -> List[Dict[str, Any]]:
        return await self._repo.list({"tenant_id": tenant_id, "ip_address": ip_address}, limit=limit)
