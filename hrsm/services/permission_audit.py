"""Trail of role and permission changes on user accounts."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from hrsm.services.audit_ledger import AuditLedger, build_filter
from hrsm.utils import new_id, now_utc, paginate, pagination_meta

logger = logging.getLogger(__name__)

CHANGE_TYPES = ("role_changed", "permissions_added", "permissions_removed")


def describe_changes(previous: Dict[str, Any], current: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Split a before/after pair into typed change items."""
    items: List[Dict[str, Any]] = []
    if previous.get("role") != current.get("role"):
        items.append({"change_type": "role_changed", "from": previous.get("role"), "to": current.get("role")})
    before = set(previous.get("permissions") or [])
    after = set(current.get("permissions") or [])
    if after - before:
        items.append({"change_type": "permissions_added", "permissions": sorted(after - before)})
    if before - after:
        items.append({"change_type": "permissions_removed", "permissions": sorted(before - after)})
    return items


class PermissionAuditService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["permission_changes"]
        self._ledger = AuditLedger(db)

    async def record_change(
        self,
        *,
        actor: Dict[str, Any],
        target_user: Dict[str, Any],
        previous: Dict[str, Any],
        current: Dict[str, Any],
        reason: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> List[Dict[str, Any]]:
        items = describe_changes(previous, current)
        if not items:
            return []
        now = now_utc()
        docs = []
        for item in items:
            docs.append({
                "_id": new_id(),
                "tenant_id": target_user.get("tenant_id"),
                "user_id": target_user.get("_id") or target_user.get("id"),
                "changed_by": actor.get("id"),
                "change_type": item["change_type"],
                "detail": item,
                "previous": {"role": previous.get("role"), "permissions": list(previous.get("permissions") or [])},
                "current": {"role": current.get("role"), "permissions": list(current.get("permissions") or [])},
                "reason": reason,
                "created_at": now,
            })
        await self._col.insert_many(docs)

        await self._ledger.record(
            user=actor,
            action="permissions_changed",
            resource="users",
            resource_id=docs[0]["user_id"],
            before=docs[0]["previous"],
            after=docs[0]["current"],
            request=request,
            category="authorization",
            severity="high",
            metadata={"change_types": [d["change_type"] for d in docs], "reason": reason},
        )
        logger.info("permission change user=%s by=%s types=%s", docs[0]["user_id"], actor.get("id"), [d["change_type"] for d in docs])
        return docs

    async def list(
        self,
        tenant_id: str,
        *,
        user_id: Optional[str] = None,
        changed_by: Optional[str] = None,
        change_type: Optional[str] = None,
        start_date: Any = None,
        end_date: Any = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        flt = build_filter(tenant_id=tenant_id, user_id=user_id, start_date=start_date, end_date=end_date)
        if changed_by:
            flt["changed_by"] = changed_by
        if change_type:
            flt["change_type"] = change_type
        skip, limit = paginate(page, limit)
        total = await self._col.count_documents(flt)
        docs = await self._col.find(flt).sort("created_at", DESCENDING).skip(skip).limit(limit).to_list(length=limit)
        return {"logs": docs, "pagination": pagination_meta(total, skip // limit + 1, limit)}

    async def for_user(self, tenant_id: str, user_id: str) -> List[Dict[str, Any]]:
        cursor = self._col.find({"tenant_id": tenant_id, "user_id": user_id}).sort("created_at", ASCENDING)
        return await cursor.to_list(length=None)

    async def recent(self, tenant_id: str, *, days: int = 7, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        since = (now or now_utc()) - timedelta(days=days)
        cursor = self._col.find({"tenant_id": tenant_id, "created_at": {"$gte": since}}).sort("created_at", DESCENDING)
        return await cursor.to_list(length=500)

    async def stats(self, tenant_id: str) -> Dict[str, int]:
        out = {}
        for change_type in CHANGE_TYPES:
            out[change_type] = await self._col.count_documents({"tenant_id": tenant_id, "change_type": change_type})
        out["total"] = sum(out.values())
        return out
