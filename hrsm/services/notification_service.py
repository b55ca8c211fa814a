"""In-app notifications. Delivery over email or websocket happens elsewhere."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm.errors import NotFoundError
from hrsm.utils import new_id, now_utc

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("system", "leave", "announcement", "survey", "policy", "security", "request")


class NotificationService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["notifications"]

    def _visible_to(self, tenant_id: str, user_id: str) -> Dict[str, Any]:
        return {"tenant_id": tenant_id, "$or": [{"user_id": user_id}, {"user_id": None}]}

    async def create(
        self,
        *,
        tenant_id: str,
        user_id: Optional[str] = None,
        notification_type: str = "system",
        title: str,
        message: str,
        link: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if notification_type not in NOTIFICATION_TYPES:
            notification_type = "system"
        doc = {
            "_id": new_id(),
            "tenant_id": tenant_id,
            "user_id": user_id,  # None = broadcast to all tenant users
            "type": notification_type,
            "title": title,
            "message": message,
            "link": link or "",
            "reference_id": reference_id,
            "is_read": False,
            "created_at": now_utc(),
        }
        await self._col.insert_one(doc)
        return doc

    async def create_many(self, docs: List[Dict[str, Any]]) -> int:
        if not docs:
            return 0
        await self._col.insert_many(docs)
        return len(docs)

    async def list_for_user(
        self,
        tenant_id: str,
        user_id: str,
        *,
        skip: int = 0,
        limit: int = 20,
        unread_only: bool = False,
    ) -> Dict[str, Any]:
        query = self._visible_to(tenant_id, user_id)
        if unread_only:
            query["is_read"] = False

        total = await self._col.count_documents(query)
        items = await self._col.find(query).sort("created_at", -1).skip(skip).limit(limit).to_list(length=limit)
        unread = total if unread_only else await self.unread_count(tenant_id, user_id)
        return {"items": items, "total": total, "unread_count": unread}

    async def get(self, tenant_id: str, notification_id: str) -> Dict[str, Any]:
        doc = await self._col.find_one({"_id": notification_id, "tenant_id": tenant_id})
        if not doc:
            raise NotFoundError("Notification not found")
        return doc

    async def mark_read(self, tenant_id: str, user_id: str, notification_id: str) -> Dict[str, Any]:
        result = await self._col.find_one_and_update(
            {"_id": notification_id, **self._visible_to(tenant_id, user_id)},
            {"$set": {"is_read": True, "read_at": now_utc()}},
            return_document=True,
        )
        if not result:
            raise NotFoundError("Notification not found")
        return result

    async def mark_all_read(self, tenant_id: str, user_id: str) -> int:
        result = await self._col.update_many(
            {**self._visible_to(tenant_id, user_id), "is_read": False},
            {"$set": {"is_read": True, "read_at": now_utc()}},
        )
        return result.modified_count

    async def unread_count(self, tenant_id: str, user_id: str) -> int:
        return await self._col.count_documents({**self._visible_to(tenant_id, user_id), "is_read": False})

    async def delete(self, tenant_id: str, notification_id: str) -> None:
        result = await self._col.delete_one({"_id": notification_id, "tenant_id": tenant_id})
        if result.deleted_count == 0:
            raise NotFoundError("Notification not found")
