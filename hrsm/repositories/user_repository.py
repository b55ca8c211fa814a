from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from hrsm.utils import now_utc


class UserRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["users"]

    async def get(self, user_id: str, tenant_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        flt: Dict[str, Any] = {"_id": user_id}
        if tenant_id is not None:
            flt["tenant_id"] = tenant_id
        return await self._col.find_one(flt)

    async def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"email": (email or "").strip().lower()})

    async def list_active(self, tenant_id: str) -> List[Dict[str, Any]]:
        cursor = self._col.find({"tenant_id": tenant_id, "is_active": True}).sort("email", ASCENDING)
        return await cursor.to_list(length=None)

    async def set_fields(self, user_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._col.find_one_and_update(
            {"_id": user_id},
            {"$set": {**fields, "updated_at": now_utc()}},
            return_document=ReturnDocument.AFTER,
        )

    async def record_failed_login(self, user_id: str, attempts: int, now: datetime) -> None:
        await self._col.update_one(
            {"_id": user_id},
            {"$set": {"security.failed_attempts": attempts, "security.last_failed_at": now}},
        )

    async def lock(self, user_id: str, until: datetime) -> None:
        await self._col.update_one({"_id": user_id}, {"$set": {"security.locked_until": until}})

    async def record_successful_login(self, user_id: str, now: datetime) -> None:
        await self._col.update_one(
            {"_id": user_id},
            {"$set": {
                "security.failed_attempts": 0,
                "security.last_failed_at": None,
                "security.locked_until": None,
                "last_login": now,
            }},
        )

    async def ensure_indexes(self) -> None:
        await self._col.create_index("email", unique=True, name="uniq_user_email")
        await self._col.create_index([("tenant_id", ASCENDING), ("is_active", ASCENDING)])
