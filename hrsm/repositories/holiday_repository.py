from __future__ import annotations

from typing import Any, Dict

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from hrsm.domain.holidays import DEFAULT_WEEKEND_DAYS
from hrsm.utils import new_id, now_utc


class HolidayRepository:
    """Per-campus holiday settings, created on first access."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["holiday_settings"]

    async def get_or_create(self, tenant_id: str, campus: str) -> Dict[str, Any]:
        now = now_utc()
        return await self._col.find_one_and_update(
            {"tenant_id": tenant_id, "campus": campus},
            {"$setOnInsert": {
                "_id": new_id(),
                "tenant_id": tenant_id,
                "campus": campus,
                "official_holidays": [],
                "weekend_work_days": [],
                "weekend_days": list(DEFAULT_WEEKEND_DAYS),
                "created_at": now,
                "last_modified": now,
            }},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def save(self, settings: Dict[str, Any], *, modified_by: str) -> Dict[str, Any]:
        fields = {k: v for k, v in settings.items() if k not in ("_id", "tenant_id", "campus", "created_at")}
        fields["last_modified"] = now_utc()
        fields["last_modified_by"] = modified_by
        return await self._col.find_one_and_update(
            {"_id": settings["_id"]},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
