"""Repository for the security_settings singleton document."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from hrsm.domain.security_settings import SETTINGS_ID, default_settings
from hrsm.errors import ConflictError
from hrsm.utils import now_utc


class SecuritySettingsRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["security_settings"]

    async def get(self) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"_id": SETTINGS_ID})

    async def get_or_create(self) -> Dict[str, Any]:
        """Return the settings document, creating it with defaults if absent.

        Two callers may race on first creation; the loser sees a duplicate
        key and reads the winner's document.
        """

        doc = await self.get()
        if doc is not None:
            return doc

        now = now_utc()
        doc = {
            "_id": SETTINGS_ID,
            **default_settings(),
            "created_at": now,
            "last_modified": now,
            "last_modified_by": None,
        }
        try:
            await self._col.insert_one(doc)
        except DuplicateKeyError:
            existing = await self.get()
            if existing is None:
                raise ConflictError("Security settings were removed during creation")
            return existing
        return doc

    async def replace_sections(
        self,
        sections: Dict[str, Any],
        *,
        modified_by: Optional[str],
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or now_utc()
        result = await self._col.find_one_and_update(
            {"_id": SETTINGS_ID},
            {
                "$set": {**sections, "last_modified": now, "last_modified_by": modified_by},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return result
