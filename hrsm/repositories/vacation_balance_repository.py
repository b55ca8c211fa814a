from __future__ import annotations

from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from hrsm.errors import ConflictError
from hrsm.utils import new_id, now_utc


class VacationBalanceRepository:
    """One balance document per (employee_id, year)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["vacation_balances"]

    async def get(self, employee_id: str, year: int) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"employee_id": employee_id, "year": year})

    async def list_for_employee(self, employee_id: str) -> List[Dict[str, Any]]:
        cursor = self._col.find({"employee_id": employee_id}).sort("year", ASCENDING)
        return await cursor.to_list(length=None)

    async def list_for_tenant(self, tenant_id: str, year: int, *, skip: int = 0, limit: int = 50) -> List[Dict[str, Any]]:
        cursor = self._col.find({"tenant_id": tenant_id, "year": year}).sort("employee_id", ASCENDING).skip(skip).limit(limit)
        return await cursor.to_list(length=limit)

    async def count_for_tenant(self, tenant_id: str, year: int) -> int:
        return await self._col.count_documents({"tenant_id": tenant_id, "year": year})

    async def insert_if_absent(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        doc.setdefault("_id", new_id())
        try:
            await self._col.insert_one(doc)
        except DuplicateKeyError:
            existing = await self.get(doc["employee_id"], doc["year"])
            if existing is None:
                raise ConflictError("Vacation balance was removed during creation", employee_id=doc["employee_id"], year=doc["year"])
            return existing
        return doc

    async def conditional_inc(
        self,
        employee_id: str,
        year: int,
        guard: Dict[str, Any],
        inc: Dict[str, Any],
        *,
        history: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Apply `inc` only if `guard` still holds. Returns None when it does not."""
        update: Dict[str, Any] = {"$inc": inc, "$set": {"updated_at": now_utc()}}
        if history is not None:
            update["$push"] = {"history": history}
        return await self._col.find_one_and_update(
            {"employee_id": employee_id, "year": year, **guard},
            update,
            return_document=ReturnDocument.AFTER,
        )

    async def set_fields(
        self,
        employee_id: str,
        year: int,
        fields: Dict[str, Any],
        *,
        history: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        update: Dict[str, Any] = {"$set": {**fields, "updated_at": now_utc()}}
        if history is not None:
            update["$push"] = {"history": history}
        return await self._col.find_one_and_update(
            {"employee_id": employee_id, "year": year},
            update,
            return_document=ReturnDocument.AFTER,
        )

    async def ensure_indexes(self) -> None:
        await self._col.create_index(
            [("employee_id", ASCENDING), ("year", ASCENDING)],
            unique=True,
            name="uniq_balance_employee_year",
        )
        await self._col.create_index([("tenant_id", ASCENDING), ("year", ASCENDING)])
