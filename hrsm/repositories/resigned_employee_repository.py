from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from hrsm.errors import ConflictError


class ResignedEmployeeRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["resigned_employees"]

    async def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        try:
            await self._col.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError("Employee already in resigned list", employee_id=doc.get("employee_id"))
        return doc

    async def get(self, tenant_id: str, record_id: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"_id": record_id, "tenant_id": tenant_id})

    async def get_by_employee(self, employee_id: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"employee_id": employee_id})

    async def list(
        self,
        tenant_id: str,
        flt: Optional[Dict[str, Any]] = None,
        *,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        cursor = (
            self._col.find({**(flt or {}), "tenant_id": tenant_id})
            .sort("resignation_date", DESCENDING)
            .skip(skip)
            .limit(limit)
        )
        return await cursor.to_list(length=limit)

    async def count(self, tenant_id: str, flt: Optional[Dict[str, Any]] = None) -> int:
        return await self._col.count_documents({**(flt or {}), "tenant_id": tenant_id})

    async def save(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Persist the record as computed by the service layer.

        Penalties are only written by `push_penalty` and `pull_penalty`.
        """
        fields = {k: v for k, v in record.items() if k not in ("_id", "penalties", "total_penalties")}
        return await self._col.find_one_and_update(
            {"_id": record["_id"], "tenant_id": record["tenant_id"]},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    async def push_penalty(self, tenant_id: str, record_id: str, penalty: Dict[str, Any], now: datetime) -> Optional[Dict[str, Any]]:
        """Append one penalty atomically. Returns None if the record is missing or locked."""
        return await self._col.find_one_and_update(
            {"_id": record_id, "tenant_id": tenant_id, "is_locked": {"$ne": True}},
            {
                "$push": {"penalties": penalty},
                "$inc": {"total_penalties": penalty["amount"]},
                "$set": {"updated_at": now},
            },
            return_document=ReturnDocument.AFTER,
        )

    async def pull_penalty(self, tenant_id: str, record_id: str, penalty: Dict[str, Any], now: datetime) -> Optional[Dict[str, Any]]:
        """Remove one penalty atomically. Returns None if it is already gone or the record is locked."""
        return await self._col.find_one_and_update(
            {"_id": record_id, "tenant_id": tenant_id, "is_locked": {"$ne": True}, "penalties._id": penalty["_id"]},
            {
                "$pull": {"penalties": {"_id": penalty["_id"]}},
                "$inc": {"total_penalties": -penalty["amount"]},
                "$set": {"updated_at": now},
            },
            return_document=ReturnDocument.AFTER,
        )

    async def delete(self, tenant_id: str, record_id: str) -> bool:
        res = await self._col.delete_one({"_id": record_id, "tenant_id": tenant_id})
        return res.deleted_count == 1

    async def ensure_indexes(self) -> None:
        await self._col.create_index("employee_id", unique=True, name="uniq_resigned_employee")
        await self._col.create_index([("tenant_id", ASCENDING), ("status", ASCENDING)])
