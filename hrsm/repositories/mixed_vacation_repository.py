from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from hrsm.errors import ConflictError
from hrsm.utils import now_utc


class MixedVacationRepository:
    """Policies plus the per-employee application records."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self._policies = db["mixed_vacation_policies"]
        self._applications = db["mixed_vacation_applications"]

    async def insert_policy(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        await self._policies.insert_one(doc)
        return doc

    async def get_policy(self, tenant_id: str, policy_id: str) -> Optional[Dict[str, Any]]:
        return await self._policies.find_one({"_id": policy_id, "tenant_id": tenant_id})

    async def list_policies(
        self,
        tenant_id: str,
        flt: Optional[Dict[str, Any]] = None,
        *,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        query = {**(flt or {}), "tenant_id": tenant_id}
        cursor = self._policies.find(query).sort("start_date", DESCENDING).skip(skip).limit(limit)
        return await cursor.to_list(length=limit)

    async def count_policies(self, tenant_id: str, flt: Optional[Dict[str, Any]] = None) -> int:
        return await self._policies.count_documents({**(flt or {}), "tenant_id": tenant_id})

    async def update_policy(
        self,
        tenant_id: str,
        policy_id: str,
        fields: Dict[str, Any],
        *,
        expected_status: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Update a policy; with `expected_status` the write only lands if the status still matches."""
        flt: Dict[str, Any] = {"_id": policy_id, "tenant_id": tenant_id}
        if expected_status is not None:
            flt["status"] = expected_status
        return await self._policies.find_one_and_update(
            flt,
            {"$set": {**fields, "updated_at": now_utc()}},
            return_document=ReturnDocument.AFTER,
        )

    async def delete_policy(self, tenant_id: str, policy_id: str) -> bool:
        res = await self._policies.delete_one({"_id": policy_id, "tenant_id": tenant_id})
        return res.deleted_count == 1

    async def expire_due(self, tenant_id: str, now: datetime) -> int:
        res = await self._policies.update_many(
            {"tenant_id": tenant_id, "status": "active", "end_date": {"$lt": now}},
            {"$set": {"status": "expired", "expired_at": now, "updated_at": now}},
        )
        return res.modified_count

    async def increment_applications(self, policy_id: str, by: int = 1) -> None:
        await self._policies.update_one({"_id": policy_id}, {"$inc": {"applications_count": by}})

    async def insert_application(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        try:
            await self._applications.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError(
                "Policy already applied to this employee",
                policy_id=doc.get("policy_id"),
                employee_id=doc.get("employee_id"),
            )
        return doc

    async def get_application(self, policy_id: str, employee_id: str) -> Optional[Dict[str, Any]]:
        return await self._applications.find_one({"policy_id": policy_id, "employee_id": employee_id})

    async def list_applications(self, tenant_id: str, flt: Dict[str, Any]) -> List[Dict[str, Any]]:
        cursor = self._applications.find({**flt, "tenant_id": tenant_id}).sort("applied_at", DESCENDING)
        return await cursor.to_list(length=None)

    async def ensure_indexes(self) -> None:
        await self._policies.create_index([("tenant_id", ASCENDING), ("status", ASCENDING), ("start_date", ASCENDING)])
        await self._applications.create_index(
            [("policy_id", ASCENDING), ("employee_id", ASCENDING)],
            unique=True,
            name="uniq_policy_employee",
        )
