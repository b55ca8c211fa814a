from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from hrsm.utils import new_id, now_utc


def get_collection(db: AsyncIOMotorDatabase, name: str) -> AsyncIOMotorCollection:
    """Return a Motor collection from the given database.

    This is the only place where services should obtain collections.
    """

    return db[name]


def with_tenant_filter(filter_dict: Optional[Dict[str, Any]], tenant_id: str) -> Dict[str, Any]:
    """Inject tenant_id into a Mongo filter dict.

    Ensures that all multi-tenant queries are scoped by tenant_id.
    """

    if not tenant_id:
        raise ValueError("tenant_id is required for tenant-scoped queries")

    f = dict(filter_dict or {})
    f.setdefault("tenant_id", tenant_id)
    return f


class TenantCrudRepository:
    """Plain tenant-scoped CRUD over one collection."""

    def __init__(self, db: AsyncIOMotorDatabase, collection: str, tenant_id: str):
        self._col = get_collection(db, collection)
        self.tenant_id = tenant_id

    def _scoped(self, flt: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return with_tenant_filter(flt, self.tenant_id)

    async def create(self, fields: Dict[str, Any], *, created_by: Optional[str] = None) -> Dict[str, Any]:
        now = now_utc()
        doc = {
            **fields,
            "_id": new_id(),
            "tenant_id": self.tenant_id,
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
        }
        await self._col.insert_one(doc)
        return doc

    async def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one(self._scoped({"_id": doc_id}))

    async def find_one(self, flt: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._col.find_one(self._scoped(flt))

    async def list(
        self,
        flt: Optional[Dict[str, Any]] = None,
        *,
        skip: int = 0,
        limit: int = 50,
        sort: Optional[List[Tuple[str, int]]] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self._col.find(self._scoped(flt)).sort(sort or [("created_at", -1)]).skip(skip).limit(limit)
        return await cursor.to_list(length=limit)

    async def count(self, flt: Optional[Dict[str, Any]] = None) -> int:
        return await self._col.count_documents(self._scoped(flt))

    async def update(self, doc_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._col.find_one_and_update(
            self._scoped({"_id": doc_id}),
            {"$set": {**fields, "updated_at": now_utc()}},
            return_document=ReturnDocument.AFTER,
        )

    async def delete(self, doc_id: str) -> bool:
        res = await self._col.delete_one(self._scoped({"_id": doc_id}))
        return res.deleted_count == 1
