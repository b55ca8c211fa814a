"""Append-only access to the audit_logs collection.

There is no update method. Reads return fresh documents from
the cursor; callers receive them as-is and nothing read here is written back.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from hrsm.config import EXTENDED_RETENTION_DAYS

logger = logging.getLogger(__name__)


class AuditLogRepository:
  """Repository for audit_logs collection."""

  def __init__(self, db: AsyncIOMotorDatabase):
    self._col = db["audit_logs"]

  async def append(self, doc: Dict[str, Any]) -> Dict[str, Any]:
    await self._col.insert_one(doc)
    return doc

  async def get(self, entry_id: str) -> Optional[Dict[str, Any]]:
    return await self._col.find_one({"_id": entry_id})

  async def find_by_correlation(self, correlation_id: str) -> List[Dict[str, Any]]:
    cursor = self._col.find({"correlation_id": correlation_id}).sort("created_at", ASCENDING)
    return await cursor.to_list(length=None)

  async def find_by_tenant_and_severity(
    self,
    tenant_id: str,
    severity: str,
    limit: int = 100,
  ) -> List[Dict[str, Any]]:
    cursor = (
      self._col.find({"tenant_id": tenant_id, "severity": severity})
      .sort("created_at", DESCENDING)
      .limit(limit)
    )
    return await cursor.to_list(length=limit)

  def _expired_filter(self, now: datetime, standard_days: int) -> Dict[str, Any]:
    return {
      "$or": [
        {
          "retention_policy": {"$in": ["standard", None]},
          "created_at": {"$lt": now - timedelta(days=standard_days)},
        },
        {
          "retention_policy": "extended",
          "created_at": {"$lt": now - timedelta(days=EXTENDED_RETENTION_DAYS)},
        },
      ]
    }

  async def find_expired_by_retention(
    self,
    now: datetime,
    standard_days: int,
    limit: int = 1000,
  ) -> List[Dict[str, Any]]:
    cursor = self._col.find(self._expired_filter(now, standard_days)).sort("created_at", ASCENDING).limit(limit)
    return await cursor.to_list(length=limit)

  async def list(
    self,
    flt: Dict[str, Any],
    *,
    skip: int = 0,
    limit: int = 50,
    ascending: bool = False,
  ) -> List[Dict[str, Any]]:
    order = ASCENDING if ascending else DESCENDING
    cursor = self._col.find(flt).sort("created_at", order).skip(skip).limit(limit)
    return await cursor.to_list(length=limit)

  async def count(self, flt: Dict[str, Any]) -> int:
    return await self._col.count_documents(flt)

  async def distinct(self, field: str, flt: Dict[str, Any]) -> List[Any]:
    return await self._col.distinct(field, flt)

  async def delete_older_than(self, tenant_id: str, cutoff: datetime, now: datetime) -> int:
    res = await self._col.delete_many({
      "tenant_id": tenant_id,
      "$or": [
        {"retention_policy": {"$in": ["standard", None]}, "created_at": {"$lt": cutoff}},
        {"retention_policy": "extended", "created_at": {"$lt": now - timedelta(days=EXTENDED_RETENTION_DAYS)}},
      ],
    })
    logger.info("Deleted %s audit log entries for tenant %s older than %s", res.deleted_count, tenant_id, cutoff.isoformat())
    return res.deleted_count

  async def ensure_indexes(self) -> None:
    await self._col.create_index([("tenant_id", ASCENDING), ("created_at", DESCENDING)])
    await self._col.create_index([("tenant_id", ASCENDING), ("severity", ASCENDING)])
    await self._col.create_index("correlation_id")
    await self._col.create_index("action")
    await self._col.create_index("user_id")
    await self._col.create_index([("created_at", DESCENDING)])
