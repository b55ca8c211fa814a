"""Audit ledger: hash-bearing, append-only records of state changes.

Every entry stores sha256 over its canonical content (see
hrsm.domain.audit_hashing). Nothing in this module updates an entry after
insertion; tampering done behind its back shows up as a hash mismatch when
entries are verified.
"""
from __future__ import annotations

import json
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm.config import AUDIT_EXPORT_LIMIT
from hrsm.domain.audit_hashing import build_changes, compute_entry_hash, normalize_value, verify_entry_hash
from hrsm.errors import ValidationError
from hrsm.repositories.audit_log_repository import AuditLogRepository
from hrsm.utils import ensure_utc, new_id, now_utc, paginate, pagination_meta, parse_iso_datetime, serialize_doc, to_csv, truncate_to_millis

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("action", "resource", "user_id", "tenant_id")
SEVERITIES = ("low", "medium", "high", "critical")
RETENTION_POLICIES = ("standard", "extended", "permanent")
STATUSES = ("success", "failure", "warning")

EXPORT_FIELDS = [
    "id",
    "created_at",
    "tenant_id",
    "user_id",
    "action",
    "resource",
    "resource_id",
    "category",
    "severity",
    "status",
    "ip_address",
    "correlation_id",
    "hash",
]


def generate_correlation_id(now: Optional[datetime] = None) -> str:
    now = now or now_utc()
    return f"audit_{int(now.timestamp() * 1000)}_{secrets.token_hex(4)}"


def request_context(request: Optional[Request]) -> Dict[str, Any]:
    if request is None:
        return {}
    xff = request.headers.get("x-forwarded-for")
    if xff:
        ip = xff.split(",")[0].strip()
    elif request.client:
        ip = request.client.host
    else:
        ip = None
    return {
        "ip_address": ip,
        "user_agent": request.headers.get("user-agent"),
        "request_id": getattr(request.state, "request_id", None),
        "correlation_id": getattr(request.state, "correlation_id", None),
    }


def build_filter(
    *,
    tenant_id: Optional[str] = None,
    action: Optional[str] = None,
    severity: Optional[str] = None,
    user_id: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    ip_address: Optional[str] = None,
    resource: Optional[str] = None,
    start_date: Any = None,
    end_date: Any = None,
) -> Dict[str, Any]:
    flt: Dict[str, Any] = {}
    for key, value in (
        ("tenant_id", tenant_id),
        ("action", action),
        ("severity", severity),
        ("user_id", user_id),
        ("category", category),
        ("status", status),
        ("ip_address", ip_address),
        ("resource", resource),
    ):
        if value:
            flt[key] = value
    try:
        start = parse_iso_datetime(start_date)
        end = parse_iso_datetime(end_date)
    except ValueError:
        raise ValidationError("Invalid date filter; use ISO-8601 dates")
    if start or end:
        created: Dict[str, Any] = {}
        if start:
            created["$gte"] = start
        if end:
            created["$lte"] = end
        flt["created_at"] = created
    return flt


class AuditLedger:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._repo = AuditLogRepository(db)

    async def append(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """Validate, hash and persist one entry. Returns the stored document."""
        missing = [f for f in REQUIRED_FIELDS if not entry.get(f)]
        if missing:
            raise ValidationError(
                "Missing required audit fields",
                errors=[f"{f} is required" for f in missing],
            )

        severity = entry.get("severity") or "medium"
        retention = entry.get("retention_policy") or "standard"
        status = entry.get("status") or "success"
        errors = []
        if severity not in SEVERITIES:
            errors.append(f"severity must be one of: {', '.join(SEVERITIES)}")
        if retention not in RETENTION_POLICIES:
            errors.append(f"retention_policy must be one of: {', '.join(RETENTION_POLICIES)}")
        if status not in STATUSES:
            errors.append(f"status must be one of: {', '.join(STATUSES)}")
        if errors:
            raise ValidationError("Invalid audit entry", errors=errors)

        created_at = truncate_to_millis(ensure_utc(entry.get("created_at")) or now_utc())
        changes = entry.get("changes")
        if changes is None and ("before" in entry or "after" in entry):
            changes = build_changes(entry.get("before"), entry.get("after"))
        elif isinstance(changes, dict) and ("before" in changes or "after" in changes):
            changes = build_changes(changes.get("before"), changes.get("after"), changes.get("fields"))
        elif changes is not None:
            changes = normalize_value(changes)

        resource_id = entry.get("resource_id")
        doc: Dict[str, Any] = {
            "_id": new_id(),
            "action": entry["action"],
            "resource": entry["resource"],
            "resource_id": str(resource_id) if resource_id is not None else None,
            "user_id": str(entry["user_id"]),
            "tenant_id": entry["tenant_id"],
            "category": entry.get("category") or "data_modification",
            "severity": severity,
            "status": status,
            "module": entry.get("module"),
            "changes": changes,
            "correlation_id": entry.get("correlation_id") or generate_correlation_id(created_at),
            "request_id": entry.get("request_id"),
            "session_id": entry.get("session_id"),
            "ip_address": entry.get("ip_address"),
            "user_agent": entry.get("user_agent"),
            "retention_policy": retention,
            "compliance_flags": list(entry.get("compliance_flags") or []),
            "tags": list(entry.get("tags") or []),
            "metadata": normalize_value(entry.get("metadata") or {}),
            "created_at": created_at,
        }
        doc["hash"] = compute_entry_hash(doc)

        await self._repo.append(doc)
        logger.debug("audit append action=%s resource=%s id=%s", doc["action"], doc["resource"], doc["_id"])
        return doc

    async def record(
        self,
        *,
        user: Dict[str, Any],
        action: str,
        resource: str,
        resource_id: Any = None,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        request: Optional[Request] = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        """Append an entry on behalf of an authenticated user."""
        entry: Dict[str, Any] = {
            **{k: v for k, v in request_context(request).items() if v},
            **extra,
            "action": action,
            "resource": resource,
            "resource_id": resource_id,
            "user_id": user.get("id") or user.get("_id"),
            "tenant_id": user.get("tenant_id"),
        }
        if before is not None or after is not None:
            entry["changes"] = build_changes(before, after)
        return await self.append(entry)

    async def get(self, entry_id: str) -> Optional[Dict[str, Any]]:
        return await self._repo.get(entry_id)

    async def find_by_correlation(self, correlation_id: str) -> List[Dict[str, Any]]:
        return await self._repo.find_by_correlation(correlation_id)

    async def find_by_tenant_and_severity(self, tenant_id: str, severity: str, limit: int = 100) -> List[Dict[str, Any]]:
        if severity not in SEVERITIES:
            raise ValidationError(f"severity must be one of: {', '.join(SEVERITIES)}")
        return await self._repo.find_by_tenant_and_severity(tenant_id, severity, limit)

    async def find_expired_by_retention(
        self,
        standard_days: int,
        *,
        now: Optional[datetime] = None,
        limit: int = 1000,
    ) -> List[Dict[str, Any]]:
        return await self._repo.find_expired_by_retention(now or now_utc(), standard_days, limit)

    async def query(self, flt: Dict[str, Any], *, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        skip, limit = paginate(page, limit)
        page = skip // limit + 1
        total = await self._repo.count(flt)
        docs = await self._repo.list(flt, skip=skip, limit=limit)
        return {"logs": docs, "pagination": pagination_meta(total, page, limit)}

    def verify_entry(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        valid, expected, actual = verify_entry_hash(doc)
        return {"id": doc.get("_id"), "valid": valid, "expected": expected, "actual": actual}

    async def verify_tenant(self, tenant_id: str, limit: int = 1000) -> Dict[str, Any]:
        entries = await self._repo.list({"tenant_id": tenant_id}, limit=limit, ascending=True)
        errors = []
        for i, entry in enumerate(entries):
            valid, expected, actual = verify_entry_hash(entry)
            if not valid:
                errors.append({
                    "index": i,
                    "entry_id": entry["_id"],
                    "error": "hash_mismatch",
                    "expected": expected,
                    "actual": actual,
                })
        if errors:
            logger.warning("audit verification failed tenant=%s mismatches=%s", tenant_id, len(errors))
        return {"valid": not errors, "checked": len(entries), "errors": errors}

    async def export(
        self,
        flt: Dict[str, Any],
        fmt: str,
        *,
        user: Dict[str, Any],
        request: Optional[Request] = None,
    ) -> str:
        if fmt not in ("json", "csv"):
            raise ValidationError("format must be 'json' or 'csv'")
        docs = await self._repo.list(flt, limit=AUDIT_EXPORT_LIMIT)
        rows = [serialize_doc(d) for d in docs]

        await self.record(
            user=user,
            action="data-exported",
            resource="audit_logs",
            request=request,
            category="data_access",
            severity="high",
            metadata={"format": fmt, "count": len(rows), "filters": json.dumps(normalize_value(flt), sort_keys=True)},
        )

        if fmt == "csv":
            return to_csv(rows, EXPORT_FIELDS)
        return json.dumps(rows, ensure_ascii=False)

    async def cleanup_old_logs(
        self,
        days: int,
        *,
        user: Dict[str, Any],
        request: Optional[Request] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Delete the tenant's standard entries older than `days` and extended entries past their tier.

        Permanent entries are never deleted. The only destructive path.
        """
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ValidationError("days must be a positive integer")
        now = now or now_utc()
        cutoff = now - timedelta(days=days)
        deleted = await self._repo.delete_older_than(user["tenant_id"], cutoff, now)

        await self.record(
            user=user,
            action="logs-cleaned",
            resource="audit_logs",
            request=request,
            category="system",
            severity="high",
            retention_policy="permanent",
            metadata={"days": days, "cutoff": cutoff, "deleted_count": deleted},
        )
        return deleted
