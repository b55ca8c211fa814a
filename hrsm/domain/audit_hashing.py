"""Content hashing for audit ledger entries.

hash = sha256(canonical_json({action, resource, resource_id, user_id, changes, timestamp}))

The canonical form sorts keys and uses compact separators so the digest does
not depend on dict ordering after a round trip through the document store.
`timestamp` is created_at rendered as UTC ISO-8601 with millisecond
precision, the resolution BSON dates keep.
"""
from __future__ import annotations

import hashlib
import json
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from hrsm.utils import ensure_utc, truncate_to_millis

_MAX_STR_LEN = 2000


def normalize_value(value: Any) -> Any:
    """Reduce a value to the JSON-safe shape it is stored and hashed in."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= _MAX_STR_LEN else value[: _MAX_STR_LEN - 1] + "…"
    if isinstance(value, datetime):
        return hash_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [normalize_value(v) for v in value]
    return str(value)


def shallow_diff(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> List[str]:
    before = before or {}
    after = after or {}
    keys = set(before.keys()) | set(after.keys())
    return sorted(k for k in keys if before.get(k) != after.get(k))


def build_changes(
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    fields: Optional[List[str]] = None,
) -> Dict[str, Any]:
    norm_before = normalize_value(before) if before is not None else None
    norm_after = normalize_value(after) if after is not None else None
    if fields is None:
        fields = shallow_diff(norm_before, norm_after)
    return {"before": norm_before, "after": norm_after, "fields": list(fields)}


def hash_timestamp(value: datetime) -> str:
    return truncate_to_millis(ensure_utc(value)).isoformat(timespec="milliseconds")


def canonical_payload(entry: Dict[str, Any]) -> str:
    created_at = entry.get("created_at")
    payload = {
        "action": entry.get("action"),
        "resource": entry.get("resource"),
        "resource_id": entry.get("resource_id"),
        "user_id": entry.get("user_id"),
        "changes": normalize_value(entry.get("changes")),
        "timestamp": hash_timestamp(created_at) if isinstance(created_at, datetime) else created_at,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_entry_hash(entry: Dict[str, Any]) -> str:
    return hashlib.sha256(canonical_payload(entry).encode("utf-8")).hexdigest()


def verify_entry_hash(entry: Dict[str, Any]) -> Tuple[bool, str, Optional[str]]:
    """Return (valid, expected, actual) for a persisted entry."""
    expected = compute_entry_hash(entry)
    actual = entry.get("hash")
    return expected == actual, expected, actual
