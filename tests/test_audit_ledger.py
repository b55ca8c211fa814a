from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest

from hrsm.errors import ValidationError
from hrsm.services.audit_ledger import AuditLedger, build_filter
from hrsm.utils import now_utc

ACTOR = {"id": "admin1", "tenant_id": "t1"}


def _entry(**overrides: Any) -> dict:
    entry = {
        "action": "department_created",
        "resource": "departments",
        "resource_id": "d1",
        "user_id": "admin1",
        "tenant_id": "t1",
    }
    entry.update(overrides)
    return entry


@pytest.mark.anyio
async def test_append_stores_hash_that_verifies_after_reading_back(test_db: Any) -> None:
    ledger = AuditLedger(test_db)
    doc = await ledger.append(_entry(changes={"before": None, "after": {"name": "Science"}}))

    stored = await test_db.audit_logs.find_one({"_id": doc["_id"]})
    assert stored["hash"] == doc["hash"]
    assert ledger.verify_entry(stored)["valid"] is True

    # A second read recomputes the same digest
    again = await ledger.get(doc["_id"])
    assert ledger.verify_entry(again)["expected"] == stored["hash"]


@pytest.mark.anyio
async def test_defaults_applied(test_db: Any) -> None:
    doc = await AuditLedger(test_db).append(_entry())
    assert doc["severity"] == "medium"
    assert doc["status"] == "success"
    assert doc["retention_policy"] == "standard"
    assert doc["category"] == "data_modification"
    assert doc["correlation_id"].startswith("audit_")


@pytest.mark.anyio
async def test_missing_fields_are_all_reported(test_db: Any) -> None:
    with pytest.raises(ValidationError) as exc:
        await AuditLedger(test_db).append({"action": "x"})
    assert exc.value.errors == ["resource is required", "user_id is required", "tenant_id is required"]
    assert await test_db.audit_logs.count_documents({}) == 0


@pytest.mark.anyio
async def test_invalid_enums_are_rejected(test_db: Any) -> None:
    with pytest.raises(ValidationError) as exc:
        await AuditLedger(test_db).append(_entry(severity="extreme", retention_policy="forever"))
    assert len(exc.value.errors) == 2


@pytest.mark.anyio
async def test_tampering_is_detected_by_tenant_verification(test_db: Any) -> None:
    ledger = AuditLedger(test_db)
    first = await ledger.append(_entry())
    await ledger.append(_entry(resource_id="d2"))

    assert (await ledger.verify_tenant("t1"))["valid"] is True

    # Edit behind the ledger's back
    await test_db.audit_logs.update_one({"_id": first["_id"]}, {"$set": {"action": "department_deleted"}})

    result = await ledger.verify_tenant("t1")
    assert result["valid"] is False
    assert result["checked"] == 2
    assert [e["entry_id"] for e in result["errors"]] == [first["_id"]]
    assert result["errors"][0]["error"] == "hash_mismatch"


@pytest.mark.anyio
async def test_record_builds_changes_and_request_free_context(test_db: Any) -> None:
    doc = await AuditLedger(test_db).record(
        user=ACTOR,
        action="position_updated",
        resource="positions",
        resource_id="p1",
        before={"title": "Instructor"},
        after={"title": "Senior Instructor"},
    )
    assert doc["user_id"] == "admin1"
    assert doc["tenant_id"] == "t1"
    assert doc["changes"]["fields"] == ["title"]
    assert doc["ip_address"] is None


@pytest.mark.anyio
async def test_find_by_correlation_and_severity(test_db: Any) -> None:
    ledger = AuditLedger(test_db)
    await ledger.append(_entry(correlation_id="c-1", severity="high"))
    await ledger.append(_entry(correlation_id="c-1"))
    await ledger.append(_entry(correlation_id="c-2", severity="high", tenant_id="t2"))

    assert len(await ledger.find_by_correlation("c-1")) == 2
    high = await ledger.find_by_tenant_and_severity("t1", "high")
    assert [d["correlation_id"] for d in high] == ["c-1"]
    with pytest.raises(ValidationError):
        await ledger.find_by_tenant_and_severity("t1", "bogus")


@pytest.mark.anyio
async def test_retention_expiry_and_cleanup_spare_permanent_entries(test_db: Any) -> None:
    ledger = AuditLedger(test_db)
    now = now_utc()
    old = now - timedelta(days=400)
    very_old = now - timedelta(days=3000)

    standard = await ledger.append(_entry(created_at=old))
    extended = await ledger.append(_entry(created_at=old, retention_policy="extended"))
    other_tenant = await ledger.append(_entry(created_at=old, tenant_id="t2"))
    extended_expired = await ledger.append(_entry(created_at=very_old, retention_policy="extended"))
    permanent = await ledger.append(_entry(created_at=very_old, retention_policy="permanent"))
    await ledger.append(_entry())

    expired = await ledger.find_expired_by_retention(365, now=now)
    assert {d["_id"] for d in expired} == {standard["_id"], extended_expired["_id"], other_tenant["_id"]}

    deleted = await ledger.cleanup_old_logs(365, user=ACTOR, now=now)
    assert deleted == 2
    assert await test_db.audit_logs.find_one({"_id": standard["_id"]}) is None
    assert await test_db.audit_logs.find_one({"_id": extended_expired["_id"]}) is None
    assert await test_db.audit_logs.find_one({"_id": extended["_id"]}) is not None
    assert await test_db.audit_logs.find_one({"_id": permanent["_id"]}) is not None
    assert await test_db.audit_logs.find_one({"_id": other_tenant["_id"]}) is not None

    marker = await test_db.audit_logs.find_one({"action": "logs-cleaned"})
    assert marker["retention_policy"] == "permanent"
    assert marker["metadata"]["deleted_count"] == 2


@pytest.mark.anyio
async def test_cleanup_requires_positive_days(test_db: Any) -> None:
    with pytest.raises(ValidationError):
        await AuditLedger(test_db).cleanup_old_logs(0, user=ACTOR)


@pytest.mark.anyio
async def test_query_paginates_newest_first(test_db: Any) -> None:
    ledger = AuditLedger(test_db)
    now = now_utc()
    for i in range(3):
        await ledger.append(_entry(resource_id=f"d{i}", created_at=now - timedelta(minutes=10 - i)))

    result = await ledger.query({"tenant_id": "t1"}, page=1, limit=2)
    assert [d["resource_id"] for d in result["logs"]] == ["d2", "d1"]
    assert result["pagination"] == {"total": 3, "page": 1, "limit": 2, "pages": 2}


@pytest.mark.anyio
async def test_export_csv_records_an_export_entry(test_db: Any) -> None:
    ledger = AuditLedger(test_db)
    await ledger.append(_entry())
    body = await ledger.export({"tenant_id": "t1"}, "csv", user=ACTOR)
    lines = body.strip().splitlines()
    assert lines[0].startswith("id,created_at,tenant_id")
    assert len(lines) == 2
    assert await test_db.audit_logs.count_documents({"action": "data-exported"}) == 1

    with pytest.raises(ValidationError):
        await ledger.export({}, "xml", user=ACTOR)


def test_build_filter_rejects_bad_dates() -> None:
    assert build_filter(tenant_id="t1", severity="high") == {"tenant_id": "t1", "severity": "high"}
    flt = build_filter(tenant_id="t1", start_date="2024-01-01")
    assert "$gte" in flt["created_at"]
    with pytest.raises(ValidationError):
        build_filter(start_date="yesterday")
