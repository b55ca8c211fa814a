from __future__ import annotations

import csv
import io
from datetime import timedelta
from typing import Any, Dict

import httpx
import pytest

from hrsm.services.audit_ledger import AuditLedger
from hrsm.utils import now_utc

from conftest import DEFAULT_PASSWORD, TENANT_ID, actor_for


@pytest.mark.anyio
async def test_settings_require_admin(async_client: httpx.AsyncClient, hr_headers: Dict[str, str], admin_headers: Dict[str, str]) -> None:
    resp = await async_client.get("/api/security-settings", headers=hr_headers)
    assert resp.status_code == 403

    resp = await async_client.get("/api/security-settings", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["settings"]["account_lockout"]["max_attempts"] == 5


@pytest.mark.anyio
async def test_update_section_and_audit(async_client: httpx.AsyncClient, admin_user: Dict[str, Any], admin_headers: Dict[str, str]) -> None:
    resp = await async_client.put("/api/security-settings/password-policy", json={"min_length": 10}, headers=admin_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["settings"]["password_policy"]["min_length"] == 10

    resp = await async_client.put("/api/security-settings/lockout", json={"max_attempts": 1}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["details"]["errors"] == ["account_lockout.max_attempts must be between 3 and 10"]

    resp = await async_client.put("/api/security-settings/unknown", json={"a": 1}, headers=admin_headers)
    assert resp.status_code == 400

    resp = await async_client.post("/api/security-settings/test-password", json={"password": "Abcdef1!"}, headers=admin_headers)
    assert resp.json()["validation"]["errors"] == ["Password must be at least 10 characters"]

    logs = await async_client.get("/api/security-audit/logs", params={"action": "settings-changed"}, headers=admin_headers)
    body = logs.json()
    assert body["pagination"]["total"] == 1
    entry = body["logs"][0]
    assert entry["user_id"] == admin_user["_id"]
    assert entry["ip_address"] == "127.0.0.1"

    detail = await async_client.get(f"/api/security-audit/logs/{entry['id']}", headers=admin_headers)
    assert detail.json()["integrity"]["valid"] is True


@pytest.mark.anyio
async def test_ip_whitelist_blocks_requests(
    async_client: httpx.AsyncClient,
    admin_headers: Dict[str, str],
    employee_headers: Dict[str, str],
    test_db: Any,
) -> None:
    resp = await async_client.post("/api/security-settings/ip-whitelist", json={"ip": "10.1.0.0/16", "description": "vpn"}, headers=admin_headers)
    assert resp.status_code == 200
    resp = await async_client.put("/api/security-settings/ip-whitelist/toggle", json={"enabled": True}, headers=admin_headers)
    assert resp.json()["message"] == "IP whitelist enabled"

    blocked = await async_client.get("/api/leaves", headers=employee_headers)
    assert blocked.status_code == 403
    assert blocked.json()["error"]["code"] == "ip_not_whitelisted"
    assert await test_db.audit_logs.count_documents({"action": "ip_blocked"}) == 1

    allowed = await async_client.get("/api/leaves", headers={**employee_headers, "X-Forwarded-For": "10.1.4.2"})
    assert allowed.status_code == 200

    # Settings stay reachable so the whitelist can be switched off again
    resp = await async_client.put("/api/security-settings/ip-whitelist/toggle", headers=admin_headers)
    assert resp.json()["settings"]["ip_whitelist"]["enabled"] is False


@pytest.mark.anyio
async def test_development_mode_endpoints(async_client: httpx.AsyncClient, admin_headers: Dict[str, str], employee_user: Dict[str, Any]) -> None:
    resp = await async_client.post("/api/security-settings/development-mode/enable", json={"maintenance_message": "Upgrading"}, headers=admin_headers)
    assert resp.json()["settings"]["development_mode"]["enabled"] is True

    login = await async_client.post("/api/auth/login", json={"email": employee_user["email"], "password": DEFAULT_PASSWORD})
    assert login.status_code == 503
    assert login.json()["error"]["code"] == "maintenance_mode"
    assert login.json()["error"]["message"] == "Upgrading"

    await async_client.post("/api/security-settings/development-mode/disable", headers=admin_headers)
    login = await async_client.post("/api/auth/login", json={"email": employee_user["email"], "password": DEFAULT_PASSWORD})
    assert login.status_code == 200


@pytest.mark.anyio
async def test_audit_verify_detects_tampering(async_client: httpx.AsyncClient, admin_user: Dict[str, Any], admin_headers: Dict[str, str], test_db: Any) -> None:
    ledger = AuditLedger(test_db)
    first = await ledger.record(user=actor_for(admin_user), action="user_updated", resource="users", resource_id="u1", after={"name": "A"})
    await ledger.record(user=actor_for(admin_user), action="user_updated", resource="users", resource_id="u2", after={"name": "B"})

    ok = (await async_client.get("/api/security-audit/verify", headers=admin_headers)).json()
    assert ok["valid"] is True
    assert ok["checked"] == 2

    await test_db.audit_logs.update_one({"_id": first["_id"]}, {"$set": {"changes.after.name": "Z"}})
    tampered = (await async_client.get("/api/security-audit/verify", headers=admin_headers)).json()
    assert tampered["valid"] is False
    assert [e["entry_id"] for e in tampered["errors"]] == [first["_id"]]


@pytest.mark.anyio
async def test_export_and_cleanup(async_client: httpx.AsyncClient, admin_user: Dict[str, Any], admin_headers: Dict[str, str], test_db: Any) -> None:
    ledger = AuditLedger(test_db)
    await ledger.append({
        "action": "login_success",
        "resource": "auth",
        "user_id": admin_user["_id"],
        "tenant_id": TENANT_ID,
        "created_at": now_utc() - timedelta(days=400),
    })
    await ledger.record(user=actor_for(admin_user), action="user_updated", resource="users", resource_id="u1")

    resp = await async_client.get("/api/security-audit/export", params={"format": "csv"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    rows = list(csv.DictReader(io.StringIO(resp.text)))
    assert {r["action"] for r in rows} == {"login_success", "user_updated"}

    resp = await async_client.get("/api/security-audit/export", params={"format": "xml"}, headers=admin_headers)
    assert resp.status_code == 400

    resp = await async_client.post("/api/security-audit/cleanup", json={"days": 365}, headers=admin_headers)
    assert resp.json()["deletedCount"] == 1
    assert await test_db.audit_logs.count_documents({"action": "login_success"}) == 0
    assert await test_db.audit_logs.count_documents({"action": "data-exported"}) == 1


@pytest.mark.anyio
async def test_security_views(async_client: httpx.AsyncClient, admin_headers: Dict[str, str], employee_user: Dict[str, Any], employee_headers: Dict[str, str]) -> None:
    await async_client.post("/api/auth/login", json={"email": employee_user["email"], "password": "wrong"})

    failed = (await async_client.get("/api/security-audit/failed-logins", headers=admin_headers)).json()
    assert failed["count"] == 1
    suspicious = (await async_client.get("/api/security-audit/suspicious", headers=admin_headers)).json()
    assert suspicious["count"] == 1
    history = (await async_client.get("/api/security-audit/categories/login-history", headers=admin_headers)).json()
    assert len(history["logs"]) == 1
    stats = (await async_client.get("/api/security-audit/stats", headers=admin_headers)).json()["stats"]
    assert stats["failed_logins"] == 1
    assert stats["by_category"] == {"authentication": 1}

    resp = await async_client.get("/api/security-audit/categories/nonsense", headers=admin_headers)
    assert resp.status_code == 400

    own = await async_client.get(f"/api/security-audit/users/{employee_user['_id']}/activity", headers=employee_headers)
    assert len(own.json()["logs"]) == 1
    resp = await async_client.get("/api/security-audit/users/someone-else/activity", headers=employee_headers)
    assert resp.status_code == 403
