from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict

import httpx
import pytest

from hrsm.utils import now_utc

from conftest import auth_headers


@pytest.mark.anyio
async def test_balance_endpoints(
    async_client: httpx.AsyncClient,
    employee_user: Dict[str, Any],
    employee_headers: Dict[str, str],
    hr_headers: Dict[str, str],
    admin_headers: Dict[str, str],
) -> None:
    emp = employee_user["_id"]
    year = now_utc().year

    own = await async_client.get(f"/api/vacation-balances/{emp}", headers=employee_headers)
    assert own.status_code == 200
    assert own.json()["balance"]["annual"]["available"] == 14

    check = await async_client.post(f"/api/vacation-balances/{emp}/check", json={"leave_type": "annual", "days": 20}, headers=employee_headers)
    assert check.json()["sufficient"] is False

    resp = await async_client.post(f"/api/vacation-balances/{emp}/use", json={"leave_type": "annual", "days": 3}, headers=employee_headers)
    assert resp.status_code == 403

    resp = await async_client.post(f"/api/vacation-balances/{emp}/use", json={"leave_type": "annual", "days": 3, "reason": "trip"}, headers=hr_headers)
    assert resp.json()["balance"]["annual"]["used"] == 3

    resp = await async_client.post(f"/api/vacation-balances/{emp}/use", json={"leave_type": "annual", "days": 30}, headers=hr_headers)
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "insufficient_balance"
    assert error["details"]["available"] == 11

    resp = await async_client.put(f"/api/vacation-balances/{emp}/adjust", json={"leave_type": "annual", "allocated": 21, "year": year}, headers=hr_headers)
    assert resp.status_code == 403
    resp = await async_client.put(f"/api/vacation-balances/{emp}/adjust", json={"leave_type": "annual", "allocated": 21, "year": year}, headers=admin_headers)
    assert resp.json()["balance"]["annual"]["available"] == 18

    listing = await async_client.get("/api/vacation-balances", headers=hr_headers)
    assert listing.json()["total"] == 1


@pytest.mark.anyio
async def test_leave_flow(
    async_client: httpx.AsyncClient,
    employee_user: Dict[str, Any],
    employee_headers: Dict[str, str],
    make_user,
) -> None:
    manager = await make_user("manager")
    resp = await async_client.post(
        "/api/leaves",
        json={"leave_type": "annual", "start_date": "2024-10-06", "end_date": "2024-10-08"},
        headers=employee_headers,
    )
    assert resp.status_code == 201, resp.text
    leave = resp.json()["leave"]
    assert leave["days"] == 3

    resp = await async_client.post(f"/api/leaves/{leave['id']}/approve", json={}, headers=employee_headers)
    assert resp.status_code == 403

    resp = await async_client.post(f"/api/leaves/{leave['id']}/approve", json={"note": "enjoy"}, headers=auth_headers(manager))
    assert resp.json()["leave"]["status"] == "approved"

    resp = await async_client.post(f"/api/leaves/{leave['id']}/approve", headers=auth_headers(manager))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_state"

    mine = await async_client.get("/api/leaves", headers=employee_headers)
    assert [item["id"] for item in mine.json()["leaves"]] == [leave["id"]]


@pytest.mark.anyio
async def test_mixed_vacation_endpoints(
    async_client: httpx.AsyncClient,
    employee_user: Dict[str, Any],
    employee_headers: Dict[str, str],
    hr_headers: Dict[str, str],
) -> None:
    now = now_utc()
    payload = {
        "name": "Summer break",
        "start_date": (now - timedelta(days=1)).isoformat(),
        "end_date": (now + timedelta(days=5)).isoformat(),
        "total_days": 6,
        "personal_days_required": 2,
    }
    resp = await async_client.post("/api/mixed-vacation/policies", json=payload, headers=employee_headers)
    assert resp.status_code == 403

    resp = await async_client.post("/api/mixed-vacation/policies", json={**payload, "total_days": 0}, headers=hr_headers)
    assert resp.status_code == 400

    resp = await async_client.post("/api/mixed-vacation/policies", json=payload, headers=hr_headers)
    assert resp.status_code == 201
    policy_id = resp.json()["policy"]["id"]

    resp = await async_client.post(f"/api/mixed-vacation/policies/{policy_id}/apply/{employee_user['_id']}", headers=hr_headers)
    assert resp.json()["error"]["code"] == "invalid_state"

    await async_client.post(f"/api/mixed-vacation/policies/{policy_id}/activate", headers=hr_headers)
    active = (await async_client.get("/api/mixed-vacation/policies/active", headers=employee_headers)).json()["policies"]
    assert [p["id"] for p in active] == [policy_id]

    resp = await async_client.post(f"/api/mixed-vacation/policies/{policy_id}/apply/{employee_user['_id']}", headers=hr_headers)
    assert resp.status_code == 200
    assert resp.json()["available"] == 12

    resp = await async_client.post(f"/api/mixed-vacation/policies/{policy_id}/apply/{employee_user['_id']}", headers=hr_headers)
    assert resp.status_code == 409

    breakdown = await async_client.get(
        f"/api/mixed-vacation/policies/{policy_id}/breakdown",
        params={"employee_id": employee_user["_id"]},
        headers=employee_headers,
    )
    assert breakdown.json()["breakdown"]["policy_days"] == 4
    assert breakdown.json()["breakdown"]["applied"] is True

    apps = await async_client.get(f"/api/mixed-vacation/employees/{employee_user['_id']}/applications", headers=employee_headers)
    assert len(apps.json()["applications"]) == 1

    resp = await async_client.delete(f"/api/mixed-vacation/policies/{policy_id}", headers=hr_headers)
    assert resp.status_code == 400
    resp = await async_client.post(f"/api/mixed-vacation/policies/{policy_id}/cancel", json={"reason": "moved"}, headers=hr_headers)
    assert resp.json()["policy"]["status"] == "cancelled"


@pytest.mark.anyio
async def test_resigned_employee_endpoints(
    async_client: httpx.AsyncClient,
    employee_user: Dict[str, Any],
    employee_headers: Dict[str, str],
    hr_headers: Dict[str, str],
    test_db: Any,
) -> None:
    resp = await async_client.post("/api/resigned-employees", json={"employee_id": employee_user["_id"]}, headers=employee_headers)
    assert resp.status_code == 403

    resp = await async_client.post(
        "/api/resigned-employees",
        json={"employee_id": employee_user["_id"], "resignation_type": "termination", "resignation_reason": "restructuring"},
        headers=hr_headers,
    )
    assert resp.status_code == 201
    record_id = resp.json()["resignedEmployee"]["id"]

    resp = await async_client.post(f"/api/resigned-employees/{record_id}/penalties", json={"description": "Laptop", "amount": 900}, headers=hr_headers)
    assert resp.json()["resignedEmployee"]["total_penalties"] == 900

    letter = await async_client.post(f"/api/resigned-employees/{record_id}/generate-letter", headers=hr_headers)
    assert "termination of employment" in letter.json()["letter"]

    # Age the record past its edit window
    await test_db.resigned_employees.update_one(
        {"_id": record_id},
        {"$set": {"created_at": now_utc() - timedelta(hours=25)}},
    )
    resp = await async_client.post(f"/api/resigned-employees/{record_id}/penalties", json={"description": "Phone", "amount": 100}, headers=hr_headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "record_locked"

    resp = await async_client.put(f"/api/resigned-employees/{record_id}/status", json={"status": "archived"}, headers=hr_headers)
    assert resp.json()["resignedEmployee"]["status"] == "archived"

    listing = await async_client.get("/api/resigned-employees", params={"status": "archived"}, headers=hr_headers)
    assert listing.json()["pagination"]["total"] == 1
    assert listing.json()["resignedEmployees"][0]["is_locked"] is True
