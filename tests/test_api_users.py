from __future__ import annotations

from typing import Any, Dict

import httpx
import pytest

from conftest import DEFAULT_PASSWORD


@pytest.mark.anyio
async def test_create_user_applies_password_policy(async_client: httpx.AsyncClient, hr_headers: Dict[str, str]) -> None:
    resp = await async_client.post(
        "/api/users",
        json={"email": "new.hire@example.test", "password": "short", "name": "New Hire"},
        headers=hr_headers,
    )
    assert resp.status_code == 400
    errors = resp.json()["error"]["details"]["errors"]
    assert "Password must be at least 8 characters" in errors
    assert "Password must contain at least one number" in errors

    resp = await async_client.post(
        "/api/users",
        json={"email": "New.Hire@example.test", "password": DEFAULT_PASSWORD, "name": "New Hire", "hire_date": "2020-01-15"},
        headers=hr_headers,
    )
    assert resp.status_code == 201, resp.text
    created = resp.json()["user"]
    assert created["email"] == "new.hire@example.test"
    assert "password_hash" not in created

    balance = await async_client.get(f"/api/vacation-balances/{created['id']}", headers=hr_headers)
    assert balance.json()["balance"]["annual"]["allocated"] == 14

    resp = await async_client.post(
        "/api/users",
        json={"email": "new.hire@example.test", "password": DEFAULT_PASSWORD},
        headers=hr_headers,
    )
    assert resp.status_code == 409


@pytest.mark.anyio
async def test_employee_cannot_manage_users(async_client: httpx.AsyncClient, employee_headers: Dict[str, str], hr_user: Dict[str, Any]) -> None:
    resp = await async_client.get("/api/users", headers=employee_headers)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"

    resp = await async_client.get(f"/api/users/{hr_user['_id']}", headers=employee_headers)
    assert resp.status_code == 403


@pytest.mark.anyio
async def test_role_change_is_tracked(
    async_client: httpx.AsyncClient,
    admin_headers: Dict[str, str],
    employee_user: Dict[str, Any],
) -> None:
    resp = await async_client.put(
        f"/api/users/{employee_user['_id']}",
        json={"role": "manager", "permissions": ["approve_leaves"], "reason": "promotion"},
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["user"]["role"] == "manager"

    trail = (await async_client.get(f"/api/permission-audit/users/{employee_user['_id']}", headers=admin_headers)).json()["logs"]
    assert {t["change_type"] for t in trail} == {"role_changed", "permissions_added"}
    assert trail[0]["reason"] == "promotion"

    stats = (await async_client.get("/api/permission-audit/stats", headers=admin_headers)).json()["stats"]
    assert stats["total"] == 2

    resp = await async_client.put(f"/api/users/{employee_user['_id']}", json={"role": "janitor"}, headers=admin_headers)
    assert resp.status_code == 400


@pytest.mark.anyio
async def test_change_own_password(
    async_client: httpx.AsyncClient,
    employee_user: Dict[str, Any],
    employee_headers: Dict[str, str],
) -> None:
    url = f"/api/users/{employee_user['_id']}/password"
    resp = await async_client.put(url, json={"new_password": "An0ther!Pass", "current_password": "bad"}, headers=employee_headers)
    assert resp.status_code == 401

    resp = await async_client.put(url, json={"new_password": DEFAULT_PASSWORD, "current_password": DEFAULT_PASSWORD}, headers=employee_headers)
    assert resp.status_code == 400

    resp = await async_client.put(url, json={"new_password": "An0ther!Pass", "current_password": DEFAULT_PASSWORD}, headers=employee_headers)
    assert resp.status_code == 200

    login = await async_client.post("/api/auth/login", json={"email": employee_user["email"], "password": "An0ther!Pass"})
    assert login.status_code == 200


@pytest.mark.anyio
async def test_deactivate_user(
    async_client: httpx.AsyncClient,
    hr_user: Dict[str, Any],
    hr_headers: Dict[str, str],
    employee_user: Dict[str, Any],
) -> None:
    resp = await async_client.delete(f"/api/users/{hr_user['_id']}", headers=hr_headers)
    assert resp.status_code == 400

    resp = await async_client.delete(f"/api/users/{employee_user['_id']}", headers=hr_headers)
    assert resp.json()["user"]["is_active"] is False

    login = await async_client.post("/api/auth/login", json={"email": employee_user["email"], "password": DEFAULT_PASSWORD})
    assert login.json()["error"]["code"] == "account_inactive"
