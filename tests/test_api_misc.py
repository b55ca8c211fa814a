from __future__ import annotations

from typing import Any, Dict

import httpx
import pytest

from conftest import TENANT_ID


@pytest.mark.anyio
async def test_health(async_client: httpx.AsyncClient, employee_headers: Dict[str, str]) -> None:
    await async_client.get("/api/leaves", headers=employee_headers)
    resp = await async_client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["service"] == "hrsm"
    assert body["status"] in ("ok", "degraded")
    assert body["ingestion"][TENANT_ID]["requests"] >= 1

    root = await async_client.get("/health")
    assert root.status_code == 200


@pytest.mark.anyio
async def test_department_crud(async_client: httpx.AsyncClient, hr_headers: Dict[str, str], employee_headers: Dict[str, str], test_db: Any) -> None:
    resp = await async_client.post("/api/departments", json={"name": "Finance"}, headers=employee_headers)
    assert resp.status_code == 403

    resp = await async_client.post("/api/departments", json={"name": " Finance ", "code": "FIN"}, headers=hr_headers)
    assert resp.status_code == 201
    dept = resp.json()["department"]
    assert dept["name"] == "Finance"

    resp = await async_client.post("/api/departments", json={"name": "Finance"}, headers=hr_headers)
    assert resp.status_code == 409
    resp = await async_client.post("/api/departments", json={"code": "X"}, headers=hr_headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["details"]["errors"] == ["name is required"]

    listing = await async_client.get("/api/departments", headers=employee_headers)
    assert [d["id"] for d in listing.json()["departments"]] == [dept["id"]]

    resp = await async_client.put(f"/api/departments/{dept['id']}", json={"code": "FN"}, headers=hr_headers)
    assert resp.json()["department"]["code"] == "FN"

    resp = await async_client.delete(f"/api/departments/{dept['id']}", headers=hr_headers)
    assert resp.json()["message"] == "Department deleted"
    resp = await async_client.get(f"/api/departments/{dept['id']}", headers=employee_headers)
    assert resp.status_code == 404
    assert await test_db.audit_logs.count_documents({"resource": "departments"}) == 3


@pytest.mark.anyio
async def test_announcement_choices(async_client: httpx.AsyncClient, hr_headers: Dict[str, str]) -> None:
    resp = await async_client.post("/api/announcements", json={"title": "Hi", "content": "All hands", "priority": "whenever"}, headers=hr_headers)
    assert resp.status_code == 400
    resp = await async_client.post("/api/announcements", json={"title": "Hi", "content": "All hands", "priority": "high"}, headers=hr_headers)
    assert resp.status_code == 201


@pytest.mark.anyio
async def test_notifications(
    async_client: httpx.AsyncClient,
    hr_headers: Dict[str, str],
    employee_user: Dict[str, Any],
    employee_headers: Dict[str, str],
) -> None:
    direct = await async_client.post(
        "/api/notifications",
        json={"title": "Payslip", "message": "Your payslip is ready", "user_id": employee_user["_id"]},
        headers=hr_headers,
    )
    assert direct.status_code == 201
    await async_client.post("/api/notifications", json={"title": "Holiday", "message": "Office closed"}, headers=hr_headers)

    count = await async_client.get("/api/notifications/unread-count", headers=employee_headers)
    assert count.json()["unread_count"] == 2

    note_id = direct.json()["notification"]["id"]
    resp = await async_client.put(f"/api/notifications/{note_id}/read", headers=employee_headers)
    assert resp.json()["notification"]["is_read"] is True

    unread = await async_client.get("/api/notifications", params={"unread_only": True}, headers=employee_headers)
    assert unread.json()["total"] == 1

    resp = await async_client.put("/api/notifications/read-all", headers=employee_headers)
    assert resp.json()["updated"] == 1

    resp = await async_client.delete(f"/api/notifications/{note_id}", headers=employee_headers)
    assert resp.status_code == 403


@pytest.mark.anyio
async def test_survey_lifecycle(
    async_client: httpx.AsyncClient,
    hr_headers: Dict[str, str],
    employee_user: Dict[str, Any],
    employee_headers: Dict[str, str],
) -> None:
    resp = await async_client.post("/api/surveys", json={"title": "", "questions": []}, headers=hr_headers)
    assert resp.status_code == 400

    resp = await async_client.post(
        "/api/surveys",
        json={"title": "Engagement", "questions": [{"id": "q1", "text": "How are you?"}]},
        headers=hr_headers,
    )
    survey_id = resp.json()["survey"]["id"]

    resp = await async_client.post(f"/api/surveys/{survey_id}/responses", json={"answers": {"q1": "good"}}, headers=employee_headers)
    assert resp.status_code == 400

    resp = await async_client.post(f"/api/surveys/{survey_id}/publish", json={"user_ids": [employee_user["_id"]]}, headers=hr_headers)
    assert resp.json()["assigned"] == 1
    resp = await async_client.post(f"/api/surveys/{survey_id}/publish", headers=hr_headers)
    assert resp.status_code == 400

    resp = await async_client.post(f"/api/surveys/{survey_id}/responses", json={"answers": {"q1": "good"}}, headers=employee_headers)
    assert resp.status_code == 201
    resp = await async_client.post(f"/api/surveys/{survey_id}/responses", json={"answers": {"q1": "great"}}, headers=employee_headers)
    assert resp.status_code == 409

    responses = await async_client.get(f"/api/surveys/{survey_id}/responses", headers=hr_headers)
    assert responses.json()["count"] == 1

    notes = await async_client.get("/api/notifications", headers=employee_headers)
    assert notes.json()["items"][0]["type"] == "survey"


@pytest.mark.anyio
async def test_backups_admin_only(async_client: httpx.AsyncClient, admin_headers: Dict[str, str], hr_headers: Dict[str, str]) -> None:
    resp = await async_client.get("/api/backups", headers=hr_headers)
    assert resp.status_code == 403

    resp = await async_client.get("/api/backups", headers=admin_headers)
    assert resp.json() == {"success": True, "items": [], "total": 0}

    resp = await async_client.delete("/api/backups/missing", headers=admin_headers)
    assert resp.status_code == 404

    resp = await async_client.post("/api/backups/cleanup", headers=admin_headers)
    assert resp.json()["deleted"] == 0
