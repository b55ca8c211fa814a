from __future__ import annotations

from typing import Any

import pytest

from hrsm.domain.security_settings import SETTINGS_ID, default_settings
from hrsm.errors import NotFoundError, ValidationError
from hrsm.repositories.security_settings_repository import SecuritySettingsRepository
from hrsm.services.security_settings_service import SecurityPolicyStore

from conftest import actor_for


@pytest.mark.anyio
async def test_load_creates_defaults_once(test_db: Any) -> None:
    store = SecurityPolicyStore(test_db)
    with pytest.raises(RuntimeError):
        store.current()

    settings = await store.load()
    assert settings["password_policy"]["min_length"] == 8
    assert settings["account_lockout"]["max_attempts"] == 5

    await SecurityPolicyStore(test_db).load()
    assert await test_db.security_settings.count_documents({}) == 1


@pytest.mark.anyio
async def test_update_merges_and_audits(test_db: Any, admin_user) -> None:
    store = SecurityPolicyStore(test_db)
    await store.load()

    settings = await store.update_settings({"password_policy": {"min_length": 12}}, actor=actor_for(admin_user))

    assert settings["password_policy"]["min_length"] == 12
    assert settings["password_policy"]["require_uppercase"] is True
    assert store.current()["password_policy"]["min_length"] == 12
    entry = await test_db.audit_logs.find_one({"action": "settings-changed"})
    assert entry["severity"] == "critical"
    assert entry["changes"]["before"]["password_policy"]["min_length"] == 8

    result = store.validate_password("Ab1!")
    assert result["valid"] is False
    assert result["errors"][0] == "Password must be at least 12 characters"


@pytest.mark.anyio
async def test_update_rejects_out_of_range_and_unknown(test_db: Any, admin_user) -> None:
    store = SecurityPolicyStore(test_db)
    await store.load()
    actor = actor_for(admin_user)

    with pytest.raises(ValidationError) as exc:
        await store.update_settings({"account_lockout": {"max_attempts": 50}, "session_management": {"idle_timeout": "x"}}, actor=actor)
    assert "account_lockout.max_attempts must be between 3 and 10" in exc.value.errors
    assert "session_management.idle_timeout must be a number" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        await store.update_settings({"theme": {}}, actor=actor)
    assert exc.value.errors == ["Unknown settings section: theme"]

    with pytest.raises(ValidationError):
        await store.update_settings({}, actor=actor)

    stored = await store.refresh()
    assert stored["account_lockout"]["max_attempts"] == 5
    assert await test_db.audit_logs.count_documents({}) == 0


@pytest.mark.anyio
async def test_ip_whitelist_entries(test_db: Any, admin_user) -> None:
    store = SecurityPolicyStore(test_db)
    await store.load()
    actor = actor_for(admin_user)

    settings = await store.add_whitelisted_ip("10.0.0.0/24", description="office", actor=actor)
    entry = settings["ip_whitelist"]["allowed_ips"][0]
    assert entry["ip"] == "10.0.0.0/24"

    with pytest.raises(ValidationError):
        await store.add_whitelisted_ip("10.0.0.0/24", description=None, actor=actor)
    with pytest.raises(ValidationError):
        await store.add_whitelisted_ip("not-an-ip", description=None, actor=actor)

    assert store.is_ip_whitelisted("192.168.1.1") is True
    settings = await store.toggle_ip_whitelist(None, actor=actor)
    assert settings["ip_whitelist"]["enabled"] is True
    assert store.is_ip_whitelisted("10.0.0.17") is True
    assert store.is_ip_whitelisted("192.168.1.1") is False

    settings = await store.remove_whitelisted_ip(entry["_id"], actor=actor)
    assert settings["ip_whitelist"]["allowed_ips"] == []
    with pytest.raises(NotFoundError):
        await store.remove_whitelisted_ip(entry["_id"], actor=actor)


@pytest.mark.anyio
async def test_development_mode(test_db: Any, admin_user) -> None:
    store = SecurityPolicyStore(test_db)
    await store.load()
    settings = await store.set_development_mode(True, actor=actor_for(admin_user), allowed_users=["qa@example.test"], maintenance_message="Back soon")
    assert settings["development_mode"] == {
        "enabled": True,
        "allowed_users": ["qa@example.test"],
        "maintenance_message": "Back soon",
    }


@pytest.mark.anyio
async def test_first_creation_race_returns_winning_document(test_db: Any, monkeypatch) -> None:
    repo = SecuritySettingsRepository(test_db)
    winner = {"_id": SETTINGS_ID, **default_settings()}
    winner["password_policy"]["min_length"] = 14
    get = repo.get
    calls = []

    async def get_racing_insert():
        calls.append(1)
        if len(calls) == 1:
            await test_db.security_settings.insert_one(winner)
            return None
        return await get()

    monkeypatch.setattr(repo, "get", get_racing_insert)

    doc = await repo.get_or_create()

    assert doc["password_policy"]["min_length"] == 14
    assert await test_db.security_settings.count_documents({}) == 1
