"""Security policy store.

An explicit object wrapping the singleton settings document. `load()` reads
(and on first use creates) the document, `refresh()` re-reads it, and every
update replaces the cached copy with what was persisted. The FastAPI app
keeps one instance on `app.state.security_store`.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm.config import ENABLE_IP_WHITELIST
from hrsm.db import get_db
from hrsm.domain import security_settings as policy
from hrsm.errors import NotFoundError, ValidationError
from hrsm.repositories.security_settings_repository import SecuritySettingsRepository
from hrsm.services.audit_ledger import AuditLedger
from hrsm.utils import new_id, now_utc

logger = logging.getLogger(__name__)


class SecurityPolicyStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self._repo = SecuritySettingsRepository(db)
        self._ledger = AuditLedger(db)
        self._settings: Optional[Dict[str, Any]] = None

    @property
    def loaded(self) -> bool:
        return self._settings is not None

    async def load(self) -> Dict[str, Any]:
        """Idempotent: creates the settings document with defaults if absent."""
        if self._settings is None:
            self._settings = await self._repo.get_or_create()
        return self._settings

    async def refresh(self) -> Dict[str, Any]:
        self._settings = await self._repo.get_or_create()
        return self._settings

    def current(self) -> Dict[str, Any]:
        if self._settings is None:
            raise RuntimeError("security settings not loaded; call load() first")
        return self._settings

    def section(self, name: str) -> Dict[str, Any]:
        return dict(self.current().get(name) or policy.DEFAULT_SETTINGS[name])

    async def update_settings(
        self,
        partial: Dict[str, Any],
        *,
        actor: Dict[str, Any],
        request: Optional[Request] = None,
    ) -> Dict[str, Any]:
        """Merge `partial` into the stored settings after validating the result."""
        if not isinstance(partial, dict) or not partial:
            raise ValidationError("No settings supplied")
        errors: List[str] = policy.unknown_keys(partial)
        if errors:
            raise ValidationError("Invalid security settings", errors=errors)

        current = await self.refresh()
        merged = policy.deep_merge({s: current.get(s) or {} for s in policy.SECTIONS}, partial)
        errors = policy.validate_settings(merged)
        if errors:
            raise ValidationError("Invalid security settings", errors=errors)

        changed = {s: merged[s] for s in partial}
        before = {s: current.get(s) for s in partial}
        self._settings = await self._repo.replace_sections(changed, modified_by=actor.get("id"))

        await self._ledger.record(
            user=actor,
            action="settings-changed",
            resource="security_settings",
            resource_id=policy.SETTINGS_ID,
            before=before,
            after=changed,
            request=request,
            category="security",
            severity="critical",
        )
        logger.info("security settings updated sections=%s by=%s", sorted(changed), actor.get("id"))
        return self._settings

    async def update_section(
        self,
        section: str,
        values: Dict[str, Any],
        *,
        actor: Dict[str, Any],
        request: Optional[Request] = None,
    ) -> Dict[str, Any]:
        return await self.update_settings({section: values}, actor=actor, request=request)

    async def add_whitelisted_ip(
        self,
        ip: Optional[str],
        *,
        description: Optional[str],
        actor: Dict[str, Any],
        request: Optional[Request] = None,
    ) -> Dict[str, Any]:
        if not ip or not ip.strip():
            raise ValidationError("IP address is required")
        ip = ip.strip()
        if not policy.is_valid_ip_entry(ip):
            raise ValidationError("Invalid IP address or CIDR range")
        await self.refresh()
        entries = list(self.section("ip_whitelist").get("allowed_ips") or [])
        if any(e.get("ip") == ip for e in entries):
            raise ValidationError("IP address already whitelisted")
        entries.append({
            "_id": new_id(),
            "ip": ip,
            "description": description or "",
            "added_by": actor.get("id"),
            "added_date": now_utc(),
        })
        return await self.update_section("ip_whitelist", {"allowed_ips": entries}, actor=actor, request=request)

    async def remove_whitelisted_ip(
        self,
        entry_id: str,
        *,
        actor: Dict[str, Any],
        request: Optional[Request] = None,
    ) -> Dict[str, Any]:
        await self.refresh()
        entries = list(self.section("ip_whitelist").get("allowed_ips") or [])
        remaining = [e for e in entries if e.get("_id") != entry_id]
        if len(remaining) == len(entries):
            raise NotFoundError("IP not found in whitelist")
        return await self.update_section("ip_whitelist", {"allowed_ips": remaining}, actor=actor, request=request)

    async def toggle_ip_whitelist(
        self,
        enabled: Optional[bool],
        *,
        actor: Dict[str, Any],
        request: Optional[Request] = None,
    ) -> Dict[str, Any]:
        await self.refresh()
        if enabled is None:
            enabled = not self.section("ip_whitelist").get("enabled")
        return await self.update_section("ip_whitelist", {"enabled": bool(enabled)}, actor=actor, request=request)

    async def set_development_mode(
        self,
        enabled: bool,
        *,
        actor: Dict[str, Any],
        allowed_users: Optional[List[str]] = None,
        maintenance_message: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> Dict[str, Any]:
        values: Dict[str, Any] = {"enabled": enabled}
        if allowed_users is not None:
            values["allowed_users"] = list(allowed_users)
        if maintenance_message:
            values["maintenance_message"] = maintenance_message
        return await self.update_section("development_mode", values, actor=actor, request=request)

    def validate_password(self, candidate: str) -> Dict[str, Any]:
        return policy.validate_password(self.section("password_policy"), candidate)

    def is_ip_whitelisted(self, ip: str) -> bool:
        if not ENABLE_IP_WHITELIST:
            return True
        return policy.is_ip_whitelisted(self.section("ip_whitelist"), ip)


def store_for(app: FastAPI, db: AsyncIOMotorDatabase) -> SecurityPolicyStore:
    """Return the app's store, replacing it if it points at another database."""
    store = getattr(app.state, "security_store", None)
    if store is None or store.db is not db:
        store = SecurityPolicyStore(db)
        app.state.security_store = store
    return store


async def get_security_store(request: Request, db=Depends(get_db)) -> SecurityPolicyStore:
    store = store_for(request.app, db)
    await store.load()
    return store
