from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request

from hrsm.auth import get_current_user, require_roles
from hrsm.errors import ValidationError
from hrsm.schemas import DevelopmentModeIn, PasswordTest, WhitelistIpIn, WhitelistToggle
from hrsm.services.security_settings_service import SecurityPolicyStore, get_security_store
from hrsm.utils import serialize_doc

router = APIRouter(prefix="/api/security-settings", tags=["security_settings"])

AdminDep = Depends(require_roles(["admin"]))

# Path segment -> settings section
SECTION_PATHS = {
    "2fa": "two_factor_auth",
    "password-policy": "password_policy",
    "lockout": "account_lockout",
    "session": "session_management",
    "audit": "audit_settings",
}


def _out(settings: Dict[str, Any], message: Optional[str] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {"success": True, "settings": serialize_doc(settings)}
    if message:
        out["message"] = message
    return out


@router.get("", dependencies=[AdminDep])
async def get_settings(store: SecurityPolicyStore = Depends(get_security_store)):
    return _out(await store.refresh())


@router.put("")
async def update_settings(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    user=AdminDep,
    store: SecurityPolicyStore = Depends(get_security_store),
):
    return _out(await store.update_settings(payload, actor=user, request=request), "Security settings updated")


@router.post("/ip-whitelist")
async def add_whitelisted_ip(
    payload: WhitelistIpIn,
    request: Request,
    user=AdminDep,
    store: SecurityPolicyStore = Depends(get_security_store),
):
    settings = await store.add_whitelisted_ip(payload.ip, description=payload.description, actor=user, request=request)
    return _out(settings, "IP address added to whitelist")


@router.delete("/ip-whitelist/{entry_id}")
async def remove_whitelisted_ip(
    entry_id: str,
    request: Request,
    user=AdminDep,
    store: SecurityPolicyStore = Depends(get_security_store),
):
    return _out(await store.remove_whitelisted_ip(entry_id, actor=user, request=request), "IP address removed from whitelist")


@router.put("/ip-whitelist/toggle")
async def toggle_ip_whitelist(
    request: Request,
    payload: Optional[WhitelistToggle] = None,
    user=AdminDep,
    store: SecurityPolicyStore = Depends(get_security_store),
):
    settings = await store.toggle_ip_whitelist(payload.enabled if payload else None, actor=user, request=request)
    state = "enabled" if settings["ip_whitelist"]["enabled"] else "disabled"
    return _out(settings, f"IP whitelist {state}")


@router.post("/development-mode/enable")
async def enable_development_mode(
    request: Request,
    payload: Optional[DevelopmentModeIn] = None,
    user=AdminDep,
    store: SecurityPolicyStore = Depends(get_security_store),
):
    payload = payload or DevelopmentModeIn()
    settings = await store.set_development_mode(
        True,
        actor=user,
        allowed_users=payload.allowed_users,
        maintenance_message=payload.maintenance_message,
        request=request,
    )
    return _out(settings, "Development mode enabled")


@router.post("/development-mode/disable")
async def disable_development_mode(
    request: Request,
    user=AdminDep,
    store: SecurityPolicyStore = Depends(get_security_store),
):
    return _out(await store.set_development_mode(False, actor=user, request=request), "Development mode disabled")


@router.post("/test-password")
async def test_password(payload: PasswordTest, user=Depends(get_current_user), store: SecurityPolicyStore = Depends(get_security_store)):
    if not payload.password:
        raise ValidationError("Password is required")
    return {"success": True, "validation": store.validate_password(payload.password)}


@router.put("/{section}")
async def update_section(
    section: str,
    request: Request,
    payload: Dict[str, Any] = Body(...),
    user=AdminDep,
    store: SecurityPolicyStore = Depends(get_security_store),
):
    name = SECTION_PATHS.get(section)
    if name is None:
        raise ValidationError(f"Unknown settings section '{section}'", errors=[f"section must be one of: {', '.join(SECTION_PATHS)}"])
    return _out(await store.update_section(name, payload, actor=user, request=request), "Security settings updated")
