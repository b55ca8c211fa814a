from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from hrsm.auth import get_current_user
from hrsm.db import get_db
from hrsm.errors import AuthenticationError, ConflictError
from hrsm.schemas import LoginRequest, LoginResponse, OtpRequest
from hrsm.services import totp_service
from hrsm.services.audit_ledger import AuditLedger
from hrsm.services.auth_service import LoginService
from hrsm.services.security_settings_service import SecurityPolicyStore, get_security_store

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    db=Depends(get_db),
    store: SecurityPolicyStore = Depends(get_security_store),
):
    return await LoginService(db, store).login(payload.email, payload.password, otp_code=payload.otp_code, request=request)


@router.get("/me")
async def me(user=Depends(get_current_user)):
    return user


async def _record_2fa(db, user, action: str, request: Request, **metadata) -> None:
    await AuditLedger(db).record(
        user=user,
        action=action,
        resource="user_2fa",
        resource_id=user["id"],
        request=request,
        category="security",
        severity="high" if action == "2fa_disabled" else "medium",
        metadata=metadata,
    )


@router.post("/2fa/enable")
async def enable_2fa_endpoint(
    request: Request,
    user=Depends(get_current_user),
    db=Depends(get_db),
    store: SecurityPolicyStore = Depends(get_security_store),
):
    """Generate TOTP secret and backup codes. Must verify to activate."""
    if await totp_service.is_2fa_enabled(db, user["id"]):
        raise ConflictError("2FA is already enabled")

    count = store.section("two_factor_auth").get("backup_codes_count", 8)
    result = await totp_service.enable_2fa(db, user["id"], user["tenant_id"], backup_codes_count=count)
    await _record_2fa(db, user, "2fa_setup_started", request)
    return {"success": True, **result}


@router.post("/2fa/verify")
async def verify_2fa_endpoint(payload: OtpRequest, request: Request, user=Depends(get_current_user), db=Depends(get_db)):
    """Verify OTP to activate 2FA."""
    if not await totp_service.verify_and_activate_2fa(db, user["id"], payload.otp_code):
        await _record_2fa(db, user, "2fa_verification_failed", request)
        raise AuthenticationError("Invalid OTP code", code="invalid_otp")
    await _record_2fa(db, user, "2fa_enabled", request)
    return {"success": True, "message": "2FA activated successfully", "enabled": True}


@router.post("/2fa/disable")
async def disable_2fa_endpoint(payload: OtpRequest, request: Request, user=Depends(get_current_user), db=Depends(get_db)):
    """Disable 2FA (requires valid OTP)."""
    if not await totp_service.disable_2fa(db, user["id"], payload.otp_code):
        raise AuthenticationError("Invalid OTP code or 2FA not enabled", code="invalid_otp")
    await _record_2fa(db, user, "2fa_disabled", request)
    return {"success": True, "message": "2FA disabled successfully", "enabled": False}


@router.get("/2fa/status")
async def status_2fa_endpoint(
    user=Depends(get_current_user),
    db=Depends(get_db),
    store: SecurityPolicyStore = Depends(get_security_store),
):
    enabled = await totp_service.is_2fa_enabled(db, user["id"])
    return {
        "success": True,
        "enabled": enabled,
        "enforced": bool(store.section("two_factor_auth").get("enforced")),
        "backup_codes_remaining": await totp_service.backup_codes_remaining(db, user["id"]) if enabled else 0,
    }
