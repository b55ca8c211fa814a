"""Login flow: credential check, account lockout, development mode and 2FA.

Every outcome lands in the audit ledger under the `authentication` category
so the security-audit views can report on it.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm.auth import create_access_token, verify_password
from hrsm.domain.security_settings import evaluate_lockout
from hrsm.errors import AccountLockedError, AuthenticationError, MaintenanceModeError
from hrsm.repositories.user_repository import UserRepository
from hrsm.services import totp_service
from hrsm.services.audit_ledger import AuditLedger
from hrsm.services.security_settings_service import SecurityPolicyStore
from hrsm.utils import now_utc, serialize_doc

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"
SYSTEM_TENANT = "system"

PUBLIC_USER_FIELDS = ("id", "email", "name", "role", "tenant_id", "permissions", "department_id", "is_active")


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_doc(user)
    return {k: out[k] for k in PUBLIC_USER_FIELDS if out.get(k) is not None}


class LoginService:
    def __init__(self, db: AsyncIOMotorDatabase, store: SecurityPolicyStore):
        self._db = db
        self._users = UserRepository(db)
        self._ledger = AuditLedger(db)
        self._store = store

    async def _event(
        self,
        action: str,
        *,
        user: Optional[Dict[str, Any]],
        request: Optional[Request],
        status: str,
        severity: str,
        **details: Any,
    ) -> None:
        actor = {"id": ANONYMOUS_USER, "tenant_id": SYSTEM_TENANT}
        if user is not None:
            actor = {"id": user["_id"], "tenant_id": user.get("tenant_id") or SYSTEM_TENANT}
        await self._ledger.record(
            user=actor,
            action=action,
            resource="auth",
            resource_id=actor["id"],
            request=request,
            category="authentication",
            status=status,
            severity=severity,
            metadata=details,
        )

    async def _register_failure(
        self,
        user: Dict[str, Any],
        state: Dict[str, Any],
        *,
        reason: str,
        request: Optional[Request],
        now: datetime,
    ) -> None:
        """Count one failed attempt and lock the account once the limit is hit."""
        lockout = self._store.section("account_lockout")
        attempts = state["failed_attempts"] + 1
        await self._users.record_failed_login(user["_id"], attempts, now)
        await self._event("login_failed", user=user, request=request, status="failure", severity="medium", reason=reason, attempts=attempts)

        max_attempts = lockout.get("max_attempts", 5)
        if lockout.get("enabled", True) and attempts >= max_attempts:
            until = now + timedelta(minutes=lockout.get("lockout_duration", 30))
            await self._users.lock(user["_id"], until)
            await self._event("account_locked", user=user, request=request, status="warning", severity="high", locked_until=until.isoformat())
            logger.warning("account locked user=%s until=%s", user["_id"], until.isoformat())
            raise AccountLockedError(locked_until=until.isoformat())

        raise AuthenticationError(remaining_attempts=max(max_attempts - attempts, 0))

    async def login(
        self,
        email: str,
        password: str,
        *,
        otp_code: Optional[str] = None,
        request: Optional[Request] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or now_utc()
        await self._store.load()

        user = await self._users.get_by_email(email)
        if not user:
            await self._event("login_failed", user=None, request=request, status="failure", severity="medium", reason="unknown_email", email=(email or "").strip().lower())
            raise AuthenticationError()

        security = user.get("security") or {}
        state = evaluate_lockout(
            self._store.section("account_lockout"),
            failed_attempts=security.get("failed_attempts", 0),
            last_failed_at=security.get("last_failed_at"),
            locked_until=security.get("locked_until"),
            now=now,
        )
        if state["locked"]:
            await self._event("login_failed", user=user, request=request, status="failure", severity="high", reason="account_locked")
            raise AccountLockedError(locked_until=state["locked_until"].isoformat())

        if not verify_password(password or "", user.get("password_hash") or ""):
            await self._register_failure(user, state, reason="bad_password", request=request, now=now)

        if not user.get("is_active", True):
            await self._event("login_failed", user=user, request=request, status="failure", severity="medium", reason="inactive")
            raise AuthenticationError("Account is inactive", code="account_inactive")

        dev_mode = self._store.section("development_mode")
        if dev_mode.get("enabled") and user.get("role") != "admin":
            allowed = set(dev_mode.get("allowed_users") or [])
            if user["_id"] not in allowed and user.get("email") not in allowed:
                await self._event("login_failed", user=user, request=request, status="failure", severity="low", reason="maintenance")
                raise MaintenanceModeError(dev_mode.get("maintenance_message") or "System is under maintenance")

        method = "password"
        two_factor_enabled = await totp_service.is_2fa_enabled(self._db, user["_id"])
        if two_factor_enabled:
            if not otp_code:
                raise AuthenticationError("Two-factor code required", code="otp_required")
            ok, method = await totp_service.validate_otp_or_backup_code(self._db, user["_id"], otp_code)
            if not ok:
                await self._register_failure(user, state, reason="invalid_otp", request=request, now=now)

        await self._users.record_successful_login(user["_id"], now)
        await self._event("login_success", user=user, request=request, status="success", severity="low", method=method)

        token = create_access_token(subject=user["_id"], tenant_id=user.get("tenant_id") or "", role=user.get("role") or "employee")
        enforced = bool(self._store.section("two_factor_auth").get("enforced"))
        return {
            "access_token": token,
            "token_type": "bearer",
            "user": public_user(user),
            "two_factor_setup_required": enforced and not two_factor_enabled,
        }
