"""User accounts: password policy on every password set, permission trail on role changes."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from hrsm.auth import ROLES, hash_password, verify_password
from hrsm.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from hrsm.repositories.user_repository import UserRepository
from hrsm.services.audit_ledger import AuditLedger
from hrsm.services.permission_audit import PermissionAuditService
from hrsm.services.security_settings_service import SecurityPolicyStore
from hrsm.services.vacation_balance_service import VacationBalanceService
from hrsm.utils import new_id, now_utc, paginate, pagination_meta, parse_iso_datetime

PROFILE_FIELDS = ("name", "phone", "department_id", "position_id", "school_id", "hire_date", "employee_code")
HIDDEN_FIELDS = ("password_hash", "password_history", "security")


def public_view(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k not in HIDDEN_FIELDS}


class UserService:
    def __init__(self, db: AsyncIOMotorDatabase, store: SecurityPolicyStore):
        self._db = db
        self._users = UserRepository(db)
        self._store = store
        self._ledger = AuditLedger(db)
        self._permissions = PermissionAuditService(db)
        self._balances = VacationBalanceService(db)

    def _check_password(self, password: Optional[str]) -> None:
        if not password:
            raise ValidationError("Password is required")
        result = self._store.validate_password(password)
        if not result["valid"]:
            raise ValidationError("Password does not meet the security policy", errors=result["errors"])

    def _check_reuse(self, user: Dict[str, Any], password: str) -> None:
        history_count = self._store.section("password_policy").get("history_count", 0)
        if not history_count:
            return
        previous = [user.get("password_hash")] + list(user.get("password_history") or [])
        if any(h and verify_password(password, h) for h in previous[:history_count]):
            raise ValidationError(f"Password must not match any of the last {history_count} passwords")

    async def _get(self, tenant_id: str, user_id: str) -> Dict[str, Any]:
        user = await self._users.get(user_id, tenant_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def list(self, tenant_id: str, *, role: Optional[str] = None, is_active: Optional[bool] = None, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        flt: Dict[str, Any] = {"tenant_id": tenant_id}
        if role:
            flt["role"] = role
        if is_active is not None:
            flt["is_active"] = is_active
        skip, limit = paginate(page, limit)
        total = await self._db.users.count_documents(flt)
        docs = await self._db.users.find(flt).sort("email", 1).skip(skip).limit(limit).to_list(length=limit)
        return {"users": [public_view(d) for d in docs], "pagination": pagination_meta(total, skip // limit + 1, limit)}

    async def get(self, tenant_id: str, user_id: str) -> Dict[str, Any]:
        return public_view(await self._get(tenant_id, user_id))

    async def create(self, tenant_id: str, data: Dict[str, Any], *, actor: Dict[str, Any], request: Optional[Request] = None) -> Dict[str, Any]:
        await self._store.load()
        errors: List[str] = []
        email = (data.get("email") or "").strip().lower()
        if not email or "@" not in email:
            errors.append("A valid email is required")
        role = data.get("role") or "employee"
        if role not in ROLES:
            errors.append(f"role must be one of: {', '.join(ROLES)}")
        hire_date: Optional[datetime] = None
        try:
            hire_date = parse_iso_datetime(data.get("hire_date"))
        except ValueError:
            errors.append("hire_date must be an ISO date")
        if errors:
            raise ValidationError("Invalid user", errors=errors)
        self._check_password(data.get("password"))

        now = now_utc()
        doc = {
            **{k: data.get(k) for k in PROFILE_FIELDS if data.get(k) is not None},
            "_id": new_id(),
            "tenant_id": tenant_id,
            "email": email,
            "role": role,
            "permissions": list(data.get("permissions") or []),
            "password_hash": hash_password(data["password"]),
            "password_changed_at": now,
            "password_history": [],
            "hire_date": hire_date,
            "is_active": True,
            "status": "active",
            "created_by": actor.get("id"),
            "created_at": now,
            "updated_at": now,
        }
        try:
            await self._db.users.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError("A user with this email already exists")

        await self._ledger.record(user=actor, action="account_created", resource="users", resource_id=doc["_id"], after=public_view(doc), request=request, category="security", module="users")
        if hire_date is not None:
            await self._balances.initialize_for_employee(tenant_id, doc["_id"], now=now)
        return public_view(doc)

    async def update(self, tenant_id: str, user_id: str, data: Dict[str, Any], *, actor: Dict[str, Any], request: Optional[Request] = None) -> Dict[str, Any]:
        user = await self._get(tenant_id, user_id)
        fields: Dict[str, Any] = {k: data[k] for k in PROFILE_FIELDS if k in data}
        if "hire_date" in fields:
            try:
                fields["hire_date"] = parse_iso_datetime(fields["hire_date"])
            except ValueError:
                raise ValidationError("hire_date must be an ISO date")
        if "is_active" in data:
            fields["is_active"] = bool(data["is_active"])

        previous = {"role": user.get("role"), "permissions": list(user.get("permissions") or [])}
        current = dict(previous)
        if "role" in data and data["role"] is not None:
            if data["role"] not in ROLES:
                raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
            current["role"] = data["role"]
        if "permissions" in data and data["permissions"] is not None:
            current["permissions"] = list(data["permissions"])
        fields.update(current)
        if not fields:
            raise ValidationError("No fields to update")

        updated = await self._users.set_fields(user_id, fields)
        await self._permissions.record_change(
            actor=actor, target_user=user, previous=previous, current=current, reason=data.get("reason"), request=request,
        )
        await self._ledger.record(
            user=actor,
            action="user_updated",
            resource="users",
            resource_id=user_id,
            before={k: user.get(k) for k in fields},
            after=fields,
            request=request,
            module="users",
        )
        return public_view(updated)

    async def change_password(
        self,
        tenant_id: str,
        user_id: str,
        *,
        new_password: str,
        current_password: Optional[str],
        actor: Dict[str, Any],
        request: Optional[Request] = None,
    ) -> None:
        """Users changing their own password must prove the current one; HR resets need not."""
        await self._store.load()
        user = await self._get(tenant_id, user_id)
        if actor.get("id") == user_id and not verify_password(current_password or "", user.get("password_hash") or ""):
            raise AuthenticationError("Current password is incorrect")
        try:
            self._check_password(new_password)
        except ValidationError as exc:
            await self._ledger.record(user=actor, action="password_policy_violation", resource="users", resource_id=user_id, request=request, category="security", status="failure", metadata={"errors": exc.errors})
            raise
        self._check_reuse(user, new_password)

        history_count = self._store.section("password_policy").get("history_count", 0)
        history = ([user["password_hash"]] + list(user.get("password_history") or []))[:history_count]
        await self._users.set_fields(user_id, {
            "password_hash": hash_password(new_password),
            "password_history": history,
            "password_changed_at": now_utc(),
        })
        action = "password_changed" if actor.get("id") == user_id else "password_reset"
        await self._ledger.record(user=actor, action=action, resource="users", resource_id=user_id, request=request, category="security", severity="high")

    async def deactivate(self, tenant_id: str, user_id: str, *, actor: Dict[str, Any], request: Optional[Request] = None) -> Dict[str, Any]:
        user = await self._get(tenant_id, user_id)
        if user_id == actor.get("id"):
            raise ValidationError("You cannot deactivate your own account")
        updated = await self._users.set_fields(user_id, {"is_active": False, "status": "inactive", "deactivated_at": now_utc()})
        await self._ledger.record(
            user=actor,
            action="account_deactivated",
            resource="users",
            resource_id=user_id,
            before={"is_active": user.get("is_active", True)},
            after={"is_active": False},
            request=request,
            category="security",
            severity="high",
        )
        return public_view(updated)
