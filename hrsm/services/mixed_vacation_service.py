"""Mixed vacation policies.

A policy grants `total_days` off in a fixed window, of which
`personal_days_required` come out of each employee's annual balance.
Applying a policy deducts those days, records an application and appends
to the audit ledger. The deduction and the audit append are separate
writes; when the append fails the gap is written to audit_discrepancies.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm.domain.policy_state_machine import POLICY_STATUSES, validate_transition
from hrsm.errors import AppError, ConflictError, InvalidStateError, NotFoundError, ValidationError
from hrsm.repositories.mixed_vacation_repository import MixedVacationRepository
from hrsm.repositories.user_repository import UserRepository
from hrsm.services.audit_ledger import AuditLedger
from hrsm.services.vacation_balance_service import VacationBalanceService
from hrsm.utils import ensure_utc, new_id, now_utc, paginate, pagination_meta, parse_iso_datetime

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = ("start_date", "end_date", "total_days", "personal_days_required")
EDITABLE_FIELDS = ("name", "description") + SCHEDULE_FIELDS


def _as_number(value: Any, field: str, errors: List[str]) -> Optional[float]:
    if isinstance(value, bool):
        errors.append(f"{field} must be a number")
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        errors.append(f"{field} must be a number")
        return None
    return int(number) if number.is_integer() else number


def validate_policy_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize and check a full set of policy fields; collects every problem."""
    errors: List[str] = []
    name = (data.get("name") or "").strip()
    if not name:
        errors.append("name is required")

    try:
        start = parse_iso_datetime(data.get("start_date"))
        end = parse_iso_datetime(data.get("end_date"))
    except ValueError:
        start = end = None
        errors.append("start_date and end_date must be ISO-8601 dates")
    else:
        if start is None:
            errors.append("start_date is required")
        if end is None:
            errors.append("end_date is required")
        if start and end and end < start:
            errors.append("end_date must be on or after start_date")

    total = _as_number(data.get("total_days"), "total_days", errors)
    personal = _as_number(data.get("personal_days_required"), "personal_days_required", errors)
    if total is not None and total <= 0:
        errors.append("total_days must be greater than 0")
    if personal is not None and personal < 0:
        errors.append("personal_days_required cannot be negative")
    if total is not None and personal is not None and personal > total:
        errors.append("personal_days_required cannot exceed total_days")

    if errors:
        raise ValidationError("Invalid mixed vacation policy", errors=errors)
    return {
        "name": name,
        "description": data.get("description") or "",
        "start_date": start,
        "end_date": end,
        "total_days": total,
        "personal_days_required": personal,
    }


class MixedVacationService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._repo = MixedVacationRepository(db)
        self._users = UserRepository(db)
        self._balances = VacationBalanceService(db)
        self._ledger = AuditLedger(db)

    async def _get(self, tenant_id: str, policy_id: str) -> Dict[str, Any]:
        policy = await self._repo.get_policy(tenant_id, policy_id)
        if not policy:
            raise NotFoundError("Policy not found", policy_id=policy_id)
        return policy

    async def create_policy(self, tenant_id: str, data: Dict[str, Any], *, actor: Dict[str, Any]) -> Dict[str, Any]:
        fields = validate_policy_fields(data)
        now = now_utc()
        doc = {
            "_id": new_id(),
            "tenant_id": tenant_id,
            **fields,
            "status": "draft",
            "created_by": actor.get("id"),
            "applications_count": 0,
            "created_at": now,
            "updated_at": now,
        }
        await self._repo.insert_policy(doc)
        await self._ledger.record(user=actor, action="policy_created", resource="mixed_vacation_policies", resource_id=doc["_id"], after=doc, module="mixed_vacation")
        return doc

    async def expire_due_policies(self, tenant_id: str, now: Optional[datetime] = None) -> int:
        expired = await self._repo.expire_due(tenant_id, now or now_utc())
        if expired:
            logger.info("expired %s mixed vacation policies tenant=%s", expired, tenant_id)
        return expired

    async def list_policies(
        self,
        tenant_id: str,
        *,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if status and status not in POLICY_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(POLICY_STATUSES)}")
        await self.expire_due_policies(tenant_id, now)
        flt = {"status": status} if status else {}
        skip, limit = paginate(page, limit)
        total = await self._repo.count_policies(tenant_id, flt)
        items = await self._repo.list_policies(tenant_id, flt, skip=skip, limit=limit)
        return {"policies": items, "pagination": pagination_meta(total, skip // limit + 1, limit)}

    async def get_policy(self, tenant_id: str, policy_id: str, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        await self.expire_due_policies(tenant_id, now)
        return await self._get(tenant_id, policy_id)

    async def update_policy(self, tenant_id: str, policy_id: str, data: Dict[str, Any], *, actor: Dict[str, Any]) -> Dict[str, Any]:
        policy = await self._get(tenant_id, policy_id)
        unknown = [k for k in data if k not in EDITABLE_FIELDS]
        if unknown:
            raise ValidationError("Unknown policy fields", errors=[f"{k} cannot be updated" for k in unknown])
        if policy["status"] != "draft" and any(k in data for k in SCHEDULE_FIELDS):
            raise InvalidStateError("Dates and day counts can only change while the policy is a draft", current=policy["status"])
        if policy["status"] in ("cancelled", "expired"):
            raise InvalidStateError(f"Cannot edit a {policy['status']} policy", current=policy["status"])

        merged = validate_policy_fields({**policy, **data})
        changes = {k: merged[k] for k in data}
        updated = await self._repo.update_policy(tenant_id, policy_id, changes, expected_status=policy["status"])
        if updated is None:
            raise ConflictError("Policy changed while updating; retry")
        await self._ledger.record(user=actor, action="policy_updated", resource="mixed_vacation_policies", resource_id=policy_id, before=policy, after=updated, module="mixed_vacation")
        return updated

    async def delete_policy(self, tenant_id: str, policy_id: str, *, actor: Dict[str, Any]) -> None:
        policy = await self._get(tenant_id, policy_id)
        if policy["status"] == "active":
            raise InvalidStateError("Cancel an active policy before deleting it", current="active")
        await self._repo.delete_policy(tenant_id, policy_id)
        await self._ledger.record(user=actor, action="policy_deleted", resource="mixed_vacation_policies", resource_id=policy_id, before=policy, module="mixed_vacation", severity="high")

    async def _transition(self, tenant_id: str, policy_id: str, target: str, *, actor: Dict[str, Any], extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        policy = await self._get(tenant_id, policy_id)
        validate_transition(policy["status"], target)
        fields = {"status": target, **(extra or {})}
        updated = await self._repo.update_policy(tenant_id, policy_id, fields, expected_status=policy["status"])
        if updated is None:
            current = await self._get(tenant_id, policy_id)
            validate_transition(current["status"], target)
            raise ConflictError("Policy changed while updating; retry")
        await self._ledger.record(
            user=actor,
            action=f"policy_{target}",
            resource="mixed_vacation_policies",
            resource_id=policy_id,
            before={"status": policy["status"]},
            after={"status": target},
            module="mixed_vacation",
        )
        return updated

    async def activate_policy(self, tenant_id: str, policy_id: str, *, actor: Dict[str, Any]) -> Dict[str, Any]:
        return await self._transition(tenant_id, policy_id, "active", actor=actor, extra={"activated_at": now_utc(), "activated_by": actor.get("id")})

    async def cancel_policy(self, tenant_id: str, policy_id: str, *, actor: Dict[str, Any], reason: Optional[str] = None) -> Dict[str, Any]:
        return await self._transition(tenant_id, policy_id, "cancelled", actor=actor, extra={"cancelled_at": now_utc(), "cancelled_by": actor.get("id"), "cancel_reason": reason})

    async def find_active_policies(self, tenant_id: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or now_utc()
        await self.expire_due_policies(tenant_id, now)
        flt = {"status": "active", "start_date": {"$lte": now}, "end_date": {"$gte": now}}
        return await self._repo.list_policies(tenant_id, flt, limit=500)

    async def find_upcoming_policies(self, tenant_id: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or now_utc()
        flt = {"status": {"$in": ["draft", "active"]}, "start_date": {"$gt": now}}
        return await self._repo.list_policies(tenant_id, flt, limit=500)

    def _is_current(self, policy: Dict[str, Any], now: datetime) -> bool:
        end = ensure_utc(policy.get("end_date"))
        return end is None or end >= now

    async def test_policy_on_employee(self, tenant_id: str, policy_id: str, employee_id: str, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Dry run of apply_to_employee; nothing is written except a missing balance."""
        now = now or now_utc()
        policy = await self._get(tenant_id, policy_id)
        employee = await self._users.get(employee_id, tenant_id)
        if not employee:
            raise NotFoundError("Employee not found", employee_id=employee_id)
        balance = await self._balances.get_balance(tenant_id, employee_id, now=now)
        available = (balance.get("annual") or {}).get("available", 0)
        required = policy["personal_days_required"]
        reasons = []
        if policy["status"] != "active":
            reasons.append(f"Policy is {policy['status']}")
        if not self._is_current(policy, now):
            reasons.append("Policy window has ended")
        if not employee.get("is_active", True):
            reasons.append("Employee is not active")
        if await self._repo.get_application(policy_id, employee_id):
            reasons.append("Policy already applied to this employee")
        if available < required:
            reasons.append("Insufficient annual leave balance")
        return {
            "eligible": not reasons,
            "available": available,
            "required": required,
            "shortfall": max(0, required - available),
            "remaining_after": max(0, available - required),
            "reasons": reasons,
        }

    async def apply_to_employee(
        self,
        tenant_id: str,
        policy_id: str,
        employee_id: str,
        *,
        actor: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or now_utc()
        await self.expire_due_policies(tenant_id, now)
        policy = await self._get(tenant_id, policy_id)
        employee = await self._users.get(employee_id, tenant_id)
        if not employee:
            raise NotFoundError("Employee not found", employee_id=employee_id)
        if policy["status"] != "active":
            raise InvalidStateError("Policy is not active", current=policy["status"])
        if await self._repo.get_application(policy_id, employee_id):
            raise ConflictError("Policy already applied to this employee", policy_id=policy_id, employee_id=employee_id)

        days = policy["personal_days_required"]
        balance = None
        if days > 0:
            balance = await self._balances.use_days(
                tenant_id,
                employee_id,
                "annual",
                days,
                reason=f"Mixed vacation: {policy['name']}",
                reference=policy_id,
                actor_id=actor.get("id"),
                now=now,
            )

        application = {
            "_id": new_id(),
            "tenant_id": tenant_id,
            "policy_id": policy_id,
            "employee_id": employee_id,
            "personal_days": days,
            "total_days": policy["total_days"],
            "policy_days": policy["total_days"] - days,
            "applied_by": actor.get("id"),
            "applied_at": now,
            "status": "applied",
        }
        try:
            await self._repo.insert_application(application)
        except ConflictError:
            if days > 0:
                await self._balances.return_days(tenant_id, employee_id, "annual", days, reason="duplicate application rolled back", reference=policy_id, actor_id=actor.get("id"))
            raise
        await self._repo.increment_applications(policy_id)

        try:
            await self._ledger.record(
                user=actor,
                action="policy_applied",
                resource="mixed_vacation_policies",
                resource_id=policy_id,
                after={"employee_id": employee_id, "personal_days": days, "application_id": application["_id"]},
                module="mixed_vacation",
                correlation_id=application["_id"],
            )
        except Exception as exc:
            logger.error("audit append failed after balance deduction policy=%s employee=%s: %s", policy_id, employee_id, exc)
            await self._db.audit_discrepancies.insert_one({
                "_id": new_id(),
                "tenant_id": tenant_id,
                "kind": "policy_applied",
                "policy_id": policy_id,
                "employee_id": employee_id,
                "application_id": application["_id"],
                "personal_days": days,
                "error": str(exc),
                "created_at": now_utc(),
            })

        available = ((balance or {}).get("annual") or {}).get("available")
        return {"success": True, "application": application, "available": available}

    async def apply_to_all(self, tenant_id: str, policy_id: str, *, actor: Dict[str, Any]) -> Dict[str, Any]:
        """Apply to every active employee. Failures are collected, not raised."""
        policy = await self._get(tenant_id, policy_id)
        if policy["status"] != "active":
            raise InvalidStateError("Policy is not active", current=policy["status"])
        employees = await self._users.list_active(tenant_id)

        async def _one(employee_id: str) -> Dict[str, Any]:
            try:
                await self.apply_to_employee(tenant_id, policy_id, employee_id, actor=actor)
            except AppError as exc:
                return {"employee_id": employee_id, "ok": False, "code": exc.code, "message": exc.message}
            except Exception as exc:
                logger.exception("policy %s apply failed for employee %s", policy_id, employee_id)
                return {"employee_id": employee_id, "ok": False, "code": "internal_error", "message": str(exc)}
            return {"employee_id": employee_id, "ok": True}

        results = await asyncio.gather(*[_one(e["_id"]) for e in employees])
        applied = [r["employee_id"] for r in results if r["ok"]]
        failed = [{k: v for k, v in r.items() if k != "ok"} for r in results if not r["ok"]]
        logger.info("policy %s applied to %s employees, %s failed", policy_id, len(applied), len(failed))
        return {"applied": applied, "failed": failed}

    async def get_policy_breakdown(self, tenant_id: str, policy_id: str, employee_id: Optional[str] = None) -> Dict[str, Any]:
        policy = await self._get(tenant_id, policy_id)
        out: Dict[str, Any] = {
            "total_days": policy["total_days"],
            "personal_days": policy["personal_days_required"],
            "policy_days": policy["total_days"] - policy["personal_days_required"],
        }
        if employee_id:
            if not await self._users.get(employee_id, tenant_id):
                raise NotFoundError("Employee not found", employee_id=employee_id)
            balance = await self._balances.get_balance(tenant_id, employee_id)
            available = (balance.get("annual") or {}).get("available", 0)
            out["available"] = available
            out["remaining_after"] = max(0, available - policy["personal_days_required"])
            out["applied"] = await self._repo.get_application(policy_id, employee_id) is not None
        return out

    async def get_employee_applications(self, tenant_id: str, employee_id: str) -> List[Dict[str, Any]]:
        return await self._repo.list_applications(tenant_id, {"employee_id": employee_id})

    async def get_policy_applications(self, tenant_id: str, policy_id: str) -> List[Dict[str, Any]]:
        await self._get(tenant_id, policy_id)
        return await self._repo.list_applications(tenant_id, {"policy_id": policy_id})
