"""Leave requests and their effect on vacation balances.

A request reserves days when created. Approval turns the reservation into
usage and rejection or cancellation gives the days back. Status changes are
conditional on the status the caller saw, so two reviewers cannot both act
on the same request.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from hrsm.domain import holidays as calendar
from hrsm.errors import InvalidStateError, NotFoundError, ValidationError
from hrsm.repositories.base_repository import TenantCrudRepository
from hrsm.repositories.holiday_repository import HolidayRepository
from hrsm.services.audit_ledger import AuditLedger
from hrsm.services.holiday_service import DEFAULT_CAMPUS
from hrsm.services.vacation_balance_service import VacationBalanceService
from hrsm.utils import now_utc, paginate, pagination_meta

logger = logging.getLogger(__name__)

LEAVE_REQUEST_TYPES = ("annual", "casual", "sick")
LEAVE_STATUSES = ("pending", "approved", "rejected", "cancelled")
RESOURCE = "leaves"


class LeaveService:
    def __init__(self, db: AsyncIOMotorDatabase, tenant_id: str):
        self._db = db
        self.tenant_id = tenant_id
        self._leaves = TenantCrudRepository(db, "leaves", tenant_id)
        self._holidays = HolidayRepository(db)
        self._balances = VacationBalanceService(db)
        self._ledger = AuditLedger(db)

    async def _get(self, leave_id: str) -> Dict[str, Any]:
        leave = await self._leaves.get(leave_id)
        if not leave:
            raise NotFoundError("Leave request not found", leave_id=leave_id)
        return leave

    async def create(self, data: Dict[str, Any], *, actor: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or now_utc()
        errors: List[str] = []
        employee_id = data.get("employee_id") or actor.get("id")
        leave_type = data.get("leave_type")
        if leave_type not in LEAVE_REQUEST_TYPES:
            errors.append(f"leave_type must be one of: {', '.join(LEAVE_REQUEST_TYPES)}")
        try:
            start = calendar.as_date(data.get("start_date"))
            end = calendar.as_date(data.get("end_date"))
        except (TypeError, ValueError):
            raise ValidationError("Invalid leave request", errors=errors + ["start_date and end_date must be ISO dates"])
        if end < start:
            errors.append("end_date must not be before start_date")
        if errors:
            raise ValidationError("Invalid leave request", errors=errors)

        days = data.get("days")
        if days is None:
            settings = await self._holidays.get_or_create(self.tenant_id, data.get("campus") or DEFAULT_CAMPUS)
            days = calendar.count_working_days(settings, start, end)
        if isinstance(days, bool) or not isinstance(days, (int, float)) or days <= 0:
            raise ValidationError("Leave request must cover at least one working day")

        await self._balances.reserve(
            self.tenant_id, employee_id, leave_type, days,
            year=start.year, reason="leave requested", actor_id=actor.get("id"), now=now,
        )
        leave = await self._leaves.create({
            "employee_id": employee_id,
            "leave_type": leave_type,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "year": start.year,
            "days": days,
            "reason": data.get("reason"),
            "status": "pending",
        }, created_by=actor.get("id"))
        await self._ledger.record(user=actor, action="leave_requested", resource=RESOURCE, resource_id=leave["_id"], after=leave, module="leaves")
        return leave

    async def get(self, leave_id: str) -> Dict[str, Any]:
        return await self._get(leave_id)

    async def list(
        self,
        *,
        employee_id: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        flt: Dict[str, Any] = {}
        if employee_id:
            flt["employee_id"] = employee_id
        if status:
            if status not in LEAVE_STATUSES:
                raise ValidationError(f"status must be one of: {', '.join(LEAVE_STATUSES)}")
            flt["status"] = status
        skip, limit = paginate(page, limit)
        total = await self._leaves.count(flt)
        leaves = await self._leaves.list(flt, skip=skip, limit=limit)
        return {"leaves": leaves, "pagination": pagination_meta(total, skip // limit + 1, limit)}

    async def _transition(self, leave: Dict[str, Any], target: str, actor: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
        updated = await self._db.leaves.find_one_and_update(
            {"_id": leave["_id"], "tenant_id": self.tenant_id, "status": leave["status"]},
            {"$set": {"status": target, **extra, "updated_at": now_utc()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            current = await self._get(leave["_id"])
            raise InvalidStateError(f"Leave request is already {current['status']}", current=current["status"], target=target)
        return updated

    async def _review(self, leave_id: str, target: str, operation: str, *, actor: Dict[str, Any], note: Optional[str]) -> Dict[str, Any]:
        leave = await self._get(leave_id)
        if leave["status"] != "pending":
            raise InvalidStateError(f"Only pending requests can be {target}", current=leave["status"], target=target)
        updated = await self._transition(leave, target, actor, {"reviewed_by": actor.get("id"), "reviewed_at": now_utc(), "review_note": note})
        apply = self._balances.confirm_usage if operation == "confirm" else self._balances.release
        try:
            await apply(self.tenant_id, leave["employee_id"], leave["leave_type"], leave["days"], year=leave.get("year"), reference=leave_id, actor_id=actor.get("id"))
        except Exception:
            await self._db.leaves.update_one({"_id": leave_id, "status": target}, {"$set": {"status": "pending"}})
            raise
        await self._ledger.record(
            user=actor,
            action=f"leave_{target}",
            resource=RESOURCE,
            resource_id=leave_id,
            before={"status": "pending"},
            after={"status": target},
            module="leaves",
        )
        return updated

    async def approve(self, leave_id: str, *, actor: Dict[str, Any], note: Optional[str] = None) -> Dict[str, Any]:
        return await self._review(leave_id, "approved", "confirm", actor=actor, note=note)

    async def reject(self, leave_id: str, *, actor: Dict[str, Any], note: Optional[str] = None) -> Dict[str, Any]:
        return await self._review(leave_id, "rejected", "release", actor=actor, note=note)

    async def cancel(self, leave_id: str, *, actor: Dict[str, Any]) -> Dict[str, Any]:
        leave = await self._get(leave_id)
        if leave["status"] not in ("pending", "approved"):
            raise InvalidStateError(f"Cannot cancel a {leave['status']} request", current=leave["status"], target="cancelled")
        updated = await self._transition(leave, "cancelled", actor, {"cancelled_by": actor.get("id"), "cancelled_at": now_utc()})
        kwargs = {"year": leave.get("year"), "reference": leave_id, "actor_id": actor.get("id")}
        if leave["status"] == "pending":
            await self._balances.release(self.tenant_id, leave["employee_id"], leave["leave_type"], leave["days"], **kwargs)
        else:
            await self._balances.return_days(self.tenant_id, leave["employee_id"], leave["leave_type"], leave["days"], reason="leave cancelled", **kwargs)
        await self._ledger.record(
            user=actor,
            action="leave_cancelled",
            resource=RESOURCE,
            resource_id=leave_id,
            before={"status": leave["status"]},
            after={"status": "cancelled"},
            module="leaves",
        )
        return updated
