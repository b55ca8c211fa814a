"""Leave balances per employee and year.

Reads and writes go through atomic conditional updates: the guard in the
filter is the balance check, so two concurrent deductions can never take a
category below zero.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm.config import MAX_CARRY_OVER_DAYS
from hrsm.domain import vacation_balance as vb
from hrsm.errors import InsufficientBalanceError, NotFoundError, ValidationError
from hrsm.repositories.user_repository import UserRepository
from hrsm.repositories.vacation_balance_repository import VacationBalanceRepository
from hrsm.utils import ensure_utc, new_id, now_utc

logger = logging.getLogger(__name__)


class VacationBalanceService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._repo = VacationBalanceRepository(db)
        self._users = UserRepository(db)

    async def _employee(self, tenant_id: str, employee_id: str) -> Dict[str, Any]:
        employee = await self._users.get(employee_id, tenant_id)
        if not employee:
            raise NotFoundError("Employee not found", employee_id=employee_id)
        return employee

    async def initialize_for_employee(
        self,
        tenant_id: str,
        employee_id: str,
        year: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Create the balance for (employee, year) if it does not exist yet."""
        now = now or now_utc()
        year = year or now.year
        existing = await self._repo.get(employee_id, year)
        if existing:
            return existing
        employee = await self._employee(tenant_id, employee_id)
        hire_date = ensure_utc(employee.get("hire_date"))
        doc = vb.build_initial_balance(
            tenant_id=tenant_id,
            employee_id=employee_id,
            year=year,
            hire_date=hire_date,
            as_of=now,
        )
        doc["created_at"] = now
        doc["updated_at"] = now
        created = await self._repo.insert_if_absent(doc)
        logger.info("vacation balance initialized employee=%s year=%s", employee_id, year)
        return created

    async def get_balance(
        self,
        tenant_id: str,
        employee_id: str,
        year: Optional[int] = None,
        *,
        create: bool = True,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or now_utc()
        year = year or now.year
        balance = await self._repo.get(employee_id, year)
        if balance and balance.get("tenant_id") != tenant_id:
            raise NotFoundError("Vacation balance not found")
        if balance is None:
            if not create:
                raise NotFoundError("Vacation balance not found")
            balance = await self.initialize_for_employee(tenant_id, employee_id, year, now=now)
        return balance

    async def list_balances(self, tenant_id: str, year: int, *, skip: int = 0, limit: int = 50) -> Dict[str, Any]:
        total = await self._repo.count_for_tenant(tenant_id, year)
        items = await self._repo.list_for_tenant(tenant_id, year, skip=skip, limit=limit)
        return {"items": items, "total": total}

    async def check_sufficient(self, tenant_id: str, employee_id: str, leave_type: str, days: float, year: Optional[int] = None) -> Dict[str, Any]:
        balance = await self.get_balance(tenant_id, employee_id, year)
        category = balance.get(leave_type)
        if category is None:
            raise ValidationError(f"Unknown leave type '{leave_type}'")
        return {
            "sufficient": vb.has_sufficient(balance, leave_type, days),
            "available": category.get("available", 0),
            "requested": days,
        }

    async def _apply(
        self,
        operation: str,
        tenant_id: str,
        employee_id: str,
        leave_type: str,
        days: float,
        *,
        year: Optional[int] = None,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or now_utc()
        balance = await self.get_balance(tenant_id, employee_id, year, now=now)
        guard, inc = vb.balance_update(operation, leave_type, days)
        history = {
            "_id": new_id(),
            "operation": operation,
            "leave_type": leave_type,
            "days": days,
            "reason": reason,
            "reference": reference,
            "by": actor_id,
            "at": now,
        }
        updated = await self._repo.conditional_inc(employee_id, balance["year"], guard, inc, history=history)
        if updated is None:
            fresh = await self._repo.get(employee_id, balance["year"]) or balance
            category = fresh.get(leave_type) or {}
            raise InsufficientBalanceError(leave_type, category.get("available", 0), days)
        return updated

    async def reserve(self, tenant_id: str, employee_id: str, leave_type: str, days: float, **kw: Any) -> Dict[str, Any]:
        return await self._apply("reserve", tenant_id, employee_id, leave_type, days, **kw)

    async def release(self, tenant_id: str, employee_id: str, leave_type: str, days: float, **kw: Any) -> Dict[str, Any]:
        return await self._apply("release", tenant_id, employee_id, leave_type, days, **kw)

    async def confirm_usage(self, tenant_id: str, employee_id: str, leave_type: str, days: float, **kw: Any) -> Dict[str, Any]:
        return await self._apply("confirm", tenant_id, employee_id, leave_type, days, **kw)

    async def use_days(self, tenant_id: str, employee_id: str, leave_type: str, days: float, **kw: Any) -> Dict[str, Any]:
        return await self._apply("use", tenant_id, employee_id, leave_type, days, **kw)

    async def return_days(self, tenant_id: str, employee_id: str, leave_type: str, days: float, **kw: Any) -> Dict[str, Any]:
        return await self._apply("return", tenant_id, employee_id, leave_type, days, **kw)

    async def recalculate_from_leaves(
        self,
        tenant_id: str,
        employee_id: str,
        year: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Rebuild used/pending from the leave records of the year."""
        now = now or now_utc()
        balance = await self.get_balance(tenant_id, employee_id, year, now=now)
        year = balance["year"]
        cursor = self._db.leaves.find({
            "tenant_id": tenant_id,
            "employee_id": employee_id,
            "year": year,
            "status": {"$in": ["approved", "pending"]},
        })
        totals = vb.totals_from_leaves(await cursor.to_list(length=None))
        fields: Dict[str, Any] = {"last_calculated": now}
        overdrawn = []
        for leave_type in ("annual", "casual", "sick"):
            category = dict(balance.get(leave_type) or vb.empty_category())
            category["used"] = totals[leave_type]["used"]
            category["pending"] = totals[leave_type]["pending"]
            if category["used"] + category["pending"] > (category.get("allocated") or 0):
                overdrawn.append(leave_type)
            fields[leave_type] = vb.recompute_available(category)
        if overdrawn:
            # available tracks allocated - used - pending only while allocated covers both
            logger.warning("recalculation refused employee=%s year=%s overdrawn=%s", employee_id, year, overdrawn)
            raise ValidationError(
                "Leave records exceed the allocated days; adjust the allocation first",
                errors=[f"{t} used and pending days exceed allocated" for t in overdrawn],
                leave_types=overdrawn,
            )
        return await self._repo.set_fields(employee_id, year, fields)

    async def carry_over(
        self,
        tenant_id: str,
        employee_id: str,
        year: int,
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Move up to MAX_CARRY_OVER_DAYS unused annual days into next year."""
        current = await self.get_balance(tenant_id, employee_id, year, create=False)
        next_balance = await self.initialize_for_employee(tenant_id, employee_id, year + 1, now=now)
        if (next_balance.get("annual") or {}).get("carried_over"):
            return next_balance
        days = vb.carry_over_days(current, MAX_CARRY_OVER_DAYS)
        if days <= 0:
            return next_balance
        annual = dict(next_balance["annual"])
        annual["allocated"] = (annual.get("allocated") or 0) + days
        annual["carried_over"] = days
        return await self._repo.set_fields(employee_id, year + 1, {"annual": vb.recompute_available(annual)})

    async def manual_adjust(
        self,
        tenant_id: str,
        employee_id: str,
        year: int,
        leave_type: str,
        allocated: float,
        *,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        if leave_type not in vb.LEAVE_TYPES:
            raise ValidationError(f"Unknown leave type '{leave_type}'")
        if allocated is None or allocated < 0:
            raise ValidationError("allocated must be zero or more")
        balance = await self.get_balance(tenant_id, employee_id, year)
        category = dict(balance.get(leave_type) or vb.empty_category())
        category["allocated"] = allocated
        vb.recompute_available(category)
        if category["allocated"] - category["used"] - category["pending"] < 0:
            raise ValidationError("allocated cannot be below days already used or pending")
        return await self._repo.set_fields(employee_id, balance["year"], {leave_type: category}, history={
            "_id": new_id(),
            "operation": "adjust",
            "leave_type": leave_type,
            "days": allocated,
            "reason": reason,
            "by": actor_id,
            "at": now_utc(),
        })

    async def history(self, tenant_id: str, employee_id: str) -> List[Dict[str, Any]]:
        balances = await self._repo.list_for_employee(employee_id)
        return [b for b in balances if b.get("tenant_id") == tenant_id]
