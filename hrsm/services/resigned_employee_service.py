"""Resigned employee records: penalties, letters and the 24 hour edit lock."""
from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm.domain import resignation as rules
from hrsm.errors import ConflictError, NotFoundError, ValidationError
from hrsm.repositories.resigned_employee_repository import ResignedEmployeeRepository
from hrsm.repositories.user_repository import UserRepository
from hrsm.services.audit_ledger import AuditLedger
from hrsm.utils import new_id, now_utc, paginate, pagination_meta, parse_iso_datetime

logger = logging.getLogger(__name__)

RESOURCE = "resigned_employees"


class ResignedEmployeeService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._repo = ResignedEmployeeRepository(db)
        self._users = UserRepository(db)
        self._ledger = AuditLedger(db)

    async def _load(self, tenant_id: str, record_id: str, now: datetime) -> Dict[str, Any]:
        """Fetch a record and persist the lock if its window has passed."""
        record = await self._repo.get(tenant_id, record_id)
        if not record:
            raise NotFoundError("Resigned employee not found", record_id=record_id)
        if rules.refresh_lock(record, now):
            record = await self._repo.save(record)
            logger.info("resigned employee record %s auto-locked", record_id)
        return record

    async def _save(self, record: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        record["updated_at"] = now
        return await self._repo.save(record)

    async def create(
        self,
        tenant_id: str,
        data: Dict[str, Any],
        *,
        actor: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or now_utc()
        employee_id = data.get("employee_id")
        if not employee_id:
            raise ValidationError("employee_id is required")
        employee = await self._users.get(employee_id, tenant_id)
        if not employee:
            raise NotFoundError("Employee not found", employee_id=employee_id)
        if await self._repo.get_by_employee(employee_id):
            raise ConflictError("Employee already in resigned list", employee_id=employee_id)

        resignation_type = rules.validate_resignation_type(data.get("resignation_type") or "resignation-letter")
        try:
            resignation_date = parse_iso_datetime(data.get("resignation_date")) or now
            last_working_day = parse_iso_datetime(data.get("last_working_day")) or resignation_date
        except ValueError:
            raise ValidationError("resignation_date and last_working_day must be ISO-8601 dates")
        if last_working_day < resignation_date:
            raise ValidationError("last_working_day cannot be before resignation_date")

        record = {
            "_id": new_id(),
            "tenant_id": tenant_id,
            "employee_id": employee_id,
            "resignation_type": resignation_type,
            "resignation_date": resignation_date,
            "last_working_day": last_working_day,
            "resignation_reason": data.get("resignation_reason") or "",
            "penalties": [],
            "total_penalties": 0,
            "is_locked": False,
            "locked_date": None,
            "status": "pending",
            "letter_generated": False,
            "letter_content": None,
            "letter_generated_date": None,
            "arabic_disclaimer": None,
            "notes": data.get("notes") or "",
            "created_by": actor.get("id"),
            "created_at": now,
            "updated_at": now,
        }
        rules.recompute_total(record)
        await self._repo.insert(record)

        await self._users.set_fields(employee_id, {
            "employment_status": "resigned",
            "is_active": False,
            "resignation_date": resignation_date,
        })
        await self._ledger.record(user=actor, action="employee_resigned", resource=RESOURCE, resource_id=record["_id"], after=record, module="resigned_employees", severity="high")
        return record

    async def get(self, tenant_id: str, record_id: str, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        return await self._load(tenant_id, record_id, now or now_utc())

    async def list(
        self,
        tenant_id: str,
        *,
        status: Optional[str] = None,
        resignation_type: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or now_utc()
        flt: Dict[str, Any] = {}
        if status:
            flt["status"] = rules.validate_status(status)
        if resignation_type:
            flt["resignation_type"] = rules.validate_resignation_type(resignation_type)
        skip, limit = paginate(page, limit)
        total = await self._repo.count(tenant_id, flt)
        records = await self._repo.list(tenant_id, flt, skip=skip, limit=limit)
        out = []
        for record in records:
            if rules.refresh_lock(record, now):
                record = await self._repo.save(record)
            out.append(record)
        return {"records": out, "pagination": pagination_meta(total, skip // limit + 1, limit)}

    async def _mutate_locked_fields(self, tenant_id: str, record_id: str, now: datetime, mutate) -> tuple[Dict[str, Any], Dict[str, Any]]:
        record = await self._load(tenant_id, record_id, now)
        rules.ensure_unlocked(record)
        before = copy.deepcopy(record)
        mutate(record)
        saved = await self._save(record, now)
        return before, saved

    async def add_penalty(
        self,
        tenant_id: str,
        record_id: str,
        data: Dict[str, Any],
        *,
        actor: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or now_utc()
        record = await self._load(tenant_id, record_id, now)
        rules.ensure_unlocked(record)
        penalty = rules.build_penalty(
            description=data.get("description"),
            amount=data.get("amount"),
            currency=data.get("currency"),
            notes=data.get("notes"),
            added_by=actor.get("id"),
            now=now,
        )
        saved = await self._repo.push_penalty(tenant_id, record_id, penalty, now)
        if saved is None:
            rules.ensure_unlocked(await self._load(tenant_id, record_id, now))
            raise NotFoundError("Resigned employee not found", record_id=record_id)
        await self._ledger.record(
            user=actor,
            action="penalty_added",
            resource=RESOURCE,
            resource_id=record_id,
            before={"total_penalties": saved["total_penalties"] - penalty["amount"]},
            after={"total_penalties": saved["total_penalties"], "penalty": penalty},
            module="resigned_employees",
        )
        return saved

    async def remove_penalty(
        self,
        tenant_id: str,
        record_id: str,
        penalty_id: str,
        *,
        actor: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or now_utc()
        record = await self._load(tenant_id, record_id, now)
        rules.ensure_unlocked(record)
        penalty = next((p for p in record.get("penalties") or [] if p.get("_id") == penalty_id), None)
        if penalty is None:
            raise NotFoundError("Penalty not found", penalty_id=penalty_id)
        saved = await self._repo.pull_penalty(tenant_id, record_id, penalty, now)
        if saved is None:
            rules.ensure_unlocked(await self._load(tenant_id, record_id, now))
            raise NotFoundError("Penalty not found", penalty_id=penalty_id)
        await self._ledger.record(
            user=actor,
            action="penalty_removed",
            resource=RESOURCE,
            resource_id=record_id,
            before={"total_penalties": saved["total_penalties"] + penalty["amount"], "penalty_id": penalty_id},
            after={"total_penalties": saved["total_penalties"]},
            module="resigned_employees",
        )
        return saved

    async def update_resignation_type(
        self,
        tenant_id: str,
        record_id: str,
        resignation_type: Optional[str],
        *,
        actor: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or now_utc()
        value = rules.validate_resignation_type(resignation_type)
        before, saved = await self._mutate_locked_fields(
            tenant_id, record_id, now, lambda r: r.__setitem__("resignation_type", value)
        )
        await self._ledger.record(
            user=actor,
            action="resignation_type_updated",
            resource=RESOURCE,
            resource_id=record_id,
            before={"resignation_type": before["resignation_type"]},
            after={"resignation_type": value},
            module="resigned_employees",
        )
        return saved

    async def _organization(self, tenant_id: str) -> Dict[str, Any]:
        return await self._db.tenants.find_one({"_id": tenant_id}) or {}

    async def generate_letter(self, tenant_id: str, record_id: str, *, actor: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or now_utc()
        record = await self._load(tenant_id, record_id, now)
        employee = await self._users.get(record["employee_id"]) or {}
        org = await self._organization(tenant_id)
        record["letter_generated_date"] = now
        record["letter_content"] = rules.render_letter(record, employee, org.get("name") or "")
        record["letter_generated"] = True
        saved = await self._save(record, now)
        await self._ledger.record(user=actor, action="letter_generated", resource=RESOURCE, resource_id=record_id, module="resigned_employees", category="data_access")
        return saved

    async def generate_arabic_disclaimer(self, tenant_id: str, record_id: str, *, actor: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or now_utc()
        record = await self._load(tenant_id, record_id, now)
        employee = await self._users.get(record["employee_id"]) or {}
        org = await self._organization(tenant_id)
        record["arabic_disclaimer"] = rules.render_arabic_disclaimer(record, employee, org.get("arabic_name") or org.get("name") or "")
        saved = await self._save(record, now)
        await self._ledger.record(user=actor, action="disclaimer_generated", resource=RESOURCE, resource_id=record_id, module="resigned_employees", category="data_access")
        return saved

    async def lock(self, tenant_id: str, record_id: str, *, actor: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or now_utc()
        record = await self._load(tenant_id, record_id, now)
        if record.get("is_locked"):
            return record
        record["is_locked"] = True
        record["locked_date"] = now
        saved = await self._save(record, now)
        await self._ledger.record(user=actor, action="record_locked", resource=RESOURCE, resource_id=record_id, before={"is_locked": False}, after={"is_locked": True}, module="resigned_employees")
        return saved

    async def update_status(self, tenant_id: str, record_id: str, status: Optional[str], *, actor: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
        """Status moves are administrative and allowed on locked records."""
        now = now or now_utc()
        value = rules.validate_status(status)
        record = await self._load(tenant_id, record_id, now)
        previous = record.get("status")
        record["status"] = value
        saved = await self._save(record, now)
        await self._ledger.record(user=actor, action="status_updated", resource=RESOURCE, resource_id=record_id, before={"status": previous}, after={"status": value}, module="resigned_employees")
        return saved

    async def delete(self, tenant_id: str, record_id: str, *, actor: Dict[str, Any], now: Optional[datetime] = None) -> None:
        now = now or now_utc()
        record = await self._load(tenant_id, record_id, now)
        rules.ensure_unlocked(record)
        await self._repo.delete(tenant_id, record_id)
        await self._ledger.record(user=actor, action="record_deleted", resource=RESOURCE, resource_id=record_id, before=record, module="resigned_employees", severity="high")

