"""Tenant-scoped CRUD for the plain administrative resources.

Each resource is described by a `ResourceSpec`; mutations are written to
the audit ledger and names are unique per tenant where a resource has one.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from hrsm.errors import ConflictError, NotFoundError, ValidationError
from hrsm.repositories.base_repository import TenantCrudRepository
from hrsm.services.audit_ledger import AuditLedger
from hrsm.utils import paginate, pagination_meta

PROTECTED_FIELDS = ("_id", "id", "tenant_id", "created_by", "created_at", "updated_at")


@dataclass(frozen=True)
class ResourceSpec:
    name: str
    collection: str
    required: Tuple[str, ...]
    unique_field: Optional[str] = None
    choices: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    filters: Tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.name.rstrip("s").replace("_", " ").capitalize()


RESOURCES: Dict[str, ResourceSpec] = {
    spec.name: spec
    for spec in (
        ResourceSpec("departments", "departments", ("name",), unique_field="name", filters=("school_id", "parent_id")),
        ResourceSpec("positions", "positions", ("title",), unique_field="title", filters=("department_id",)),
        ResourceSpec("schools", "schools", ("name",), unique_field="name"),
        ResourceSpec(
            "announcements",
            "announcements",
            ("title", "content"),
            choices={"priority": ("low", "normal", "high", "urgent")},
            filters=("priority", "department_id"),
        ),
        ResourceSpec(
            "requests",
            "requests",
            ("request_type", "title"),
            choices={"status": ("pending", "approved", "rejected", "cancelled")},
            filters=("request_type", "status", "employee_id"),
        ),
        ResourceSpec("reports", "reports", ("name", "report_type"), unique_field="name", filters=("report_type",)),
    )
}


def validate_fields(spec: ResourceSpec, data: Dict[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    fields = {k: v for k, v in data.items() if k not in PROTECTED_FIELDS}
    errors = []
    for name in spec.required:
        value = fields.get(name)
        missing = value is None or (isinstance(value, str) and not value.strip())
        if missing and (not partial or name in fields):
            errors.append(f"{name} is required")
    for name, allowed in spec.choices.items():
        if name in fields and fields[name] not in allowed:
            errors.append(f"{name} must be one of: {', '.join(allowed)}")
    if errors:
        raise ValidationError(f"Invalid {spec.label.lower()}", errors=errors)
    if spec.unique_field and isinstance(fields.get(spec.unique_field), str):
        fields[spec.unique_field] = fields[spec.unique_field].strip()
    return fields


class ResourceService:
    def __init__(self, db: AsyncIOMotorDatabase, tenant_id: str, spec: ResourceSpec):
        self.spec = spec
        self._repo = TenantCrudRepository(db, spec.collection, tenant_id)
        self._ledger = AuditLedger(db)

    async def _get(self, doc_id: str) -> Dict[str, Any]:
        doc = await self._repo.get(doc_id)
        if not doc:
            raise NotFoundError(f"{self.spec.label} not found")
        return doc

    def _duplicate(self, fields: Dict[str, Any]) -> ConflictError:
        value = fields.get(self.spec.unique_field or "")
        return ConflictError(f"{self.spec.label} '{value}' already exists")

    async def list(self, query: Dict[str, Any], *, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        flt = {k: v for k, v in query.items() if k in self.spec.filters and v is not None}
        skip, limit = paginate(page, limit)
        total = await self._repo.count(flt)
        items = await self._repo.list(flt, skip=skip, limit=limit)
        return {"items": items, "pagination": pagination_meta(total, skip // limit + 1, limit)}

    async def get(self, doc_id: str) -> Dict[str, Any]:
        return await self._get(doc_id)

    async def create(self, data: Dict[str, Any], *, actor: Dict[str, Any]) -> Dict[str, Any]:
        fields = validate_fields(self.spec, data)
        try:
            doc = await self._repo.create(fields, created_by=actor.get("id"))
        except DuplicateKeyError:
            raise self._duplicate(fields)
        await self._ledger.record(user=actor, action=f"{self.spec.name}_created", resource=self.spec.name, resource_id=doc["_id"], after=fields, module=self.spec.name)
        return doc

    async def update(self, doc_id: str, data: Dict[str, Any], *, actor: Dict[str, Any]) -> Dict[str, Any]:
        before = await self._get(doc_id)
        fields = validate_fields(self.spec, data, partial=True)
        if not fields:
            raise ValidationError("No fields to update")
        try:
            updated = await self._repo.update(doc_id, fields)
        except DuplicateKeyError:
            raise self._duplicate(fields)
        if updated is None:
            raise NotFoundError(f"{self.spec.label} not found")
        await self._ledger.record(
            user=actor,
            action=f"{self.spec.name}_updated",
            resource=self.spec.name,
            resource_id=doc_id,
            before={k: before.get(k) for k in fields},
            after=fields,
            module=self.spec.name,
        )
        return updated

    async def delete(self, doc_id: str, *, actor: Dict[str, Any]) -> None:
        before = await self._get(doc_id)
        await self._repo.delete(doc_id)
        await self._ledger.record(user=actor, action=f"{self.spec.name}_deleted", resource=self.spec.name, resource_id=doc_id, before=before, module=self.spec.name, severity="high")
