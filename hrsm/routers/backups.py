"""Backup endpoints.

GET    /api/backups          - List backups
POST   /api/backups          - Run a manual backup
DELETE /api/backups/{id}     - Delete backup file and record
POST   /api/backups/cleanup  - Remove backups past the retention window
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from hrsm.auth import require_roles
from hrsm.db import get_db
from hrsm.services import backup_service
from hrsm.services.audit_ledger import AuditLedger
from hrsm.utils import serialize_doc

router = APIRouter(prefix="/api/backups", tags=["backups"])

AdminDep = Depends(require_roles(["admin"]))


@router.get("", dependencies=[AdminDep])
async def list_backups(skip: int = Query(0, ge=0), limit: int = Query(50, ge=1, le=500), db=Depends(get_db)):
    items = await backup_service.list_backups(db, skip=skip, limit=limit)
    return {"success": True, "items": serialize_doc(items), "total": len(items)}


@router.post("", status_code=201)
async def run_backup(user=AdminDep, db=Depends(get_db)):
    result = await backup_service.run_full_backup(db, backup_type="manual", created_by=user["id"])
    await AuditLedger(db).record(
        user=user,
        action="backup_run",
        resource="system_backups",
        resource_id=result["_id"],
        after={"status": result["status"], "filename": result["filename"]},
        category="system",
        status="success" if result["status"] == "completed" else "failure",
        severity="high",
    )
    return {"success": result["status"] == "completed", "backup": serialize_doc(result)}


@router.post("/cleanup")
async def cleanup_backups(user=AdminDep, db=Depends(get_db)):
    deleted = await backup_service.cleanup_old_backups(db)
    await AuditLedger(db).record(user=user, action="backups_cleaned", resource="system_backups", category="system", metadata={"deleted_count": deleted})
    return {"success": True, "deleted": deleted}


@router.delete("/{backup_id}")
async def delete_backup(backup_id: str, user=AdminDep, db=Depends(get_db)):
    await backup_service.delete_backup(db, backup_id)
    await AuditLedger(db).record(user=user, action="backup_deleted", resource="system_backups", resource_id=backup_id, category="system", severity="high")
    return {"success": True, "deleted": True, "backup_id": backup_id}
