from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from hrsm.auth import get_current_user, require_roles
from hrsm.db import get_db
from hrsm.services.permission_audit import PermissionAuditService
from hrsm.utils import serialize_doc

router = APIRouter(prefix="/api/permission-audit", tags=["permission_audit"])

AdminDep = Depends(require_roles(["admin"]))


@router.get("", dependencies=[AdminDep])
async def list_changes(
    user_id: Optional[str] = None,
    changed_by: Optional[str] = None,
    change_type: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    result = await PermissionAuditService(db).list(
        user["tenant_id"],
        user_id=user_id,
        changed_by=changed_by,
        change_type=change_type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return {"success": True, "logs": serialize_doc(result["logs"]), "pagination": result["pagination"]}


@router.get("/recent", dependencies=[AdminDep])
async def recent_changes(days: int = Query(7, ge=1), user=Depends(get_current_user), db=Depends(get_db)):
    logs = await PermissionAuditService(db).recent(user["tenant_id"], days=days)
    return {"success": True, "logs": serialize_doc(logs), "count": len(logs)}


@router.get("/stats", dependencies=[AdminDep])
async def change_stats(user=Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "stats": await PermissionAuditService(db).stats(user["tenant_id"])}


@router.get("/users/{user_id}", dependencies=[AdminDep])
async def user_changes(user_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    logs = await PermissionAuditService(db).for_user(user["tenant_id"], user_id)
    return {"success": True, "logs": serialize_doc(logs)}
