from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from hrsm.auth import get_current_user, require_roles
from hrsm.db import get_db
from hrsm.errors import AuthorizationError, NotFoundError
from hrsm.schemas import AuditCleanup
from hrsm.services.audit_ledger import AuditLedger, build_filter
from hrsm.services.security_audit import SecurityAuditService
from hrsm.utils import serialize_doc

router = APIRouter(prefix="/api/security-audit", tags=["security_audit"])

AdminDep = Depends(require_roles(["admin"]))


@router.get("/logs", dependencies=[AdminDep])
async def list_logs(
    action: Optional[str] = None,
    severity: Optional[str] = None,
    user_id: Optional[str] = None,
    category: Optional[str] = None,
    ip_address: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    flt = build_filter(
        tenant_id=user["tenant_id"],
        action=action,
        severity=severity,
        user_id=user_id,
        category=category,
        ip_address=ip_address,
        start_date=start_date,
        end_date=end_date,
    )
    result = await AuditLedger(db).query(flt, page=page, limit=limit)
    return {"success": True, "logs": serialize_doc(result["logs"]), "pagination": result["pagination"]}


@router.get("/logs/{log_id}", dependencies=[AdminDep])
async def get_log(log_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    ledger = AuditLedger(db)
    doc = await ledger.get(log_id)
    if not doc or doc.get("tenant_id") != user["tenant_id"]:
        raise NotFoundError("Audit log not found")
    return {"success": True, "log": serialize_doc(doc), "integrity": ledger.verify_entry(doc)}


@router.get("/users/{user_id}/activity")
async def user_activity(user_id: str, limit: int = Query(100, ge=1, le=500), user=Depends(get_current_user), db=Depends(get_db)):
    if user_id != user["id"] and user.get("role") != "admin":
        raise AuthorizationError("You can only view your own activity")
    logs = await SecurityAuditService(db).user_activity(user["tenant_id"], user_id, limit=limit)
    return {"success": True, "logs": serialize_doc(logs)}


@router.get("/suspicious", dependencies=[AdminDep])
async def suspicious(days: int = 7, user=Depends(get_current_user), db=Depends(get_db)):
    result = await SecurityAuditService(db).suspicious_activities(user["tenant_id"], days=days)
    return {"success": True, **serialize_doc(result)}


@router.get("/failed-logins", dependencies=[AdminDep])
async def failed_logins(minutes: int = 30, user=Depends(get_current_user), db=Depends(get_db)):
    result = await SecurityAuditService(db).failed_logins(user["tenant_id"], minutes=minutes)
    return {"success": True, **serialize_doc(result)}


@router.get("/stats", dependencies=[AdminDep])
async def stats(days: int = Query(30, ge=1), user=Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "stats": await SecurityAuditService(db).stats(user["tenant_id"], days=days)}


@router.get("/categories/{view}", dependencies=[AdminDep])
async def category_view(view: str, limit: int = Query(100, ge=1, le=500), user=Depends(get_current_user), db=Depends(get_db)):
    logs = await SecurityAuditService(db).category_view(user["tenant_id"], view, limit=limit)
    return {"success": True, "logs": serialize_doc(logs)}


@router.get("/ip/{ip_address}", dependencies=[AdminDep])
async def ip_activity(ip_address: str, limit: int = Query(100, ge=1, le=500), user=Depends(get_current_user), db=Depends(get_db)):
    logs = await SecurityAuditService(db).ip_activity(user["tenant_id"], ip_address, limit=limit)
    return {"success": True, "logs": serialize_doc(logs)}


@router.get("/verify", dependencies=[AdminDep])
async def verify(limit: int = Query(1000, ge=1, le=10000), user=Depends(get_current_user), db=Depends(get_db)):
    result = await AuditLedger(db).verify_tenant(user["tenant_id"], limit=limit)
    return {"success": True, **result}


@router.get("/export")
async def export_logs(
    request: Request,
    format: str = "json",
    action: Optional[str] = None,
    severity: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user=AdminDep,
    db=Depends(get_db),
):
    flt = build_filter(tenant_id=user["tenant_id"], action=action, severity=severity, category=category, start_date=start_date, end_date=end_date)
    body = await AuditLedger(db).export(flt, format, user=user, request=request)
    media_type = "text/csv" if format == "csv" else "application/json"
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename=audit-logs.{format}"},
    )


@router.post("/cleanup")
async def cleanup(request: Request, payload: Optional[AuditCleanup] = None, user=AdminDep, db=Depends(get_db)):
    days = payload.days if payload else 365
    deleted = await AuditLedger(db).cleanup_old_logs(days, user=user, request=request)
    return {"success": True, "message": f"Deleted {deleted} old audit logs", "deletedCount": deleted}
