from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from hrsm.auth import HR_ROLES, get_current_user, require_roles
from hrsm.db import get_db
from hrsm.errors import AuthorizationError
from hrsm.schemas import LeaveCreate, ReviewNote
from hrsm.services.leave_service import LeaveService
from hrsm.utils import serialize_doc

router = APIRouter(prefix="/api/leaves", tags=["leaves"])

ReviewerDep = Depends(require_roles(HR_ROLES + ["manager", "head-of-department"]))


def _is_reviewer(user) -> bool:
    return user.get("role") in HR_ROLES + ["manager", "head-of-department"]


@router.get("")
async def list_leaves(
    employee_id: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    if not _is_reviewer(user):
        employee_id = user["id"]
    result = await LeaveService(db, user["tenant_id"]).list(employee_id=employee_id, status=status, page=page, limit=limit)
    return {"success": True, "leaves": serialize_doc(result["leaves"]), "pagination": result["pagination"]}


@router.get("/{leave_id}")
async def get_leave(leave_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    leave = await LeaveService(db, user["tenant_id"]).get(leave_id)
    if leave["employee_id"] != user["id"] and not _is_reviewer(user):
        raise AuthorizationError("You can only view your own leave requests")
    return {"success": True, "leave": serialize_doc(leave)}


@router.post("", status_code=201)
async def create_leave(payload: LeaveCreate, user=Depends(get_current_user), db=Depends(get_db)):
    data = payload.model_dump()
    if data.get("employee_id") and data["employee_id"] != user["id"] and user.get("role") not in HR_ROLES:
        raise AuthorizationError("You can only request leave for yourself")
    leave = await LeaveService(db, user["tenant_id"]).create(data, actor=user)
    return {"success": True, "leave": serialize_doc(leave)}


@router.post("/{leave_id}/approve")
async def approve_leave(leave_id: str, payload: Optional[ReviewNote] = None, user=ReviewerDep, db=Depends(get_db)):
    leave = await LeaveService(db, user["tenant_id"]).approve(leave_id, actor=user, note=payload.note if payload else None)
    return {"success": True, "leave": serialize_doc(leave)}


@router.post("/{leave_id}/reject")
async def reject_leave(leave_id: str, payload: Optional[ReviewNote] = None, user=ReviewerDep, db=Depends(get_db)):
    leave = await LeaveService(db, user["tenant_id"]).reject(leave_id, actor=user, note=payload.note if payload else None)
    return {"success": True, "leave": serialize_doc(leave)}


@router.post("/{leave_id}/cancel")
async def cancel_leave(leave_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    service = LeaveService(db, user["tenant_id"])
    leave = await service.get(leave_id)
    if leave["employee_id"] != user["id"] and user.get("role") not in HR_ROLES:
        raise AuthorizationError("You can only cancel your own leave requests")
    return {"success": True, "leave": serialize_doc(await service.cancel(leave_id, actor=user))}
