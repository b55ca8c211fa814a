from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from hrsm.auth import HR_ROLES, get_current_user, require_roles
from hrsm.db import get_db
from hrsm.errors import AuthorizationError
from hrsm.schemas import CancelRequest, MixedVacationPolicyIn
from hrsm.services.mixed_vacation_service import MixedVacationService
from hrsm.utils import serialize_doc

router = APIRouter(prefix="/api/mixed-vacation", tags=["mixed_vacation"])

HrDep = Depends(require_roles(HR_ROLES))


@router.get("/policies", dependencies=[HrDep])
async def list_policies(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    result = await MixedVacationService(db).list_policies(user["tenant_id"], status=status, page=page, limit=limit)
    return {"success": True, "policies": serialize_doc(result["policies"]), "pagination": result["pagination"]}


@router.get("/policies/active")
async def active_policies(user=Depends(get_current_user), db=Depends(get_db)):
    policies = await MixedVacationService(db).find_active_policies(user["tenant_id"])
    return {"success": True, "policies": serialize_doc(policies)}


@router.get("/policies/upcoming")
async def upcoming_policies(user=Depends(get_current_user), db=Depends(get_db)):
    policies = await MixedVacationService(db).find_upcoming_policies(user["tenant_id"])
    return {"success": True, "policies": serialize_doc(policies)}


@router.post("/policies", status_code=201)
async def create_policy(payload: MixedVacationPolicyIn, user=HrDep, db=Depends(get_db)):
    policy = await MixedVacationService(db).create_policy(user["tenant_id"], payload.model_dump(exclude_unset=True), actor=user)
    return {"success": True, "policy": serialize_doc(policy)}


@router.get("/policies/{policy_id}", dependencies=[HrDep])
async def get_policy(policy_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    policy = await MixedVacationService(db).get_policy(user["tenant_id"], policy_id)
    return {"success": True, "policy": serialize_doc(policy)}


@router.put("/policies/{policy_id}")
async def update_policy(policy_id: str, payload: MixedVacationPolicyIn, user=HrDep, db=Depends(get_db)):
    policy = await MixedVacationService(db).update_policy(user["tenant_id"], policy_id, payload.model_dump(exclude_unset=True), actor=user)
    return {"success": True, "policy": serialize_doc(policy)}


@router.delete("/policies/{policy_id}")
async def delete_policy(policy_id: str, user=HrDep, db=Depends(get_db)):
    await MixedVacationService(db).delete_policy(user["tenant_id"], policy_id, actor=user)
    return {"success": True, "message": "Policy deleted"}


@router.post("/policies/{policy_id}/activate")
async def activate_policy(policy_id: str, user=HrDep, db=Depends(get_db)):
    policy = await MixedVacationService(db).activate_policy(user["tenant_id"], policy_id, actor=user)
    return {"success": True, "policy": serialize_doc(policy)}


@router.post("/policies/{policy_id}/cancel")
async def cancel_policy(policy_id: str, payload: Optional[CancelRequest] = None, user=HrDep, db=Depends(get_db)):
    policy = await MixedVacationService(db).cancel_policy(user["tenant_id"], policy_id, actor=user, reason=payload.reason if payload else None)
    return {"success": True, "policy": serialize_doc(policy)}


@router.get("/policies/{policy_id}/test/{employee_id}", dependencies=[HrDep])
async def test_policy(policy_id: str, employee_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    result = await MixedVacationService(db).test_policy_on_employee(user["tenant_id"], policy_id, employee_id)
    return {"success": True, "result": result}


@router.post("/policies/{policy_id}/apply/{employee_id}")
async def apply_to_employee(policy_id: str, employee_id: str, user=HrDep, db=Depends(get_db)):
    result = await MixedVacationService(db).apply_to_employee(user["tenant_id"], policy_id, employee_id, actor=user)
    return serialize_doc(result)


@router.post("/policies/{policy_id}/apply-all")
async def apply_to_all(policy_id: str, user=HrDep, db=Depends(get_db)):
    result = await MixedVacationService(db).apply_to_all(user["tenant_id"], policy_id, actor=user)
    return {"success": True, **result}


@router.get("/policies/{policy_id}/breakdown")
async def policy_breakdown(policy_id: str, employee_id: Optional[str] = None, user=Depends(get_current_user), db=Depends(get_db)):
    if employee_id and employee_id != user["id"] and user.get("role") not in HR_ROLES:
        raise AuthorizationError("You can only view your own breakdown")
    result = await MixedVacationService(db).get_policy_breakdown(user["tenant_id"], policy_id, employee_id)
    return {"success": True, "breakdown": result}


@router.get("/policies/{policy_id}/applications", dependencies=[HrDep])
async def policy_applications(policy_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    applications = await MixedVacationService(db).get_policy_applications(user["tenant_id"], policy_id)
    return {"success": True, "applications": serialize_doc(applications)}


@router.get("/employees/{employee_id}/applications")
async def employee_applications(employee_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    if employee_id != user["id"] and user.get("role") not in HR_ROLES:
        raise AuthorizationError("You can only view your own applications")
    applications = await MixedVacationService(db).get_employee_applications(user["tenant_id"], employee_id)
    return {"success": True, "applications": serialize_doc(applications)}
