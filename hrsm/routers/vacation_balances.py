from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from hrsm.auth import HR_ROLES, get_current_user, require_roles
from hrsm.db import get_db
from hrsm.errors import AuthorizationError
from hrsm.schemas import BalanceAdjust, BalanceOperation
from hrsm.services.vacation_balance_service import VacationBalanceService
from hrsm.utils import now_utc, paginate, serialize_doc

router = APIRouter(prefix="/api/vacation-balances", tags=["vacation_balances"])

HrDep = Depends(require_roles(HR_ROLES))
AdminDep = Depends(require_roles(["admin"]))


def _ensure_can_view(user, employee_id: str) -> None:
    if employee_id != user["id"] and user.get("role") not in HR_ROLES + ["manager"]:
        raise AuthorizationError("You can only view your own balance")


@router.get("")
async def list_balances(
    year: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user=HrDep,
    db=Depends(get_db),
):
    skip, limit = paginate(page, limit)
    result = await VacationBalanceService(db).list_balances(user["tenant_id"], year or now_utc().year, skip=skip, limit=limit)
    return {"success": True, **serialize_doc(result)}


@router.get("/{employee_id}")
async def get_balance(employee_id: str, year: Optional[int] = None, user=Depends(get_current_user), db=Depends(get_db)):
    _ensure_can_view(user, employee_id)
    balance = await VacationBalanceService(db).get_balance(user["tenant_id"], employee_id, year)
    return {"success": True, "balance": serialize_doc(balance)}


@router.get("/{employee_id}/history")
async def balance_history(employee_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    _ensure_can_view(user, employee_id)
    balances = await VacationBalanceService(db).history(user["tenant_id"], employee_id)
    return {"success": True, "balances": serialize_doc(balances)}


@router.post("/{employee_id}/initialize", status_code=201)
async def initialize_balance(employee_id: str, year: Optional[int] = None, user=HrDep, db=Depends(get_db)):
    balance = await VacationBalanceService(db).initialize_for_employee(user["tenant_id"], employee_id, year)
    return {"success": True, "balance": serialize_doc(balance)}


@router.post("/{employee_id}/check")
async def check_balance(employee_id: str, payload: BalanceOperation, user=Depends(get_current_user), db=Depends(get_db)):
    _ensure_can_view(user, employee_id)
    result = await VacationBalanceService(db).check_sufficient(user["tenant_id"], employee_id, payload.leave_type, payload.days, payload.year)
    return {"success": True, **result}


@router.post("/{employee_id}/use")
async def use_days(employee_id: str, payload: BalanceOperation, user=HrDep, db=Depends(get_db)):
    balance = await VacationBalanceService(db).use_days(
        user["tenant_id"], employee_id, payload.leave_type, payload.days,
        year=payload.year, reason=payload.reason, reference=payload.reference, actor_id=user["id"],
    )
    return {"success": True, "balance": serialize_doc(balance)}


@router.post("/{employee_id}/return")
async def return_days(employee_id: str, payload: BalanceOperation, user=HrDep, db=Depends(get_db)):
    balance = await VacationBalanceService(db).return_days(
        user["tenant_id"], employee_id, payload.leave_type, payload.days,
        year=payload.year, reason=payload.reason, reference=payload.reference, actor_id=user["id"],
    )
    return {"success": True, "balance": serialize_doc(balance)}


@router.post("/{employee_id}/recalculate")
async def recalculate(employee_id: str, year: Optional[int] = None, user=HrDep, db=Depends(get_db)):
    balance = await VacationBalanceService(db).recalculate_from_leaves(user["tenant_id"], employee_id, year)
    return {"success": True, "balance": serialize_doc(balance)}


@router.post("/{employee_id}/carry-over")
async def carry_over(employee_id: str, year: int = Query(...), user=HrDep, db=Depends(get_db)):
    balance = await VacationBalanceService(db).carry_over(user["tenant_id"], employee_id, year)
    return {"success": True, "balance": serialize_doc(balance)}


@router.put("/{employee_id}/adjust")
async def manual_adjust(employee_id: str, payload: BalanceAdjust, user=AdminDep, db=Depends(get_db)):
    balance = await VacationBalanceService(db).manual_adjust(
        user["tenant_id"], employee_id, payload.year, payload.leave_type, payload.allocated,
        actor_id=user["id"], reason=payload.reason,
    )
    return {"success": True, "balance": serialize_doc(balance)}
