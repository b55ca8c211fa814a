from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from hrsm.auth import HR_ROLES, get_current_user, require_roles
from hrsm.db import get_db
from hrsm.schemas import PenaltyIn, ResignationTypeUpdate, ResignedEmployeeCreate, StatusUpdate
from hrsm.services.resigned_employee_service import ResignedEmployeeService
from hrsm.utils import serialize_doc

router = APIRouter(prefix="/api/resigned-employees", tags=["resigned_employees"])

HrDep = Depends(require_roles(HR_ROLES))


def _out(record) -> dict:
    return {"success": True, "resignedEmployee": serialize_doc(record)}


@router.get("", dependencies=[HrDep])
async def list_resigned(
    status: Optional[str] = None,
    resignation_type: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    result = await ResignedEmployeeService(db).list(user["tenant_id"], status=status, resignation_type=resignation_type, page=page, limit=limit)
    return {"success": True, "resignedEmployees": serialize_doc(result["records"]), "pagination": result["pagination"]}


@router.post("", status_code=201)
async def create_resigned(payload: ResignedEmployeeCreate, user=HrDep, db=Depends(get_db)):
    record = await ResignedEmployeeService(db).create(user["tenant_id"], payload.model_dump(), actor=user)
    return _out(record)


@router.get("/{record_id}", dependencies=[HrDep])
async def get_resigned(record_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    return _out(await ResignedEmployeeService(db).get(user["tenant_id"], record_id))


@router.post("/{record_id}/penalties")
async def add_penalty(record_id: str, payload: PenaltyIn, user=HrDep, db=Depends(get_db)):
    record = await ResignedEmployeeService(db).add_penalty(user["tenant_id"], record_id, payload.model_dump(), actor=user)
    return _out(record)


@router.delete("/{record_id}/penalties/{penalty_id}")
async def remove_penalty(record_id: str, penalty_id: str, user=HrDep, db=Depends(get_db)):
    record = await ResignedEmployeeService(db).remove_penalty(user["tenant_id"], record_id, penalty_id, actor=user)
    return _out(record)


@router.put("/{record_id}/resignation-type")
async def update_resignation_type(record_id: str, payload: ResignationTypeUpdate, user=HrDep, db=Depends(get_db)):
    record = await ResignedEmployeeService(db).update_resignation_type(user["tenant_id"], record_id, payload.resignation_type, actor=user)
    return _out(record)


@router.post("/{record_id}/generate-letter")
async def generate_letter(record_id: str, user=HrDep, db=Depends(get_db)):
    record = await ResignedEmployeeService(db).generate_letter(user["tenant_id"], record_id, actor=user)
    return {"success": True, "letter": record.get("letter_content"), "resignedEmployee": serialize_doc(record)}


@router.post("/{record_id}/generate-disclaimer")
async def generate_disclaimer(record_id: str, user=HrDep, db=Depends(get_db)):
    record = await ResignedEmployeeService(db).generate_arabic_disclaimer(user["tenant_id"], record_id, actor=user)
    return {"success": True, "disclaimer": record.get("arabic_disclaimer"), "resignedEmployee": serialize_doc(record)}


@router.post("/{record_id}/lock")
async def lock_record(record_id: str, user=HrDep, db=Depends(get_db)):
    return _out(await ResignedEmployeeService(db).lock(user["tenant_id"], record_id, actor=user))


@router.put("/{record_id}/status")
async def update_status(record_id: str, payload: StatusUpdate, user=HrDep, db=Depends(get_db)):
    return _out(await ResignedEmployeeService(db).update_status(user["tenant_id"], record_id, payload.status, actor=user))


@router.delete("/{record_id}")
async def delete_resigned(record_id: str, user=HrDep, db=Depends(get_db)):
    await ResignedEmployeeService(db).delete(user["tenant_id"], record_id, actor=user)
    return {"success": True, "message": "Resigned employee record deleted"}
