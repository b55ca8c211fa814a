from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from hrsm.auth import HR_ROLES, get_current_user, require_roles
from hrsm.db import get_db
from hrsm.errors import AuthorizationError
from hrsm.schemas import PasswordChange, UserCreate, UserUpdate
from hrsm.services.security_settings_service import SecurityPolicyStore, get_security_store
from hrsm.services.user_service import UserService
from hrsm.utils import serialize_doc

router = APIRouter(prefix="/api/users", tags=["users"])

HrDep = Depends(require_roles(HR_ROLES))


@router.get("", dependencies=[HrDep])
async def list_users(
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user=Depends(get_current_user),
    db=Depends(get_db),
    store: SecurityPolicyStore = Depends(get_security_store),
):
    result = await UserService(db, store).list(user["tenant_id"], role=role, is_active=is_active, page=page, limit=limit)
    return {"success": True, "users": serialize_doc(result["users"]), "pagination": result["pagination"]}


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
    store: SecurityPolicyStore = Depends(get_security_store),
):
    if user_id != user["id"] and user.get("role") not in HR_ROLES:
        raise AuthorizationError("You can only view your own profile")
    return {"success": True, "user": serialize_doc(await UserService(db, store).get(user["tenant_id"], user_id))}


@router.post("", status_code=201)
async def create_user(
    payload: UserCreate,
    request: Request,
    user=HrDep,
    db=Depends(get_db),
    store: SecurityPolicyStore = Depends(get_security_store),
):
    created = await UserService(db, store).create(user["tenant_id"], payload.model_dump(), actor=user, request=request)
    return {"success": True, "user": serialize_doc(created)}


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    payload: UserUpdate,
    request: Request,
    user=HrDep,
    db=Depends(get_db),
    store: SecurityPolicyStore = Depends(get_security_store),
):
    updated = await UserService(db, store).update(user["tenant_id"], user_id, payload.model_dump(exclude_unset=True), actor=user, request=request)
    return {"success": True, "user": serialize_doc(updated)}


@router.put("/{user_id}/password")
async def change_password(
    user_id: str,
    payload: PasswordChange,
    request: Request,
    user=Depends(get_current_user),
    db=Depends(get_db),
    store: SecurityPolicyStore = Depends(get_security_store),
):
    if user_id != user["id"] and user.get("role") not in HR_ROLES:
        raise AuthorizationError("You can only change your own password")
    await UserService(db, store).change_password(
        user["tenant_id"],
        user_id,
        new_password=payload.new_password,
        current_password=payload.current_password,
        actor=user,
        request=request,
    )
    return {"success": True, "message": "Password updated"}


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: str,
    request: Request,
    user=HrDep,
    db=Depends(get_db),
    store: SecurityPolicyStore = Depends(get_security_store),
):
    updated = await UserService(db, store).deactivate(user["tenant_id"], user_id, actor=user, request=request)
    return {"success": True, "user": serialize_doc(updated)}
