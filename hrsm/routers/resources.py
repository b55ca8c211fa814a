"""Routers for the plain tenant-scoped resources (departments, positions, ...).

Reads are open to any signed-in user; writes need an HR role.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, Request

from hrsm.auth import HR_ROLES, get_current_user, require_roles
from hrsm.db import get_db
from hrsm.schemas import ResourceIn
from hrsm.services.resource_service import RESOURCES, ResourceService, ResourceSpec
from hrsm.utils import serialize_doc


def build_router(spec: ResourceSpec) -> APIRouter:
    router = APIRouter(prefix=f"/api/{spec.name}", tags=[spec.name])
    writer = Depends(require_roles(HR_ROLES))
    singular = spec.name.rstrip("s")

    @router.get("")
    async def list_items(
        request: Request,
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=500),
        user=Depends(get_current_user),
        db=Depends(get_db),
    ):
        query = {k: v for k, v in request.query_params.items() if k in spec.filters}
        result = await ResourceService(db, user["tenant_id"], spec).list(query, page=page, limit=limit)
        return {"success": True, spec.name: serialize_doc(result["items"]), "pagination": result["pagination"]}

    @router.get("/{item_id}")
    async def get_item(item_id: str, user=Depends(get_current_user), db=Depends(get_db)):
        doc = await ResourceService(db, user["tenant_id"], spec).get(item_id)
        return {"success": True, singular: serialize_doc(doc)}

    @router.post("", status_code=201)
    async def create_item(payload: ResourceIn, user=writer, db=Depends(get_db)):
        doc = await ResourceService(db, user["tenant_id"], spec).create(payload.model_dump(), actor=user)
        return {"success": True, singular: serialize_doc(doc)}

    @router.put("/{item_id}")
    async def update_item(item_id: str, payload: ResourceIn, user=writer, db=Depends(get_db)):
        doc = await ResourceService(db, user["tenant_id"], spec).update(item_id, payload.model_dump(), actor=user)
        return {"success": True, singular: serialize_doc(doc)}

    @router.delete("/{item_id}")
    async def delete_item(item_id: str, user=writer, db=Depends(get_db)):
        await ResourceService(db, user["tenant_id"], spec).delete(item_id, actor=user)
        return {"success": True, "message": f"{spec.label} deleted"}

    return router


routers: List[APIRouter] = [build_router(spec) for spec in RESOURCES.values()]
