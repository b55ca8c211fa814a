from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from hrsm.auth import HR_ROLES, get_current_user, require_roles
from hrsm.db import get_db
from hrsm.schemas import NotificationIn
from hrsm.services.notification_service import NotificationService
from hrsm.utils import serialize_doc

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    result = await NotificationService(db).list_for_user(user["tenant_id"], user["id"], skip=skip, limit=limit, unread_only=unread_only)
    return {"success": True, **serialize_doc(result)}


@router.get("/unread-count")
async def unread_count(user=Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "unread_count": await NotificationService(db).unread_count(user["tenant_id"], user["id"])}


@router.post("", status_code=201)
async def create_notification(payload: NotificationIn, user=Depends(require_roles(HR_ROLES)), db=Depends(get_db)):
    doc = await NotificationService(db).create(
        tenant_id=user["tenant_id"],
        user_id=payload.user_id,
        notification_type=payload.type,
        title=payload.title,
        message=payload.message,
        link=payload.link,
        reference_id=payload.reference_id,
    )
    return {"success": True, "notification": serialize_doc(doc)}


@router.put("/read-all")
async def mark_all_read(user=Depends(get_current_user), db=Depends(get_db)):
    count = await NotificationService(db).mark_all_read(user["tenant_id"], user["id"])
    return {"success": True, "updated": count}


@router.put("/{notification_id}/read")
async def mark_read(notification_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    doc = await NotificationService(db).mark_read(user["tenant_id"], user["id"], notification_id)
    return {"success": True, "notification": serialize_doc(doc)}


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, user=Depends(require_roles(HR_ROLES)), db=Depends(get_db)):
    await NotificationService(db).delete(user["tenant_id"], notification_id)
    return {"success": True, "message": "Notification deleted"}
