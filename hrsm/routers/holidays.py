from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from hrsm.auth import HR_ROLES, get_current_user, require_roles
from hrsm.db import get_db
from hrsm.domain import holidays as rules
from hrsm.schemas import OfficialHolidaysIn, WeekendDaysUpdate, WeekendWorkDaysIn
from hrsm.services.holiday_service import DEFAULT_CAMPUS, HolidayService
from hrsm.utils import now_utc, serialize_doc

router = APIRouter(prefix="/api/holidays", tags=["holidays"])

HrDep = Depends(require_roles(HR_ROLES))


@router.get("")
async def get_settings(campus: str = DEFAULT_CAMPUS, user=Depends(get_current_user), db=Depends(get_db)):
    settings = await HolidayService(db).get_settings(user["tenant_id"], campus)
    return {"success": True, "settings": serialize_doc(settings)}


@router.put("/weekend-days")
async def update_weekend_days(payload: WeekendDaysUpdate, user=HrDep, db=Depends(get_db)):
    settings = await HolidayService(db).update_weekend_days(
        user["tenant_id"], payload.weekend_days, actor_id=user["id"], campus=payload.campus or DEFAULT_CAMPUS,
    )
    return {"success": True, "settings": serialize_doc(settings)}


@router.post("/official")
async def add_official_holidays(payload: OfficialHolidaysIn, user=HrDep, db=Depends(get_db)):
    result = await HolidayService(db).add_official_holidays(
        user["tenant_id"],
        payload.dates,
        name=payload.name,
        description=payload.description,
        actor_id=user["id"],
        campus=payload.campus or DEFAULT_CAMPUS,
    )
    return {"success": True, **serialize_doc(result)}


@router.delete("/official/{holiday_id}")
async def remove_official_holiday(holiday_id: str, campus: str = DEFAULT_CAMPUS, user=HrDep, db=Depends(get_db)):
    settings = await HolidayService(db).remove_official_holiday(user["tenant_id"], holiday_id, actor_id=user["id"], campus=campus)
    return {"success": True, "settings": serialize_doc(settings)}


@router.post("/weekend-work-days")
async def add_weekend_work_days(payload: WeekendWorkDaysIn, user=HrDep, db=Depends(get_db)):
    result = await HolidayService(db).add_weekend_work_days(
        user["tenant_id"], payload.dates, reason=payload.reason, actor_id=user["id"], campus=payload.campus or DEFAULT_CAMPUS,
    )
    return {"success": True, **serialize_doc(result)}


@router.delete("/weekend-work-days/{work_day_id}")
async def remove_weekend_work_day(work_day_id: str, campus: str = DEFAULT_CAMPUS, user=HrDep, db=Depends(get_db)):
    settings = await HolidayService(db).remove_weekend_work_day(user["tenant_id"], work_day_id, actor_id=user["id"], campus=campus)
    return {"success": True, "settings": serialize_doc(settings)}


@router.get("/suggestions")
async def suggestions(
    year: Optional[int] = Query(None, ge=1900, le=2200),
    country: Optional[str] = None,
    campus: str = DEFAULT_CAMPUS,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    result = await HolidayService(db).suggestions(user["tenant_id"], year or now_utc().year, country=country, campus=campus)
    return {"success": True, **result}


@router.get("/check")
async def check_working_day(date: Optional[str] = None, campus: str = DEFAULT_CAMPUS, user=Depends(get_current_user), db=Depends(get_db)):
    value = rules.parse_date_string(date)
    result = await HolidayService(db).check_working_day(user["tenant_id"], value, campus)
    return {"success": True, **result}


@router.get("/parse")
async def parse_date(date: Optional[str] = None, user=Depends(get_current_user)):
    value = rules.parse_date_string(date)
    return {"success": True, **rules.describe_day(value)}
