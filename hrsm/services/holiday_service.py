"""Per-campus holiday calendars and working-day checks."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm import config
from hrsm.domain import holidays as rules
from hrsm.errors import NotFoundError, ValidationError
from hrsm.repositories.holiday_repository import HolidayRepository
from hrsm.utils import new_id

logger = logging.getLogger(__name__)

DEFAULT_CAMPUS = "default"


async def fetch_public_holidays(year: int, country: str) -> List[Dict[str, Any]]:
    """Fetch public holidays from the configured API. Returns [] when unavailable."""
    if not config.ENABLE_HOLIDAY_API:
        return []
    url = f"{config.HOLIDAY_API_BASE_URL.rstrip('/')}/PublicHolidays/{year}/{country}"
    async with httpx.AsyncClient(timeout=config.HOLIDAY_API_TIMEOUT_SECONDS) as client:
        try:
            resp = await client.get(url)
        except httpx.RequestError as exc:
            logger.warning("holiday API request failed url=%s: %s", url, exc)
            return []
    if resp.status_code != 200:
        logger.warning("holiday API returned status %s for %s", resp.status_code, url)
        return []
    try:
        data = resp.json()
    except ValueError:
        logger.warning("holiday API returned non-JSON body for %s", url)
        return []
    return data if isinstance(data, list) else []


class HolidayService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._repo = HolidayRepository(db)

    async def get_settings(self, tenant_id: str, campus: str = DEFAULT_CAMPUS) -> Dict[str, Any]:
        return await self._repo.get_or_create(tenant_id, campus)

    async def update_weekend_days(self, tenant_id: str, weekend_days: Any, *, actor_id: str, campus: str = DEFAULT_CAMPUS) -> Dict[str, Any]:
        settings = await self.get_settings(tenant_id, campus)
        settings["weekend_days"] = rules.validate_weekend_days(weekend_days)
        return await self._repo.save(settings, modified_by=actor_id)

    async def add_official_holidays(
        self,
        tenant_id: str,
        dates: Any,
        *,
        name: Optional[str],
        description: Optional[str] = None,
        actor_id: str,
        campus: str = DEFAULT_CAMPUS,
    ) -> Dict[str, Any]:
        items = rules.parse_date_list(dates)
        if not items:
            raise ValidationError("Dates are required")
        settings = await self.get_settings(tenant_id, campus)
        existing = {h["date"] for h in settings.get("official_holidays") or []}
        added: List[str] = []
        errors: List[Dict[str, str]] = []
        for raw in items:
            try:
                value = rules.parse_date_string(raw)
            except ValidationError as exc:
                errors.append({"date": raw, "error": exc.message})
                continue
            if value.isoformat() in existing:
                errors.append({"date": raw, "error": "Holiday already exists"})
                continue
            settings.setdefault("official_holidays", []).append({
                "_id": new_id(),
                "date": value.isoformat(),
                "name": name or "Holiday",
                "description": description or "",
                "day_of_week": rules.day_of_week(value),
                "is_weekend": rules.is_weekend(value, settings.get("weekend_days") or rules.DEFAULT_WEEKEND_DAYS),
                "is_islamic": rules.is_islamic_holiday(name or ""),
            })
            existing.add(value.isoformat())
            added.append(value.isoformat())
        settings["official_holidays"] = sorted(settings.get("official_holidays") or [], key=lambda h: h["date"])
        saved = await self._repo.save(settings, modified_by=actor_id)
        return {"added": added, "errors": errors, "settings": saved}

    async def remove_official_holiday(self, tenant_id: str, holiday_id: str, *, actor_id: str, campus: str = DEFAULT_CAMPUS) -> Dict[str, Any]:
        settings = await self.get_settings(tenant_id, campus)
        holidays = settings.get("official_holidays") or []
        remaining = [h for h in holidays if h.get("_id") != holiday_id]
        if len(remaining) == len(holidays):
            raise NotFoundError("Holiday not found")
        settings["official_holidays"] = remaining
        return await self._repo.save(settings, modified_by=actor_id)

    async def add_weekend_work_days(
        self,
        tenant_id: str,
        dates: Any,
        *,
        reason: Optional[str],
        actor_id: str,
        campus: str = DEFAULT_CAMPUS,
    ) -> Dict[str, Any]:
        items = rules.parse_date_list(dates)
        if not items:
            raise ValidationError("Dates are required")
        settings = await self.get_settings(tenant_id, campus)
        weekend_days = settings.get("weekend_days") or rules.DEFAULT_WEEKEND_DAYS
        existing = {w["date"] for w in settings.get("weekend_work_days") or []}
        added: List[str] = []
        errors: List[Dict[str, str]] = []
        for raw in items:
            try:
                value = rules.parse_date_string(raw)
            except ValidationError as exc:
                errors.append({"date": raw, "error": exc.message})
                continue
            if not rules.is_weekend(value, weekend_days):
                errors.append({"date": raw, "error": "Date is not a weekend day"})
                continue
            if value.isoformat() in existing:
                errors.append({"date": raw, "error": "Weekend work day already exists"})
                continue
            settings.setdefault("weekend_work_days", []).append({
                "_id": new_id(),
                "date": value.isoformat(),
                "reason": reason or "",
                "day_of_week": rules.day_of_week(value),
            })
            existing.add(value.isoformat())
            added.append(value.isoformat())
        saved = await self._repo.save(settings, modified_by=actor_id)
        return {"added": added, "errors": errors, "settings": saved}

    async def remove_weekend_work_day(self, tenant_id: str, work_day_id: str, *, actor_id: str, campus: str = DEFAULT_CAMPUS) -> Dict[str, Any]:
        settings = await self.get_settings(tenant_id, campus)
        days = settings.get("weekend_work_days") or []
        remaining = [w for w in days if w.get("_id") != work_day_id]
        if len(remaining) == len(days):
            raise NotFoundError("Weekend work day not found")
        settings["weekend_work_days"] = remaining
        return await self._repo.save(settings, modified_by=actor_id)

    async def check_working_day(self, tenant_id: str, value: date, campus: str = DEFAULT_CAMPUS) -> Dict[str, Any]:
        settings = await self.get_settings(tenant_id, campus)
        return rules.check_working_day(settings, value)

    async def suggestions(
        self,
        tenant_id: str,
        year: int,
        *,
        country: Optional[str] = None,
        campus: str = DEFAULT_CAMPUS,
    ) -> Dict[str, Any]:
        country = (country or config.HOLIDAY_COUNTRY).upper()
        settings = await self.get_settings(tenant_id, campus)
        weekend_days = settings.get("weekend_days") or rules.DEFAULT_WEEKEND_DAYS

        suggestions: List[Dict[str, Any]] = []
        source = "none"
        for item in await fetch_public_holidays(year, country):
            try:
                value = date.fromisoformat(str(item.get("date"))[:10])
            except ValueError:
                continue
            name = item.get("name") or item.get("localName") or ""
            suggestions.append({
                "date": value.isoformat(),
                "name": name,
                "local_name": item.get("localName") or name,
                "day_of_week": rules.day_of_week(value),
                "is_weekend": rules.is_weekend(value, weekend_days),
                "is_islamic": rules.is_islamic_holiday(name),
                "source": "api",
            })
        if suggestions:
            source = "api"
        elif country == "EG":
            suggestions = rules.fallback_suggestions(year, weekend_days)
            source = "fallback"

        existing = {h["date"] for h in settings.get("official_holidays") or []}
        suggestions = sorted((s for s in suggestions if s["date"] not in existing), key=lambda s: s["date"])
        return {"suggestions": suggestions, "count": len(suggestions), "source": source, "year": year, "country": country}
