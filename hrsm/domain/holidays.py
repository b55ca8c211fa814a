"""Holiday calendar rules.

Weekend days use ISO weekday numbers (Monday=1 .. Sunday=7); the default
weekend is Friday and Saturday.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List

from hrsm.errors import ValidationError

DEFAULT_WEEKEND_DAYS = [5, 6]

DAY_NAMES = {
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
    7: "Sunday",
}

_DATE_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")

_ISLAMIC_KEYWORDS = ("eid", "ramadan", "arafat", "islamic", "prophet", "mawlid", "hijri", "muharram")

# Fixed-date national holidays, used when the public holiday API is unreachable.
FALLBACK_HOLIDAYS = [
    ("01-07", "Coptic Christmas"),
    ("01-25", "January 25 Revolution"),
    ("04-25", "Sinai Liberation Day"),
    ("05-01", "Labour Day"),
    ("06-30", "June 30 Revolution"),
    ("07-23", "July 23 Revolution"),
    ("10-06", "Armed Forces Day"),
]


def parse_date_string(value: Any) -> date:
    """Parse a DD-MM-YYYY string."""
    if value is None or not str(value).strip():
        raise ValidationError("Date string is required")
    match = _DATE_RE.match(str(value).strip())
    if not match:
        raise ValidationError("Invalid date format. Use DD-MM-YYYY format.")
    day, month, year = (int(x) for x in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        raise ValidationError("Invalid date format. Use DD-MM-YYYY format.")


def parse_date_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        items = str(value or "").split(",")
    return [item.strip() for item in items if item and item.strip()]


def as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def day_of_week(value: date) -> str:
    return DAY_NAMES[value.isoweekday()]


def is_weekend(value: date, weekend_days: Iterable[int] = DEFAULT_WEEKEND_DAYS) -> bool:
    return value.isoweekday() in set(weekend_days)


def is_islamic_holiday(name: str) -> bool:
    lowered = (name or "").lower()
    return any(k in lowered for k in _ISLAMIC_KEYWORDS)


def validate_weekend_days(days: Any) -> List[int]:
    if not isinstance(days, list) or not days:
        raise ValidationError("weekend_days must be a non-empty list")
    out = []
    for d in days:
        if isinstance(d, bool) or not isinstance(d, int) or d < 1 or d > 7:
            raise ValidationError("weekend_days entries must be ISO weekday numbers 1-7")
        out.append(d)
    return sorted(set(out))


def _dates(entries: Iterable[Dict[str, Any]]) -> set:
    return {as_date(e["date"]) for e in entries if e.get("date")}


def check_working_day(settings: Dict[str, Any], value: date) -> Dict[str, Any]:
    weekend_days = settings.get("weekend_days") or DEFAULT_WEEKEND_DAYS
    holiday = value in _dates(settings.get("official_holidays") or [])
    weekend = is_weekend(value, weekend_days)
    weekend_work = value in _dates(settings.get("weekend_work_days") or [])
    working = not holiday and (not weekend or weekend_work)
    return {
        "date": value.isoformat(),
        "day_of_week": day_of_week(value),
        "is_working_day": working,
        "is_holiday": holiday,
        "is_weekend": weekend,
        "is_weekend_work_day": weekend_work,
    }


def count_working_days(settings: Dict[str, Any], start: date, end: date) -> int:
    days = 0
    current = start
    while current <= end:
        if check_working_day(settings, current)["is_working_day"]:
            days += 1
        current += timedelta(days=1)
    return days


def describe_day(value: date, weekend_days: Iterable[int] = DEFAULT_WEEKEND_DAYS) -> Dict[str, Any]:
    return {
        "date": value.isoformat(),
        "day_of_week": day_of_week(value),
        "is_weekend": is_weekend(value, weekend_days),
        "formatted": value.strftime("%A, %B %d, %Y").replace(" 0", " "),
    }


def fallback_suggestions(year: int, weekend_days: Iterable[int] = DEFAULT_WEEKEND_DAYS) -> List[Dict[str, Any]]:
    out = []
    for month_day, name in FALLBACK_HOLIDAYS:
        value = date.fromisoformat(f"{year}-{month_day}")
        out.append({
            "date": value.isoformat(),
            "name": name,
            "local_name": name,
            "day_of_week": day_of_week(value),
            "is_weekend": is_weekend(value, weekend_days),
            "is_islamic": False,
            "source": "fallback",
        })
    return out
