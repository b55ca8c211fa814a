"""Leave balance arithmetic.

Every category keeps `available == max(0, allocated - used - pending)`.
Mutations are expressed as deltas so the service layer can apply them with
one conditional `$inc`; `apply_operation` runs the same delta in memory.
"""
from __future__ import annotations

import calendar
import copy
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from hrsm.errors import InsufficientBalanceError, ValidationError
from hrsm.utils import ensure_utc

LEAVE_TYPES = ("annual", "casual", "sick", "flexible_hours")

CATEGORY_FIELDS = ("allocated", "used", "pending", "available", "carried_over")

CASUAL_DAYS = 7
SICK_DAYS = 10
FLEXIBLE_HOURS = 8
ELIGIBILITY_TENURE_YEARS = 0.25
PROBATION_MONTHS = 3
DAYS_PER_MONTH = 30.44

# operation -> (field that must cover the requested days, {field: sign})
_OPERATIONS: Dict[str, Tuple[str, Dict[str, int]]] = {
    "reserve": ("available", {"pending": 1, "available": -1}),
    "release": ("pending", {"pending": -1, "available": 1}),
    "confirm": ("pending", {"pending": -1, "used": 1}),
    "use": ("available", {"used": 1, "available": -1}),
    "return": ("used", {"used": -1, "available": 1}),
}


def empty_category(allocated: float = 0) -> Dict[str, float]:
    cat = {"allocated": allocated, "used": 0, "pending": 0, "available": 0, "carried_over": 0}
    return recompute_available(cat)


def recompute_available(category: Dict[str, Any]) -> Dict[str, Any]:
    allocated = category.get("allocated") or 0
    used = category.get("used") or 0
    pending = category.get("pending") or 0
    category["available"] = max(0, allocated - used - pending)
    return category


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def tenure_years(hire_date: datetime, as_of: datetime) -> float:
    delta = ensure_utc(as_of) - ensure_utc(hire_date)
    months = delta.total_seconds() / 86400 / DAYS_PER_MONTH
    return max(0.0, months / 12)


def annual_allocation(tenure: float) -> int:
    if tenure < 0.5:
        return 0
    if tenure < 1:
        return 8
    if tenure < 10:
        return 14
    return 23


def eligibility(hire_date: Optional[datetime], as_of: datetime) -> Dict[str, Any]:
    if hire_date is None:
        return {"is_eligible": False, "eligible_from": None, "probation_ends": None, "tenure": 0}
    hire = ensure_utc(hire_date)
    tenure = tenure_years(hire, as_of)
    eligible_from = _add_months(hire, PROBATION_MONTHS)
    return {
        "is_eligible": tenure >= ELIGIBILITY_TENURE_YEARS,
        "eligible_from": eligible_from,
        "probation_ends": eligible_from,
        "tenure": int(tenure * 10) / 10,
    }


def build_initial_balance(
    *,
    tenant_id: str,
    employee_id: str,
    year: int,
    hire_date: Optional[datetime],
    as_of: datetime,
) -> Dict[str, Any]:
    elig = eligibility(hire_date, as_of)
    tenure = tenure_years(hire_date, as_of) if hire_date else 0.0
    return {
        "tenant_id": tenant_id,
        "employee_id": employee_id,
        "year": year,
        "annual": empty_category(annual_allocation(tenure)),
        "casual": empty_category(CASUAL_DAYS if elig["is_eligible"] else 0),
        "sick": empty_category(SICK_DAYS),
        "flexible_hours": empty_category(FLEXIBLE_HOURS),
        "eligibility": elig,
        "history": [],
        "last_calculated": as_of,
    }


def _check_request(leave_type: str, days: float) -> None:
    if leave_type not in LEAVE_TYPES:
        raise ValidationError(f"Unknown leave type '{leave_type}'")
    if days is None or days <= 0:
        raise ValidationError("Days must be a positive number")


def balance_update(operation: str, leave_type: str, days: float) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return (guard filter, $inc document) for one balance operation."""
    _check_request(leave_type, days)
    if operation not in _OPERATIONS:
        raise ValueError(f"unknown balance operation: {operation}")
    guard_field, signs = _OPERATIONS[operation]
    guard = {f"{leave_type}.{guard_field}": {"$gte": days}}
    inc = {f"{leave_type}.{field}": sign * days for field, sign in signs.items()}
    return guard, inc


def apply_operation(balance: Dict[str, Any], operation: str, leave_type: str, days: float) -> Dict[str, Any]:
    """In-memory counterpart of `balance_update`; returns a new balance."""
    _check_request(leave_type, days)
    guard_field, signs = _OPERATIONS[operation]
    out = copy.deepcopy(balance)
    category = out.setdefault(leave_type, empty_category())
    recompute_available(category)
    if (category.get(guard_field) or 0) < days:
        raise InsufficientBalanceError(leave_type, category.get("available") or 0, days)
    for field, sign in signs.items():
        category[field] = (category.get(field) or 0) + sign * days
    recompute_available(category)
    return out


def has_sufficient(balance: Dict[str, Any], leave_type: str, days: float) -> bool:
    category = balance.get(leave_type) or {}
    return (category.get("available") or 0) >= days


def carry_over_days(balance: Dict[str, Any], max_days: float) -> float:
    annual = balance.get("annual") or {}
    return min(recompute_available(dict(annual))["available"], max_days)


def totals_from_leaves(leaves: list[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    """Sum approved/pending leave days per type."""
    totals: Dict[str, Dict[str, float]] = {t: {"used": 0, "pending": 0} for t in LEAVE_TYPES}
    for leave in leaves:
        leave_type = leave.get("leave_type")
        if leave_type not in totals:
            continue
        days = leave.get("days") or 0
        if leave.get("status") == "approved":
            totals[leave_type]["used"] += days
        elif leave.get("status") == "pending":
            totals[leave_type]["pending"] += days
    return totals
