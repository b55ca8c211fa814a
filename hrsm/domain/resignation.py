"""Business rules for resigned-employee records.

The record carries a 24 hour edit window counted from created_at. Once the
window has passed the record is locked and penalties and the resignation
type can no longer change. Totals and the lock flag are recomputed by the
explicit functions below before every save.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from hrsm.config import RESIGNATION_LOCK_HOURS
from hrsm.errors import LockedRecordError, ValidationError
from hrsm.utils import ensure_utc, new_id

RESIGNATION_TYPES = ("resignation-letter", "termination")
RECORD_STATUSES = ("pending", "processed", "archived")
DEFAULT_CURRENCY = "EGP"

LOCK_WINDOW = timedelta(hours=RESIGNATION_LOCK_HOURS)


def recompute_total(record: Dict[str, Any]) -> float:
    total = sum((p.get("amount") or 0) for p in record.get("penalties") or [])
    record["total_penalties"] = total
    return total


def lock_due(record: Dict[str, Any], now: datetime) -> bool:
    created_at = ensure_utc(record.get("created_at"))
    if created_at is None:
        return False
    return ensure_utc(now) - created_at > LOCK_WINDOW


def refresh_lock(record: Dict[str, Any], now: datetime) -> bool:
    """Lock the record if its edit window has passed. Returns True if it changed."""
    if record.get("is_locked"):
        return False
    if not lock_due(record, now):
        return False
    record["is_locked"] = True
    record["locked_date"] = now
    return True


def ensure_unlocked(record: Dict[str, Any]) -> None:
    if record.get("is_locked"):
        raise LockedRecordError(
            "Resigned employee record is locked and cannot be modified",
            record_id=record.get("_id"),
        )


def validate_resignation_type(value: Optional[str]) -> str:
    if value not in RESIGNATION_TYPES:
        raise ValidationError(
            "Invalid resignation type",
            errors=[f"resignation_type must be one of: {', '.join(RESIGNATION_TYPES)}"],
        )
    return value  # type: ignore[return-value]


def validate_status(value: Optional[str]) -> str:
    if value not in RECORD_STATUSES:
        raise ValidationError(
            "Invalid status",
            errors=[f"status must be one of: {', '.join(RECORD_STATUSES)}"],
        )
    return value  # type: ignore[return-value]


def build_penalty(
    *,
    description: Optional[str],
    amount: Any,
    added_by: str,
    now: datetime,
    currency: Optional[str] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    errors = []
    if not description or not str(description).strip():
        errors.append("description is required")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        value = None
    if value is None or value <= 0:
        errors.append("amount must be a positive number")
    if errors:
        raise ValidationError("Invalid penalty", errors=errors)
    if value is not None and value.is_integer():
        value = int(value)
    return {
        "_id": new_id(),
        "description": str(description).strip(),
        "amount": value,
        "currency": currency or DEFAULT_CURRENCY,
        "notes": notes or "",
        "added_by": added_by,
        "added_date": now,
    }


def _fmt_date(value: Any) -> str:
    if isinstance(value, datetime):
        return ensure_utc(value).strftime("%d-%m-%Y")
    return str(value or "")


def render_letter(record: Dict[str, Any], employee: Dict[str, Any], organization_name: str) -> str:
    name = employee.get("full_name") or employee.get("name") or employee.get("email") or ""
    position = employee.get("position") or ""
    kind = "resignation" if record.get("resignation_type") == "resignation-letter" else "termination of employment"
    lines = [
        organization_name,
        "",
        f"Date: {_fmt_date(record.get('letter_generated_date') or record.get('updated_at'))}",
        "",
        "To whom it may concern,",
        "",
        f"This letter confirms the {kind} of {name}"
        + (f", {position}," if position else "")
        + f" effective {_fmt_date(record.get('resignation_date'))}.",
        f"The last working day was {_fmt_date(record.get('last_working_day'))}.",
    ]
    total = record.get("total_penalties") or 0
    if total:
        currency = (record.get("penalties") or [{}])[0].get("currency", DEFAULT_CURRENCY)
        lines.append(f"Outstanding penalties deducted at settlement: {total} {currency}.")
    lines += ["", "Human Resources Department"]
    return "\n".join(lines)


def render_arabic_disclaimer(record: Dict[str, Any], employee: Dict[str, Any], organization_arabic_name: str) -> str:
    name = employee.get("arabic_name") or employee.get("full_name") or employee.get("email") or ""
    national_id = employee.get("national_id") or ""
    lines = [
        organization_arabic_name,
        "",
        "إخلاء طرف",
        "",
        f"نشهد بأن السيد/ة {name}" + (f" رقم قومي {national_id}" if national_id else ""),
        f"قد انتهت علاقته/ا بالمؤسسة اعتباراً من {_fmt_date(record.get('last_working_day'))}",
        "وقد تم تسليم جميع العهد ولا توجد أية مستحقات أو التزامات على المؤسسة تجاهه/ا.",
        "",
        "إدارة الموارد البشرية",
    ]
    return "\n".join(lines)
