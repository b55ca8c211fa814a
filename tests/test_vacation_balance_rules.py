from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from hrsm.domain import vacation_balance as vb
from hrsm.errors import InsufficientBalanceError, ValidationError

AS_OF = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "tenure,expected",
    [(0.0, 0), (0.49, 0), (0.5, 8), (0.99, 8), (1.0, 14), (9.9, 14), (10.0, 23), (25, 23)],
)
def test_annual_allocation_by_tenure(tenure: float, expected: int) -> None:
    assert vb.annual_allocation(tenure) == expected


def test_eligibility_after_probation() -> None:
    hire = AS_OF - timedelta(days=200)
    elig = vb.eligibility(hire, AS_OF)
    assert elig["is_eligible"] is True
    assert elig["eligible_from"] == vb._add_months(hire, vb.PROBATION_MONTHS)


def test_not_eligible_during_probation_and_without_hire_date() -> None:
    assert vb.eligibility(AS_OF - timedelta(days=30), AS_OF)["is_eligible"] is False
    assert vb.eligibility(None, AS_OF) == {"is_eligible": False, "eligible_from": None, "probation_ends": None, "tenure": 0}


def test_initial_balance_for_long_serving_employee() -> None:
    balance = vb.build_initial_balance(
        tenant_id="t1",
        employee_id="e1",
        year=2024,
        hire_date=AS_OF - timedelta(days=365 * 11),
        as_of=AS_OF,
    )
    assert balance["annual"]["allocated"] == 23
    assert balance["annual"]["available"] == 23
    assert balance["casual"]["allocated"] == vb.CASUAL_DAYS
    assert balance["sick"]["allocated"] == vb.SICK_DAYS
    assert balance["flexible_hours"]["allocated"] == vb.FLEXIBLE_HOURS


def test_new_hire_gets_no_casual_days() -> None:
    balance = vb.build_initial_balance(tenant_id="t1", employee_id="e1", year=2024, hire_date=AS_OF - timedelta(days=10), as_of=AS_OF)
    assert balance["annual"]["allocated"] == 0
    assert balance["casual"]["allocated"] == 0


def test_operations_keep_available_consistent() -> None:
    balance = {"annual": vb.empty_category(14)}
    balance = vb.apply_operation(balance, "reserve", "annual", 3)
    assert balance["annual"] == {"allocated": 14, "used": 0, "pending": 3, "available": 11, "carried_over": 0}

    balance = vb.apply_operation(balance, "confirm", "annual", 3)
    assert balance["annual"]["used"] == 3
    assert balance["annual"]["pending"] == 0
    assert balance["annual"]["available"] == 11

    balance = vb.apply_operation(balance, "return", "annual", 2)
    assert balance["annual"]["used"] == 1
    assert balance["annual"]["available"] == 13


def test_apply_operation_does_not_mutate_input() -> None:
    original = {"annual": vb.empty_category(5)}
    vb.apply_operation(original, "use", "annual", 2)
    assert original["annual"]["used"] == 0


def test_overdraw_is_rejected() -> None:
    balance = {"annual": vb.empty_category(2)}
    with pytest.raises(InsufficientBalanceError) as exc:
        vb.apply_operation(balance, "use", "annual", 3)
    assert exc.value.available == 2
    assert exc.value.requested == 3


def test_release_more_than_pending_is_rejected() -> None:
    balance = vb.apply_operation({"annual": vb.empty_category(10)}, "reserve", "annual", 1)
    with pytest.raises(InsufficientBalanceError):
        vb.apply_operation(balance, "release", "annual", 2)


@pytest.mark.parametrize("days", [0, -1, None])
def test_non_positive_days_are_invalid(days) -> None:
    with pytest.raises(ValidationError):
        vb.balance_update("use", "annual", days)


def test_unknown_leave_type_is_invalid() -> None:
    with pytest.raises(ValidationError):
        vb.balance_update("use", "maternity", 1)


def test_balance_update_guard_matches_operation() -> None:
    guard, inc = vb.balance_update("use", "annual", 5)
    assert guard == {"annual.available": {"$gte": 5}}
    assert inc == {"annual.used": 5, "annual.available": -5}

    guard, inc = vb.balance_update("release", "casual", 1)
    assert guard == {"casual.pending": {"$gte": 1}}
    assert inc == {"casual.pending": -1, "casual.available": 1}


def test_carry_over_is_capped() -> None:
    assert vb.carry_over_days({"annual": vb.empty_category(14)}, 5) == 5
    partly_used = vb.apply_operation({"annual": vb.empty_category(14)}, "use", "annual", 12)
    assert vb.carry_over_days(partly_used, 5) == 2


def test_totals_from_leaves() -> None:
    totals = vb.totals_from_leaves([
        {"leave_type": "annual", "days": 3, "status": "approved"},
        {"leave_type": "annual", "days": 2, "status": "pending"},
        {"leave_type": "sick", "days": 1, "status": "approved"},
        {"leave_type": "annual", "days": 9, "status": "rejected"},
        {"leave_type": "unknown", "days": 4, "status": "approved"},
    ])
    assert totals["annual"] == {"used": 3, "pending": 2}
    assert totals["sick"] == {"used": 1, "pending": 0}
