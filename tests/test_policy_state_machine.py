from __future__ import annotations

import pytest

from hrsm.domain.policy_state_machine import PolicyStateTransitionError, can_transition, validate_transition


@pytest.mark.parametrize(
    "current,target",
    [("draft", "active"), ("active", "cancelled"), ("active", "expired")],
)
def test_allowed_transitions(current: str, target: str) -> None:
    assert can_transition(current, target)
    validate_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        ("draft", "cancelled"),
        ("draft", "expired"),
        ("active", "draft"),
        ("cancelled", "active"),
        ("expired", "active"),
        ("cancelled", "expired"),
    ],
)
def test_rejected_transitions(current: str, target: str) -> None:
    with pytest.raises(PolicyStateTransitionError) as exc:
        validate_transition(current, target)
    assert exc.value.status_code == 400
    assert exc.value.code == "invalid_state"
    assert exc.value.details == {"current": current, "target": target}
