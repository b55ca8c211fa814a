from __future__ import annotations

from typing import Literal

from hrsm.errors import InvalidStateError


PolicyStatus = Literal["draft", "active", "cancelled", "expired"]

POLICY_STATUSES = ("draft", "active", "cancelled", "expired")

_ALLOWED_TRANSITIONS = {
    "draft": {"active"},
    "active": {"cancelled", "expired"},
    "cancelled": set(),
    "expired": set(),
}


class PolicyStateTransitionError(InvalidStateError):
    """Raised when an invalid mixed vacation policy transition is requested."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Cannot move policy from '{current}' to '{target}'",
            current=current,
            target=target,
        )


def can_transition(current: str, target: str) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(current, set())


def validate_transition(current: str, target: str) -> None:
    """Validate that a transition from current -> target is allowed.

    Raises PolicyStateTransitionError if not allowed.
    """

    if not can_transition(current, target):
        raise PolicyStateTransitionError(current=current, target=target)
