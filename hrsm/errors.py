from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(eq=False)
class AppError(Exception):
    status_code: int
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return self.message


class ValidationError(AppError):
    """Malformed or missing input, or a schema constraint violation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None, **details: Any) -> None:
        if errors:
            details["errors"] = list(errors)
        super().__init__(400, "validation_error", message, details or None)
        self.errors = list(errors or [])


class NotFoundError(AppError):
    def __init__(self, message: str = "Resource not found", **details: Any) -> None:
        super().__init__(404, "not_found", message, details or None)


class AuthenticationError(AppError):
    def __init__(self, message: str = "Invalid email or password", code: str = "invalid_credentials", **details: Any) -> None:
        super().__init__(401, code, message, details or None)


class AuthorizationError(AppError):
    def __init__(self, message: str = "Not allowed", **details: Any) -> None:
        super().__init__(403, "forbidden", message, details or None)


class ConflictError(AppError):
    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(409, "conflict", message, details or None)


class LockedRecordError(AppError):
    """Raised when a time-locked record is mutated."""

    def __init__(self, message: str = "Record is locked and cannot be modified", **details: Any) -> None:
        super().__init__(400, "record_locked", message, details or None)


class AccountLockedError(AppError):
    def __init__(self, message: str = "Account is temporarily locked", **details: Any) -> None:
        super().__init__(403, "account_locked", message, details or None)


class MaintenanceModeError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(503, "maintenance_mode", message)


class InvalidStateError(AppError):
    def __init__(self, message: str, current: Optional[str] = None, target: Optional[str] = None) -> None:
        details: Dict[str, Any] = {}
        if current is not None:
            details["current"] = current
        if target is not None:
            details["target"] = target
        super().__init__(400, "invalid_state", message, details or None)
        self.current = current
        self.target = target


class InsufficientBalanceError(AppError):
    def __init__(self, leave_type: str, available: float, requested: float) -> None:
        super().__init__(
            400,
            "insufficient_balance",
            f"Insufficient {leave_type} leave balance",
            {"leave_type": leave_type, "available": available, "requested": requested},
        )
        self.leave_type = leave_type
        self.available = available
        self.requested = requested


def error_response(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }
