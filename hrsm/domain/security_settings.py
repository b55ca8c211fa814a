"""Security policy defaults, range validation and evaluators.

Validators return lists of human-readable violations so callers can report
every problem at once instead of failing on the first.
"""
from __future__ import annotations

import copy
import ipaddress
import re
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from hrsm.utils import ensure_utc

SETTINGS_ID = "security_settings"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "two_factor_auth": {
        "enabled": False,
        "enforced": False,
        "backup_codes_count": 8,
    },
    "password_policy": {
        "min_length": 8,
        "require_uppercase": True,
        "require_lowercase": True,
        "require_numbers": True,
        "require_special_chars": True,
        "expiry_days": 90,
        "history_count": 5,
    },
    "account_lockout": {
        "enabled": True,
        "max_attempts": 5,
        "lockout_duration": 30,
        "reset_after": 60,
    },
    "ip_whitelist": {
        "enabled": False,
        "allowed_ips": [],
    },
    "session_management": {
        "max_concurrent_sessions": 3,
        "session_timeout": 480,
        "idle_timeout": 30,
        "remember_me_duration": 30,
    },
    "development_mode": {
        "enabled": False,
        "allowed_users": [],
        "maintenance_message": "System is under maintenance. Please try again later.",
    },
    "audit_settings": {
        "enabled": True,
        "retention_days": 365,
    },
}

SECTIONS = tuple(DEFAULT_SETTINGS.keys())

RANGES: Dict[Tuple[str, str], Tuple[int, int]] = {
    ("two_factor_auth", "backup_codes_count"): (5, 20),
    ("password_policy", "min_length"): (8, 128),
    ("password_policy", "expiry_days"): (0, 365),
    ("password_policy", "history_count"): (0, 24),
    ("account_lockout", "max_attempts"): (3, 10),
    ("account_lockout", "lockout_duration"): (5, 1440),
    ("account_lockout", "reset_after"): (5, 1440),
    ("session_management", "max_concurrent_sessions"): (1, 10),
    ("session_management", "session_timeout"): (5, 1440),
    ("session_management", "idle_timeout"): (5, 240),
    ("session_management", "remember_me_duration"): (1, 90),
    ("audit_settings", "retention_days"): (30, 3650),
}

_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?~`]")


def default_settings() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_SETTINGS)


def deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in (patch or {}).items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def validate_settings(settings: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    for (section, field), (low, high) in RANGES.items():
        value = (settings.get(section) or {}).get(field)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{section}.{field} must be a number")
        elif value < low or value > high:
            errors.append(f"{section}.{field} must be between {low} and {high}")
    for section, defaults in DEFAULT_SETTINGS.items():
        values = settings.get(section) or {}
        for field, default in defaults.items():
            if isinstance(default, bool) and field in values and not isinstance(values[field], bool):
                errors.append(f"{section}.{field} must be a boolean")
    for entry in (settings.get("ip_whitelist") or {}).get("allowed_ips") or []:
        ip = entry.get("ip") if isinstance(entry, dict) else entry
        if not is_valid_ip_entry(ip):
            errors.append(f"ip_whitelist.allowed_ips contains an invalid address: {ip}")
    return errors


def unknown_keys(patch: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    for section, values in (patch or {}).items():
        if section not in DEFAULT_SETTINGS:
            errors.append(f"Unknown settings section: {section}")
            continue
        if not isinstance(values, dict):
            errors.append(f"{section} must be an object")
            continue
        for field in values:
            if field not in DEFAULT_SETTINGS[section]:
                errors.append(f"Unknown setting: {section}.{field}")
    return errors


def validate_password(policy: Dict[str, Any], candidate: str) -> Dict[str, Any]:
    """Evaluate every configured rule independently and collect all violations."""
    errors: List[str] = []
    candidate = candidate or ""
    min_length = policy.get("min_length", DEFAULT_SETTINGS["password_policy"]["min_length"])

    if len(candidate) < min_length:
        errors.append(f"Password must be at least {min_length} characters")
    if policy.get("require_uppercase") and not re.search(r"[A-Z]", candidate):
        errors.append("Password must contain at least one uppercase letter")
    if policy.get("require_lowercase") and not re.search(r"[a-z]", candidate):
        errors.append("Password must contain at least one lowercase letter")
    if policy.get("require_numbers") and not re.search(r"[0-9]", candidate):
        errors.append("Password must contain at least one number")
    if policy.get("require_special_chars") and not _SPECIAL_RE.search(candidate):
        errors.append("Password must contain at least one special character")

    return {"valid": not errors, "errors": errors}


def is_valid_ip_entry(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    try:
        if "/" in value:
            ipaddress.ip_network(value.strip(), strict=False)
        else:
            ipaddress.ip_address(value.strip())
    except ValueError:
        return False
    return True


def ip_matches(ip: str, entries: Iterable[Any]) -> bool:
    try:
        addr = ipaddress.ip_address((ip or "").strip())
    except ValueError:
        return False
    for entry in entries:
        raw = entry.get("ip") if isinstance(entry, dict) else entry
        if not raw:
            continue
        try:
            if "/" in raw:
                if addr in ipaddress.ip_network(raw.strip(), strict=False):
                    return True
            elif addr == ipaddress.ip_address(raw.strip()):
                return True
        except ValueError:
            continue
    return False


def is_ip_whitelisted(section: Dict[str, Any], ip: str) -> bool:
    if not section.get("enabled"):
        return True
    return ip_matches(ip, section.get("allowed_ips") or [])


def evaluate_lockout(
    policy: Dict[str, Any],
    *,
    failed_attempts: int,
    last_failed_at: Optional[datetime],
    locked_until: Optional[datetime],
    now: datetime,
) -> Dict[str, Any]:
    """Work out the lockout state for an account.

    Failures older than `reset_after` minutes no longer count.
    """

    max_attempts = policy.get("max_attempts", 5)
    if not policy.get("enabled", True):
        return {"locked": False, "locked_until": None, "failed_attempts": failed_attempts, "remaining_attempts": max_attempts}

    locked_until = ensure_utc(locked_until)
    if locked_until is not None and locked_until > now:
        return {"locked": True, "locked_until": locked_until, "failed_attempts": failed_attempts, "remaining_attempts": 0}

    last_failed_at = ensure_utc(last_failed_at)
    reset_after = timedelta(minutes=policy.get("reset_after", 60))
    if last_failed_at is None or now - last_failed_at > reset_after:
        failed_attempts = 0
    if locked_until is not None and locked_until <= now:
        failed_attempts = 0

    if failed_attempts >= max_attempts:
        until = (last_failed_at or now) + timedelta(minutes=policy.get("lockout_duration", 30))
        return {"locked": until > now, "locked_until": until, "failed_attempts": failed_attempts, "remaining_attempts": 0}

    return {
        "locked": False,
        "locked_until": None,
        "failed_attempts": failed_attempts,
        "remaining_attempts": max_attempts - failed_attempts,
    }
