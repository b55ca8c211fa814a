"""Application configuration.

Values are read from the environment once at import time. `server.py` loads
`.env` before importing anything from this package, so development values
placed there are visible here.
"""
from __future__ import annotations

import os


def _env_flag(name: str, default: bool = True) -> bool:
    """Read a boolean-like flag from environment.

    Accepted falsy values: "0", "false", "off", "no" (case-insensitive).
    Anything else (or unset) falls back to `default`.
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"0", "false", "off", "no"}:
        return False
    if value in {"1", "true", "on", "yes"}:
        return True
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


# Application constants
API_PREFIX = "/api"
APP_NAME = "HR Security & Management API"
APP_VERSION = "1.0.0"
SERVICE_NAME = "hrsm"

# Auth
ACCESS_TOKEN_MINUTES: int = _env_int("ACCESS_TOKEN_MINUTES", 60 * 12)

# Feature flags
ENABLE_IP_WHITELIST: bool = _env_flag("ENABLE_IP_WHITELIST", default=True)

# Backups
BACKUP_DIR = os.environ.get("BACKUP_DIR", "/var/backups/hrsm")
BACKUP_RETENTION_DAYS: int = _env_int("BACKUP_RETENTION_DAYS", 30)
MONGODUMP_BIN = os.environ.get("MONGODUMP_BIN", "mongodump")

# Business rules
RESIGNATION_LOCK_HOURS = 24
EXTENDED_RETENTION_DAYS = 2555
AUDIT_EXPORT_LIMIT = 10000
MAX_CARRY_OVER_DAYS = 5

# Public holiday suggestions
HOLIDAY_API_BASE_URL = os.environ.get("HOLIDAY_API_BASE_URL", "https://date.nager.at/api/v3")
HOLIDAY_API_TIMEOUT_SECONDS = float(os.environ.get("HOLIDAY_API_TIMEOUT_SECONDS", "5"))
HOLIDAY_COUNTRY = os.environ.get("HOLIDAY_COUNTRY", "EG")
ENABLE_HOLIDAY_API: bool = _env_flag("ENABLE_HOLIDAY_API", default=True)
