from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from hrsm.domain import security_settings as policy

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
LOCKOUT = {"enabled": True, "max_attempts": 5, "lockout_duration": 30, "reset_after": 60}


def test_defaults_are_valid_and_independent_copies() -> None:
    settings = policy.default_settings()
    assert policy.validate_settings(settings) == []
    settings["password_policy"]["min_length"] = 99
    assert policy.DEFAULT_SETTINGS["password_policy"]["min_length"] == 8


def test_password_short_reports_every_violation() -> None:
    result = policy.validate_password(policy.DEFAULT_SETTINGS["password_policy"], "short")
    assert result["valid"] is False
    assert result["errors"] == [
        "Password must be at least 8 characters",
        "Password must contain at least one uppercase letter",
        "Password must contain at least one number",
        "Password must contain at least one special character",
    ]


def test_password_meeting_policy_is_valid() -> None:
    assert policy.validate_password(policy.DEFAULT_SETTINGS["password_policy"], "Str0ng!Pass") == {"valid": True, "errors": []}


def test_relaxed_policy_only_checks_length() -> None:
    relaxed = {"min_length": 10, "require_uppercase": False, "require_lowercase": False, "require_numbers": False, "require_special_chars": False}
    assert policy.validate_password(relaxed, "aaaaaaaaaa")["valid"] is True
    assert policy.validate_password(relaxed, "aaaa")["errors"] == ["Password must be at least 10 characters"]


@pytest.mark.parametrize(
    "section,field,value",
    [
        ("password_policy", "min_length", 7),
        ("password_policy", "min_length", 129),
        ("account_lockout", "max_attempts", 2),
        ("account_lockout", "max_attempts", 11),
        ("session_management", "idle_timeout", 241),
        ("audit_settings", "retention_days", 29),
        ("two_factor_auth", "backup_codes_count", 21),
    ],
)
def test_out_of_range_values_are_rejected(section: str, field: str, value: int) -> None:
    settings = policy.deep_merge(policy.default_settings(), {section: {field: value}})
    errors = policy.validate_settings(settings)
    low, high = policy.RANGES[(section, field)]
    assert errors == [f"{section}.{field} must be between {low} and {high}"]


def test_type_errors_are_reported() -> None:
    settings = policy.deep_merge(policy.default_settings(), {
        "password_policy": {"min_length": "12"},
        "two_factor_auth": {"enabled": "yes"},
    })
    errors = policy.validate_settings(settings)
    assert "password_policy.min_length must be a number" in errors
    assert "two_factor_auth.enabled must be a boolean" in errors


def test_unknown_keys() -> None:
    assert policy.unknown_keys({"bogus": {}, "password_policy": {"nope": 1}}) == [
        "Unknown settings section: bogus",
        "Unknown setting: password_policy.nope",
    ]


def test_deep_merge_keeps_untouched_fields() -> None:
    merged = policy.deep_merge(policy.default_settings(), {"password_policy": {"min_length": 12}})
    assert merged["password_policy"]["min_length"] == 12
    assert merged["password_policy"]["require_uppercase"] is True


def test_ip_matching_supports_cidr() -> None:
    entries = [{"ip": "10.0.0.0/24"}, {"ip": "192.168.1.7"}]
    assert policy.ip_matches("10.0.0.42", entries)
    assert policy.ip_matches("192.168.1.7", entries)
    assert not policy.ip_matches("10.0.1.1", entries)
    assert not policy.ip_matches("not-an-ip", entries)


def test_disabled_whitelist_allows_everything() -> None:
    assert policy.is_ip_whitelisted({"enabled": False, "allowed_ips": []}, "8.8.8.8")
    assert not policy.is_ip_whitelisted({"enabled": True, "allowed_ips": []}, "8.8.8.8")


@pytest.mark.parametrize("value,ok", [("10.0.0.1", True), ("10.0.0.0/8", True), ("::1", True), ("999.1.1.1", False), ("", False), (None, False)])
def test_is_valid_ip_entry(value, ok: bool) -> None:
    assert policy.is_valid_ip_entry(value) is ok


def test_lockout_counts_recent_failures() -> None:
    state = policy.evaluate_lockout(LOCKOUT, failed_attempts=3, last_failed_at=NOW - timedelta(minutes=5), locked_until=None, now=NOW)
    assert state["locked"] is False
    assert state["remaining_attempts"] == 2


def test_lockout_resets_after_window() -> None:
    state = policy.evaluate_lockout(LOCKOUT, failed_attempts=4, last_failed_at=NOW - timedelta(minutes=61), locked_until=None, now=NOW)
    assert state["failed_attempts"] == 0
    assert state["remaining_attempts"] == 5


def test_active_lock_is_reported() -> None:
    until = NOW + timedelta(minutes=10)
    state = policy.evaluate_lockout(LOCKOUT, failed_attempts=5, last_failed_at=NOW, locked_until=until, now=NOW)
    assert state == {"locked": True, "locked_until": until, "failed_attempts": 5, "remaining_attempts": 0}


def test_expired_lock_clears_the_counter() -> None:
    state = policy.evaluate_lockout(
        LOCKOUT,
        failed_attempts=5,
        last_failed_at=NOW - timedelta(minutes=31),
        locked_until=NOW - timedelta(minutes=1),
        now=NOW,
    )
    assert state["locked"] is False
    assert state["failed_attempts"] == 0


def test_disabled_lockout_never_locks() -> None:
    state = policy.evaluate_lockout({**LOCKOUT, "enabled": False}, failed_attempts=50, last_failed_at=NOW, locked_until=None, now=NOW)
    assert state["locked"] is False
