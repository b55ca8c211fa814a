from __future__ import annotations

from datetime import datetime, timedelta, timezone

from hrsm.domain.audit_hashing import build_changes, canonical_payload, compute_entry_hash, hash_timestamp, normalize_value, verify_entry_hash


def _entry(**overrides):
    entry = {
        "action": "user_updated",
        "resource": "users",
        "resource_id": "u1",
        "user_id": "admin1",
        "changes": {"before": {"role": "employee"}, "after": {"role": "hr"}, "fields": ["role"]},
        "created_at": datetime(2024, 5, 1, 10, 30, 15, 123456, tzinfo=timezone.utc),
    }
    entry.update(overrides)
    return entry


def test_hash_is_stable_across_key_order() -> None:
    a = _entry()
    b = {k: a[k] for k in reversed(list(a))}
    b["changes"] = {"fields": ["role"], "after": {"role": "hr"}, "before": {"role": "employee"}}
    assert compute_entry_hash(a) == compute_entry_hash(b)


def test_hash_ignores_sub_millisecond_precision_and_timezone_form() -> None:
    a = _entry()
    naive = _entry(created_at=datetime(2024, 5, 1, 10, 30, 15, 123000))
    shifted = _entry(created_at=datetime(2024, 5, 1, 12, 30, 15, 123999, tzinfo=timezone(timedelta(hours=2))))
    assert compute_entry_hash(a) == compute_entry_hash(naive) == compute_entry_hash(shifted)


def test_hash_changes_when_content_changes() -> None:
    base = compute_entry_hash(_entry())
    assert compute_entry_hash(_entry(action="user_deleted")) != base
    assert compute_entry_hash(_entry(user_id="someone-else")) != base
    assert compute_entry_hash(_entry(changes={"after": {"role": "admin"}})) != base


def test_metadata_fields_are_not_part_of_the_hash() -> None:
    assert compute_entry_hash(_entry(severity="critical", ip_address="10.0.0.1")) == compute_entry_hash(_entry())


def test_verify_entry_hash_reports_mismatch() -> None:
    entry = _entry()
    entry["hash"] = compute_entry_hash(entry)
    assert verify_entry_hash(entry)[0] is True

    entry["resource_id"] = "tampered"
    valid, expected, actual = verify_entry_hash(entry)
    assert valid is False
    assert expected != actual


def test_canonical_payload_uses_millisecond_utc_timestamp() -> None:
    payload = canonical_payload(_entry())
    assert '"timestamp":"2024-05-01T10:30:15.123+00:00"' in payload
    assert hash_timestamp(datetime(2024, 1, 1, tzinfo=timezone.utc)) == "2024-01-01T00:00:00.000+00:00"


def test_build_changes_lists_differing_fields() -> None:
    changes = build_changes({"a": 1, "b": 2}, {"a": 1, "b": 3, "c": 4})
    assert changes["fields"] == ["b", "c"]
    assert changes["before"] == {"a": 1, "b": 2}


def test_normalize_value_truncates_long_strings() -> None:
    value = normalize_value("x" * 5000)
    assert len(value) == 2000
    assert value.endswith("…")
