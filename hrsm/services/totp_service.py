"""TOTP two-factor authentication with single-use backup codes.

Backup codes are shown once and stored as sha256 digests; the number issued
comes from the security settings.
"""
from __future__ import annotations

import hashlib
import secrets
from typing import Any, Dict, List, Tuple

import pyotp
from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm.config import APP_NAME
from hrsm.utils import new_id, now_utc


def _generate_backup_codes(count: int) -> List[str]:
    return [secrets.token_hex(4).upper() for _ in range(count)]


def _hash_code(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()


async def enable_2fa(db: AsyncIOMotorDatabase, user_id: str, tenant_id: str, *, backup_codes_count: int) -> Dict[str, Any]:
    """Generate TOTP secret + backup codes. Does NOT activate yet (needs verify)."""
    secret = pyotp.random_base32()
    backup_codes = _generate_backup_codes(backup_codes_count)
    now = now_utc()

    await db.user_2fa.update_one(
        {"user_id": user_id},
        {
            "$set": {
                "tenant_id": tenant_id,
                "secret": secret,
                "enabled": False,
                "backup_codes": [_hash_code(c) for c in backup_codes],
                "updated_at": now,
            },
            "$setOnInsert": {"_id": new_id(), "user_id": user_id, "created_at": now},
        },
        upsert=True,
    )

    provisioning_uri = pyotp.TOTP(secret).provisioning_uri(name=user_id, issuer_name=APP_NAME)
    return {
        "secret": secret,
        "provisioning_uri": provisioning_uri,
        "backup_codes": backup_codes,  # Plain text - show once
    }


async def verify_and_activate_2fa(db: AsyncIOMotorDatabase, user_id: str, otp_code: str) -> bool:
    """Verify OTP and activate 2FA. Returns True if activated."""
    doc = await db.user_2fa.find_one({"user_id": user_id})
    if not doc or not doc.get("secret"):
        return False

    if not pyotp.TOTP(doc["secret"]).verify(otp_code, valid_window=1):
        return False

    await db.user_2fa.update_one(
        {"user_id": user_id},
        {"$set": {"enabled": True, "activated_at": now_utc(), "updated_at": now_utc()}},
    )
    return True


async def disable_2fa(db: AsyncIOMotorDatabase, user_id: str, otp_code: str) -> bool:
    """Disable 2FA after verifying OTP."""
    doc = await db.user_2fa.find_one({"user_id": user_id})
    if not doc or not doc.get("enabled"):
        return False

    if not pyotp.TOTP(doc["secret"]).verify(otp_code, valid_window=1):
        return False

    await db.user_2fa.update_one(
        {"user_id": user_id},
        {"$set": {"enabled": False, "secret": None, "backup_codes": [], "updated_at": now_utc()}},
    )
    return True


async def is_2fa_enabled(db: AsyncIOMotorDatabase, user_id: str) -> bool:
    doc = await db.user_2fa.find_one({"user_id": user_id})
    return bool(doc and doc.get("enabled"))


async def backup_codes_remaining(db: AsyncIOMotorDatabase, user_id: str) -> int:
    doc = await db.user_2fa.find_one({"user_id": user_id})
    return len((doc or {}).get("backup_codes") or [])


async def validate_otp_or_backup_code(db: AsyncIOMotorDatabase, user_id: str, code: str) -> Tuple[bool, str]:
    """Validate OTP or backup code during login.

    Returns (success, method) where method is 'totp', 'backup_code' or 'none'.
    """
    doc = await db.user_2fa.find_one({"user_id": user_id})
    if not doc or not doc.get("enabled") or not doc.get("secret") or not code:
        return False, "none"

    if pyotp.TOTP(doc["secret"]).verify(code, valid_window=1):
        return True, "totp"

    # Single use: the $pull only lands if the digest is still present.
    hashed = _hash_code(code.upper().strip())
    result = await db.user_2fa.update_one(
        {"user_id": user_id, "backup_codes": hashed},
        {"$pull": {"backup_codes": hashed}, "$set": {"updated_at": now_utc()}},
    )
    if result.modified_count == 1:
        return True, "backup_code"

    return False, "none"
