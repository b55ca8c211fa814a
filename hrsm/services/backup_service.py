"""Database backups via mongodump, with listing and a retention sweep."""
from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm import config
from hrsm.errors import NotFoundError
from hrsm.utils import new_id, now_utc

logger = logging.getLogger(__name__)

DUMP_TIMEOUT_SECONDS = 300


def _backup_dir() -> Path:
    path = Path(config.BACKUP_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _mongo_url() -> str:
    return os.environ.get("MONGO_URL", "mongodb://localhost:27017")


async def _mark_failed(db: AsyncIOMotorDatabase, doc: dict[str, Any], error_msg: str) -> dict[str, Any]:
    logger.error("backup %s failed: %s", doc["_id"], error_msg)
    await db.system_backups.update_one(
        {"_id": doc["_id"]},
        {"$set": {"status": "failed", "error_message": error_msg, "finished_at": now_utc()}},
    )
    return {**doc, "status": "failed", "error_message": error_msg}


async def run_full_backup(db: AsyncIOMotorDatabase, *, backup_type: str = "manual", created_by: Optional[str] = None) -> dict[str, Any]:
    """Run a full MongoDB backup using mongodump."""
    backup_dir = _backup_dir()
    backup_id = new_id()
    filename = f"backup_{backup_id}.gz"
    filepath = backup_dir / filename

    doc = {
        "_id": backup_id,
        "type": backup_type,
        "filename": filename,
        "size_bytes": 0,
        "status": "pending",
        "error_message": None,
        "created_by": created_by,
        "created_at": now_utc(),
        "finished_at": None,
    }
    await db.system_backups.insert_one(doc)

    cmd = [
        config.MONGODUMP_BIN,
        f"--uri={_mongo_url()}",
        f"--db={db.name}",
        f"--archive={filepath}",
        "--gzip",
    ]
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return await _mark_failed(db, doc, f"could not start {config.MONGODUMP_BIN}: {exc}"[:500])

    try:
        _, stderr = await asyncio.wait_for(process.communicate(), timeout=DUMP_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        process.kill()
        return await _mark_failed(db, doc, f"Backup timed out after {DUMP_TIMEOUT_SECONDS}s")

    if process.returncode != 0:
        return await _mark_failed(db, doc, stderr.decode("utf-8", errors="replace")[:500])

    size_bytes = filepath.stat().st_size if filepath.exists() else 0
    finished = now_utc()
    await db.system_backups.update_one(
        {"_id": backup_id},
        {"$set": {"status": "completed", "size_bytes": size_bytes, "finished_at": finished}},
    )
    logger.info("backup %s completed size=%s", backup_id, size_bytes)
    return {**doc, "status": "completed", "size_bytes": size_bytes, "finished_at": finished}


async def list_backups(db: AsyncIOMotorDatabase, skip: int = 0, limit: int = 50) -> list[dict[str, Any]]:
    """List all backups, newest first."""
    cursor = db.system_backups.find().sort("created_at", -1).skip(skip).limit(limit)
    return await cursor.to_list(length=limit)


def _remove_file(filename: str) -> None:
    if not filename:
        return
    filepath = Path(config.BACKUP_DIR) / filename
    if filepath.exists():
        filepath.unlink()


async def delete_backup(db: AsyncIOMotorDatabase, backup_id: str) -> None:
    """Delete a backup file and its DB record."""
    doc = await db.system_backups.find_one({"_id": backup_id})
    if not doc:
        raise NotFoundError("Backup not found")
    _remove_file(doc.get("filename", ""))
    await db.system_backups.delete_one({"_id": backup_id})


async def cleanup_old_backups(db: AsyncIOMotorDatabase, *, now: Optional[datetime] = None) -> int:
    """Delete backups older than the retention window. Returns count deleted."""
    cutoff = (now or now_utc()) - timedelta(days=config.BACKUP_RETENTION_DAYS)
    old_backups = await db.system_backups.find({"created_at": {"$lt": cutoff}}).to_list(length=1000)

    for backup in old_backups:
        _remove_file(backup.get("filename", ""))
        await db.system_backups.delete_one({"_id": backup["_id"]})

    if old_backups:
        logger.info("removed %s backups older than %s days", len(old_backups), config.BACKUP_RETENTION_DAYS)
    return len(old_backups)
