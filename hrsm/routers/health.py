from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pymongo.errors import PyMongoError

from hrsm.config import APP_VERSION, SERVICE_NAME
from hrsm.db import get_db
from hrsm.middleware.structured_logging_middleware import get_ingestion_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(db=Depends(get_db)) -> dict:
    """Unauthenticated health endpoint: database ping plus per-tenant request counters."""
    database = "ok"
    try:
        await db.command("ping")
    except PyMongoError as exc:
        logger.error("health check database ping failed: %s", exc)
        database = "unavailable"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "service": SERVICE_NAME,
        "version": APP_VERSION,
        "database": database,
        "ingestion": get_ingestion_stats(),
    }
