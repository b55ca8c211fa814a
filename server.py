from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent

# Load .env only if exists (development fallback)
env_path = ROOT_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI  # noqa: E402
from starlette.middleware.cors import CORSMiddleware  # noqa: E402

from hrsm.config import APP_NAME, APP_VERSION, SERVICE_NAME  # noqa: E402
from hrsm.db import close_mongo, connect_mongo, get_db  # noqa: E402
from hrsm.exception_handlers import register_exception_handlers  # noqa: E402
from hrsm.indexes import ensure_indexes  # noqa: E402
from hrsm.middleware.correlation_id import CorrelationIdMiddleware  # noqa: E402
from hrsm.middleware.ip_whitelist_middleware import IPWhitelistMiddleware  # noqa: E402
from hrsm.middleware.structured_logging_middleware import StructuredLoggingMiddleware  # noqa: E402
from hrsm.routers.auth import router as auth_router  # noqa: E402
from hrsm.routers.backups import router as backups_router  # noqa: E402
from hrsm.routers.health import router as health_router  # noqa: E402
from hrsm.routers.holidays import router as holidays_router  # noqa: E402
from hrsm.routers.leaves import router as leaves_router  # noqa: E402
from hrsm.routers.mixed_vacation import router as mixed_vacation_router  # noqa: E402
from hrsm.routers.notifications import router as notifications_router  # noqa: E402
from hrsm.routers.permission_audit import router as permission_audit_router  # noqa: E402
from hrsm.routers.resigned_employees import router as resigned_employees_router  # noqa: E402
from hrsm.routers.resources import routers as resource_routers  # noqa: E402
from hrsm.routers.security_audit import router as security_audit_router  # noqa: E402
from hrsm.routers.security_settings import router as security_settings_router  # noqa: E402
from hrsm.routers.surveys import router as surveys_router  # noqa: E402
from hrsm.routers.users import router as users_router  # noqa: E402
from hrsm.routers.vacation_balances import router as vacation_balances_router  # noqa: E402
from hrsm.services.security_settings_service import store_for  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(SERVICE_NAME)

app = FastAPI(title=APP_NAME, version=APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_methods=["*"],
    allow_headers=["*"],
)
# Last added runs first: correlation id, then access log, then whitelist
app.add_middleware(IPWhitelistMiddleware)
app.add_middleware(StructuredLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

# Routers (/api prefix is on each router)
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(leaves_router)
app.include_router(vacation_balances_router)
app.include_router(mixed_vacation_router)
app.include_router(resigned_employees_router)
app.include_router(holidays_router)
app.include_router(security_settings_router)
app.include_router(security_audit_router)
app.include_router(permission_audit_router)
app.include_router(notifications_router)
app.include_router(surveys_router)
app.include_router(backups_router)
for resource_router in resource_routers:
    app.include_router(resource_router)


@app.get("/health")
@app.get("/health/")
async def deployment_health() -> dict[str, Any]:
    """Simple health check for deployment platforms"""
    return {"ok": True, "service": SERVICE_NAME, "status": "healthy"}


@app.on_event("startup")
async def _startup() -> None:
    await connect_mongo()
    db = await get_db()
    await ensure_indexes(db)
    await store_for(app, db).load()
    logger.info("Startup complete")


@app.on_event("shutdown")
async def _shutdown() -> None:
    await close_mongo()
    logger.info("Shutdown complete")
