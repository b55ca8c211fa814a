"""IP whitelist middleware.

When the security settings enable the whitelist, API requests must come
from an allowed address or CIDR range. Auth, health and the settings
endpoints themselves bypass the check so an admin cannot lock everyone out.
"""
from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from hrsm.db import get_db
from hrsm.errors import error_response
from hrsm.services.audit_ledger import AuditLedger
from hrsm.services.security_settings_service import store_for

logger = logging.getLogger("ip_whitelist")

BYPASS_PREFIXES = (
    "/api/auth/",
    "/api/health",
    "/api/security-settings",
    "/docs",
    "/openapi.json",
)


def get_client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class IPWhitelistMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path or ""
        if not path.startswith("/api/") or path.startswith(BYPASS_PREFIXES):
            return await call_next(request)

        db = await get_db()
        store = store_for(request.app, db)
        await store.load()

        client_ip = get_client_ip(request)
        if store.is_ip_whitelisted(client_ip):
            return await call_next(request)

        logger.warning("IP whitelist blocked: ip=%s path=%s", client_ip, path)
        await AuditLedger(db).append({
            "action": "ip_blocked",
            "resource": "ip_whitelist",
            "resource_id": client_ip,
            "user_id": "anonymous",
            "tenant_id": "system",
            "category": "security",
            "severity": "high",
            "status": "failure",
            "ip_address": client_ip,
            "user_agent": request.headers.get("user-agent"),
            "correlation_id": getattr(request.state, "correlation_id", None),
            "metadata": {"path": path, "method": request.method},
        })
        return JSONResponse(
            status_code=403,
            content=error_response(
                "ip_not_whitelisted",
                "Your IP address is not allowed.",
                {"client_ip": client_ip},
            ),
        )
