"""Structured JSON access logging.

Every request logs one line on the `structured_access` logger:
{
  request_id,
  tenant_id,
  user_id,
  path,
  method,
  status_code,
  latency_ms
}

Also keeps per-tenant ingestion counters in memory (`requests`, `errors`,
`last_seen`), reported by the health endpoint.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Dict, Tuple

import jwt
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from hrsm.utils import now_utc

logger = logging.getLogger("structured_access")

_ingestion_stats: Dict[str, Dict[str, Any]] = {}


def _token_claims(request: Request) -> Tuple[str, str]:
    """Read tenant and user from the bearer token without verifying it (logging only)."""
    auth = request.headers.get("authorization", "")
    if not auth.lower().startswith("bearer "):
        return "", ""
    try:
        data = jwt.decode(auth.split(" ", 1)[1], options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return "", ""
    return str(data.get("tenant") or ""), str(data.get("sub") or "")


def record_ingestion(tenant_id: str, status_code: int) -> None:
    stats = _ingestion_stats.setdefault(tenant_id or "anonymous", {"requests": 0, "errors": 0, "last_seen": None})
    stats["requests"] += 1
    if status_code >= 400:
        stats["errors"] += 1
    stats["last_seen"] = now_utc().isoformat()


def get_ingestion_stats() -> Dict[str, Dict[str, Any]]:
    return {tenant: dict(stats) for tenant, stats in _ingestion_stats.items()}


def reset_ingestion_stats() -> None:
    _ingestion_stats.clear()


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log structured JSON for every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())[:12]
        start = time.monotonic()
        request.state.request_id = request_id

        tenant_id, user_id = _token_claims(request)
        log_entry = {
            "request_id": request_id,
            "tenant_id": tenant_id,
            "user_id": user_id,
            "path": request.url.path,
            "method": request.method,
        }

        try:
            response = await call_next(request)
        except Exception:
            log_entry.update(status_code=500, latency_ms=round((time.monotonic() - start) * 1000, 2))
            logger.error(json.dumps(log_entry))
            record_ingestion(tenant_id, 500)
            raise

        status_code = response.status_code
        log_entry.update(status_code=status_code, latency_ms=round((time.monotonic() - start) * 1000, 2))

        if status_code >= 500:
            logger.error(json.dumps(log_entry))
        elif status_code >= 400:
            logger.warning(json.dumps(log_entry))
        else:
            logger.info(json.dumps(log_entry))

        if not request.url.path.startswith(("/api/health", "/health")):
            record_ingestion(tenant_id, status_code)

        response.headers["X-Request-Id"] = request_id
        return response
