"""Shared test configuration and fixtures.

Key principles:
- All HTTP calls go through the local ASGI app (httpx ASGITransport).
- Single Motor client per test session; a fresh database per test.
- With MONGO_URL set the tests run against a real server, otherwise against
  mongomock-motor.
- AnyIO is the single async runner via @pytest.mark.anyio.
"""
from __future__ import annotations

import os
import uuid
from typing import Any, AsyncGenerator, Callable, Dict, Optional

import httpx
import pytest
from httpx import ASGITransport

os.environ.setdefault("JWT_SECRET", "test_jwt_secret")

from hrsm import db as db_module  # noqa: E402
from hrsm.auth import create_access_token, hash_password  # noqa: E402
from hrsm.db import get_db  # noqa: E402
from hrsm.indexes import ensure_indexes  # noqa: E402
from hrsm.middleware.structured_logging_middleware import reset_ingestion_stats  # noqa: E402
from hrsm.utils import new_id, now_utc  # noqa: E402
from server import app  # noqa: E402

MONGO_URL = os.environ.get("MONGO_URL")

TENANT_ID = "tenant_test"
DEFAULT_PASSWORD = "Str0ng!Pass"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio event loop."""

    return "asyncio"


@pytest.fixture(scope="session")
async def motor_client() -> AsyncGenerator[Any, None]:
    """Session-scoped client for all tests."""

    if MONGO_URL:
        from motor.motor_asyncio import AsyncIOMotorClient

        client = AsyncIOMotorClient(MONGO_URL, tz_aware=True)
    else:
        from mongomock_motor import AsyncMongoMockClient

        client = AsyncMongoMockClient(tz_aware=True)
    try:
        yield client
    finally:
        client.close()


@pytest.fixture(scope="function")
async def test_db(motor_client) -> AsyncGenerator[Any, None]:
    """Function-scoped isolated database for each test, dropped on teardown."""

    db_name = f"hrsm_test_{uuid.uuid4().hex}"
    db = motor_client[db_name]
    await ensure_indexes(db)
    try:
        yield db
    finally:
        await motor_client.drop_database(db_name)


@pytest.fixture(scope="function")
async def app_with_overrides(test_db) -> AsyncGenerator[Any, None]:
    """FastAPI app whose get_db dependency (and middleware handle) point to test_db."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    db_module.use_database(test_db)
    app.state.security_store = None
    reset_ingestion_stats()
    try:
        yield app
    finally:
        app.dependency_overrides.clear()
        db_module.use_database(None)
        app.state.security_store = None


@pytest.fixture(scope="function")
async def async_client(app_with_overrides) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = ASGITransport(app=app_with_overrides)
    async with httpx.AsyncClient(transport=transport, base_url="http://test", timeout=30.0) as client:
        yield client


@pytest.fixture
def make_user(test_db) -> Callable[..., Any]:
    """Insert a user straight into the database and return the stored document."""

    async def _make(
        role: str = "employee",
        *,
        email: Optional[str] = None,
        password: str = DEFAULT_PASSWORD,
        tenant_id: str = TENANT_ID,
        hire_date: Any = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        user_id = new_id()
        doc = {
            "_id": user_id,
            "tenant_id": tenant_id,
            "email": email or f"{role}-{user_id[:8]}@example.test",
            "name": f"{role.title()} User",
            "role": role,
            "permissions": [],
            "password_hash": hash_password(password),
            "hire_date": hire_date,
            "is_active": True,
            "created_at": now_utc(),
            **extra,
        }
        await test_db.users.insert_one(doc)
        return doc

    return _make


def auth_headers(user: Dict[str, Any]) -> Dict[str, str]:
    token = create_access_token(subject=user["_id"], tenant_id=user["tenant_id"], role=user["role"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin_user(make_user) -> Dict[str, Any]:
    return await make_user("admin")


@pytest.fixture
async def hr_user(make_user) -> Dict[str, Any]:
    return await make_user("hr")


@pytest.fixture
async def employee_user(make_user) -> Dict[str, Any]:
    from datetime import timedelta

    return await make_user("employee", hire_date=now_utc() - timedelta(days=365 * 3))


@pytest.fixture
def admin_headers(admin_user) -> Dict[str, str]:
    return auth_headers(admin_user)


@pytest.fixture
def hr_headers(hr_user) -> Dict[str, str]:
    return auth_headers(hr_user)


@pytest.fixture
def employee_headers(employee_user) -> Dict[str, str]:
    return auth_headers(employee_user)


def actor_for(user: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a stored user the way get_current_user hands it to services."""

    return {"id": user["_id"], "tenant_id": user["tenant_id"], "role": user["role"], "email": user["email"]}
