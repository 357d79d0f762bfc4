"""
Shared fixtures: a throwaway SQLite database per test, a mocked Redis for the
token revocation list, and helpers that create accounts through the API.
"""

from __future__ import annotations

import os

# Must be set before any teamhub_api import reads the settings.
os.environ.setdefault("TEAMHUB_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TEAMHUB_REALTIME_BROKER", "memory")
os.environ.setdefault("TEAMHUB_BCRYPT_ROUNDS", "4")
os.environ.setdefault("TEAMHUB_SECRET_KEY", "test-secret-key-with-at-least-32-bytes!")
os.environ.setdefault("TEAMHUB_WS_AUTH_TIMEOUT_SECONDS", "2")

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

import teamhub_api.models  # noqa: F401
from teamhub_api.core import database
from teamhub_api.core.chat import manager
from teamhub_api.main import app
from teamhub_api.scripts.create_super_admin import ensure_super_admin

DEFAULT_PASSWORD = "correct-horse-battery"


@dataclass
class Account:
    """An authenticated API user, as returned by register/login."""

    token: str
    refresh_token: str
    user: dict[str, Any]
    password: str = DEFAULT_PASSWORD
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> str:
        return self.user["id"]

    @property
    def tenant_id(self) -> str:
        return self.user["tenantId"]

    @property
    def email(self) -> str:
        return self.user["email"]

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def url(self, path: str) -> str:
        """Tenant-scoped API path, e.g. ``acct.url("/chat/channels")``."""
        return f"/api/v1/tenants/{self.tenant_id}{path}"


def account_from_session(data: dict, password: str = DEFAULT_PASSWORD) -> Account:
    return Account(
        token=data["accessToken"],
        refresh_token=data["refreshToken"],
        user=data["user"],
        password=password,
    )


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


async def create_channel(
    client: AsyncClient, acct: Account, name: str = "general", type: str = "PUBLIC", **extra
) -> dict:
    response = await client.post(
        acct.url("/chat/channels"),
        headers=acct.headers,
        json={"name": name, "type": type, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def post_message(client: AsyncClient, acct: Account, channel_id: str, content: str):
    return await client.post(
        acct.url(f"/chat/channels/{channel_id}/messages"),
        headers=acct.headers,
        json={"content": content},
    )


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@pytest.fixture
def session_factory(tmp_path, monkeypatch):
    """Fresh SQLite file per test, wired in as the application's session factory."""
    path = tmp_path / "teamhub.db"

    sync_engine = create_engine(f"sqlite:///{path}")
    SQLModel.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "async_session_factory", factory)
    return factory


@pytest.fixture(autouse=True)
def redis_mock():
    """Revocation list backed by a dict instead of Redis."""
    revoked: dict[str, str] = {}

    async def setex(key, ttl, value):
        revoked[key] = value

    async def exists(key):
        return 1 if key in revoked else 0

    redis = AsyncMock()
    redis.setex = AsyncMock(side_effect=setex)
    redis.exists = AsyncMock(side_effect=exists)
    redis.revoked = revoked
    with patch("teamhub_api.core.auth.get_redis", AsyncMock(return_value=redis)):
        yield redis


@pytest.fixture(autouse=True)
def reset_connection_manager():
    yield
    manager.reset()


@pytest.fixture
async def client(session_factory):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Account helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def register(client):
    async def _register(
        email: Optional[str] = None,
        tenant_name: str = "Acme",
        first_name: str = "Ada",
        last_name: str = "Lovelace",
        password: str = DEFAULT_PASSWORD,
    ) -> Account:
        response = await client.post(
            "/api/v1/auth/register",
            json={
                "email": email or unique_email("admin"),
                "password": password,
                "firstName": first_name,
                "lastName": last_name,
                "tenantName": tenant_name,
            },
        )
        assert response.status_code == 201, response.text
        return account_from_session(response.json()["data"], password)

    return _register


@pytest.fixture
def login(client):
    async def _login(email: str, password: str = DEFAULT_PASSWORD) -> Account:
        response = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return account_from_session(response.json()["data"], password)

    return _login


@pytest.fixture
def add_user(client, login):
    """Create a user in ``admin``'s tenant (through the admin API) and log in as them."""

    async def _add_user(
        admin: Account,
        role: str = "MEMBER",
        first_name: str = "Grace",
        last_name: str = "Hopper",
        email: Optional[str] = None,
    ) -> Account:
        email = email or unique_email(role.lower())
        response = await client.post(
            "/api/v1/admin/users",
            headers=admin.headers,
            json={
                "email": email,
                "password": DEFAULT_PASSWORD,
                "firstName": first_name,
                "lastName": last_name,
                "role": role,
                "tenantId": admin.tenant_id,
            },
        )
        assert response.status_code == 201, response.text
        return await login(email)

    return _add_user


@pytest.fixture
async def super_admin(session_factory, login) -> Account:
    email = unique_email("root")
    async with session_factory() as session:
        await ensure_super_admin(session, email, DEFAULT_PASSWORD)
        await session.commit()
    return await login(email)
