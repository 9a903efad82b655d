"""
conftest.py: shared fixtures for all tests.

Strategy:
- The remote authority runs on an in-memory SQLite database (aiosqlite,
  StaticPool) created fresh for every test function; the app's get_db
  dependency is overridden to use it.
- Execution contexts share one MemoryOrigin (the "browser origin") and one
  BroadcastHub, so several engines in a single test behave like several tabs.
- "Today" is pinned to TODAY for every engine built from these fixtures.
"""

from __future__ import annotations

from datetime import date

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from attendsync.core.security import create_access_token
from attendsync.db.models import Base
from attendsync.db.session import get_db
from attendsync.main import app
from attendsync.storage.memory import MemoryOrigin
from attendsync.sync.broadcaster import BroadcastHub
from attendsync.sync.remote_client import RemoteSyncClient

TODAY = date(2026, 3, 2)  # a Monday

# ---------------------------------------------------------------------------
# Authority database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory SQLite with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncSession:
    """Provides a raw DB session for direct DB queries in tests."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def authority(session_factory):
    """The FastAPI app bound to the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.pop(get_db, None)


# ---------------------------------------------------------------------------
# HTTP clients
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(authority) -> AsyncClient:
    """Fresh HTTPX async client per test function."""
    transport = ASGITransport(app=authority)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _headers(role: str) -> dict:
    token = create_access_token(data={"sub": f"qa_{role}", "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict:
    return _headers("admin")


@pytest.fixture
def manager_headers() -> dict:
    return _headers("manager")


@pytest.fixture
def employee_headers() -> dict:
    return _headers("employee")


@pytest.fixture
def remote_client(authority) -> RemoteSyncClient:
    """Sync client talking to the in-process authority."""
    token = create_access_token(data={"sub": "qa_sync", "role": "admin"})
    return RemoteSyncClient(
        "http://test/api/unified",
        token_provider=lambda: token,
        transport=ASGITransport(app=authority),
    )


@pytest.fixture
def offline_client() -> RemoteSyncClient:
    """Sync client whose every request fails with a connection error."""

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return RemoteSyncClient(
        "http://remote.invalid/api/unified",
        token_provider=lambda: "unused",
        transport=httpx.MockTransport(refuse),
    )


# ---------------------------------------------------------------------------
# Execution contexts
# ---------------------------------------------------------------------------


@pytest.fixture
def origin() -> MemoryOrigin:
    return MemoryOrigin()


@pytest.fixture
def hub() -> BroadcastHub:
    return BroadcastHub()


@pytest.fixture
def today() -> date:
    return TODAY
