"""
Plakita Backend — Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the whole suite.
How:   Two kinds of store:
       - mock_db_session: AsyncMock session for paths that only need to assert
         which calls were (not) made, or that use SAVEPOINTs
       - db_session: real in-memory SQLite (aiosqlite) with the mapped schema,
         for lookups, claims, integrity and dashboard queries

Fixture Hierarchy (all function-scoped):
    ├── mock_db_session
    ├── db_session ─── make_tag / make_pet / make_user (row factories)
    ├── owner / stranger / admin (AuthenticatedUser)
    ├── make_token (signed access tokens)
    └── test_client (HTTPX AsyncClient bound to db_session)
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

# Must be set before any plakita import: settings and the engine read them once
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUTH_URL"] = "http://auth.test"
os.environ["AUTH_API_KEY"] = "test-anon-key"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret-with-enough-length-32b"
os.environ["PUBLIC_BASE_URL"] = "https://plakita.test"
os.environ["RATE_LIMIT_REQUESTS"] = "1000"
os.environ["LOG_LEVEL"] = "WARNING"

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from plakita.config import settings
from plakita.database import Base, get_db_session
from plakita.models import Pet, Tag, User
from plakita.services.auth_client import AuthenticatedUser


# ══════════════════════════════════════════════════════════════════════════
# Mock Store
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    AsyncMock standing in for AsyncSession.

    begin_nested() is an async context manager on the real session, so it is
    a plain MagicMock returning an AsyncMock here.

    Usage:
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = tag
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    session.merge = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.begin_nested = MagicMock(return_value=AsyncMock())
    return session


def result_with_rowcount(rowcount: int) -> MagicMock:
    result = MagicMock()
    result.rowcount = rowcount
    return result


@pytest.fixture
def rowcount_result():
    return result_with_rowcount


# ══════════════════════════════════════════════════════════════════════════
# Real Store (in-memory SQLite)
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_session():
    """Fresh schema per test; StaticPool keeps the single in-memory connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def make_tag(db_session):
    async def _make_tag(code: str = "PLK-ABC123", **fields: Any) -> Tag:
        tag = Tag(code=code, **fields)
        db_session.add(tag)
        await db_session.commit()
        return tag
    return _make_tag


@pytest.fixture
def make_pet(db_session):
    async def _make_pet(user_id: UUID, name: str = "Luna", **fields: Any) -> Pet:
        values: Dict[str, Any] = {
            "type": "dog",
            "owner_name": "Maria Lopez",
            "owner_contact": "maria@example.com",
            "owner_phone": "+54 11 5555-1234",
            "qr_activated": True,
        }
        values.update(fields)
        pet = Pet(name=name, user_id=user_id, **values)
        db_session.add(pet)
        await db_session.commit()
        return pet
    return _make_pet


@pytest.fixture
def make_user(db_session):
    async def _make_user(user: AuthenticatedUser) -> User:
        row = User(id=user.id, email=user.email, full_name=user.full_name or user.email)
        db_session.add(row)
        await db_session.commit()
        return row
    return _make_user


# ══════════════════════════════════════════════════════════════════════════
# Actors & Tokens
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def owner() -> AuthenticatedUser:
    return AuthenticatedUser(
        id=uuid4(),
        email="maria@example.com",
        user_metadata={"full_name": "Maria Lopez", "phone": "+54 11 5555-1234"},
    )


@pytest.fixture
def stranger() -> AuthenticatedUser:
    return AuthenticatedUser(id=uuid4(), email="juan@example.com")


@pytest.fixture
def admin() -> AuthenticatedUser:
    return AuthenticatedUser(
        id=uuid4(),
        email="admin@example.com",
        app_metadata={"role": settings.admin_role},
    )


@pytest.fixture
def make_token():
    """Signs an access token the way the auth service does (HS256, audience)."""
    def _make_token(
        user: AuthenticatedUser,
        expires_in: int = 3600,
        secret: Optional[str] = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user.id),
            "email": user.email,
            "aud": settings.auth_jwt_audience,
            "role": "authenticated",
            "user_metadata": user.user_metadata,
            "app_metadata": user.app_metadata,
            "iat": now,
            "exp": now + timedelta(seconds=expires_in),
        }
        return jwt.encode(claims, secret or settings.auth_jwt_secret, algorithm="HS256")
    return _make_token


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(db_session):
    """
    HTTPX AsyncClient against the app, with every request sharing db_session.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from plakita.main import app

    async def _db_override():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db_session] = _db_override
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
