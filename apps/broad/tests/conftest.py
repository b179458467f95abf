"""
Shared pytest configuration for Broad tests.

Each test gets a fresh file-backed SQLite database (through aiosqlite) with
the ORM tables created from the metadata. Set TEST_DATABASE_URL to run against
PostgreSQL instead.

SAFETY: a PostgreSQL TEST_DATABASE_URL is REFUSED unless the database name
contains the substring "test". This prevents accidental drops of the
development or production database.
"""

import os

# Must be set before broad.api.routes is imported (rate limiting is disabled in test mode)
os.environ.setdefault("ENV", "test")

import uuid
from typing import Dict, Optional

import httpx
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from broad.database.db import Base
from broad.services import profile_service
from broad.services.auth_service import AuthProviderError


def _resolve_test_database_url(tmp_path) -> str:
    """Build the test database URL with safety checks.

    Raises ``RuntimeError`` if a non-SQLite URL does not point to a database
    whose name contains "test".
    """
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        return f"sqlite+aiosqlite:///{tmp_path / 'broad_test.db'}"

    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if not url.startswith("sqlite") and "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test' to prevent accidental\n"
            f"  data loss in development or production databases.\n\n"
            f"  Resolved URL: {url}\n"
            f"{'=' * 70}"
        )
    return url


# ---------------------------------------------------------------------------
# Fake auth provider
# ---------------------------------------------------------------------------

VALID_OTP = "123456"


class FakeAuthClient:
    """
    In-memory stand-in for SupabaseAuthClient.

    Access tokens are opaque strings mapped to provider user dicts. Phone
    numbers without a leading ``+`` are rejected like the provider does.
    """

    def __init__(self):
        self.users_by_token: Dict[str, dict] = {}
        self.users_by_phone: Dict[str, dict] = {}
        self.sent_otps = []
        self.metadata_updates = []
        self.signed_out = []

    def add_user(self, user_id: Optional[str] = None, phone: Optional[str] = None, email=None) -> str:
        """Register an identity and return a fresh access token for it."""
        user = {"id": user_id or str(uuid.uuid4()), "phone": phone, "email": email}
        if phone:
            user = self.users_by_phone.setdefault(phone, user)
        token = f"token-{uuid.uuid4().hex}"
        self.users_by_token[token] = user
        return token

    def _session(self, token: str) -> dict:
        return {
            "access_token": token,
            "refresh_token": f"refresh-{token}",
            "expires_in": 3600,
            "expires_at": 1893456000,
        }

    async def send_otp(self, phone, create_user=True, data=None):
        if not phone.startswith("+"):
            raise AuthProviderError(
                "Invalid phone number format", code="validation_failed", status_code=422
            )
        self.sent_otps.append({"phone": phone, "create_user": create_user, "data": data})

    async def verify_otp(self, phone, token):
        if token != VALID_OTP:
            raise AuthProviderError(
                "Token has expired or is invalid", code="otp_expired", status_code=403
            )
        access_token = self.add_user(phone=phone)
        return {"user": self.users_by_token[access_token], "session": self._session(access_token)}

    async def get_user(self, access_token):
        user = self.users_by_token.get(access_token)
        if user is None:
            raise AuthProviderError("invalid JWT", code="bad_jwt", status_code=401)
        return user

    async def refresh_session(self, refresh_token):
        old_token = refresh_token.removeprefix("refresh-")
        user = self.users_by_token.get(old_token)
        if user is None:
            raise AuthProviderError("Invalid Refresh Token", code="refresh_token_not_found", status_code=400)
        new_token = f"token-{uuid.uuid4().hex}"
        self.users_by_token[new_token] = user
        return {"user": user, "session": self._session(new_token)}

    async def sign_out(self, access_token):
        self.signed_out.append(access_token)
        self.users_by_token.pop(access_token, None)

    async def update_user_metadata(self, user_id, metadata):
        self.metadata_updates.append((user_id, metadata))
        return {"id": user_id, "user_metadata": metadata}

    async def aclose(self):
        pass


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a test database engine with all tables."""
    # NullPool: every session gets its own connection, so concurrent sessions
    # (the dashboard fan-out) never share one
    engine = create_async_engine(
        _resolve_test_database_url(tmp_path),
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        from broad.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # Point the app's session factory at the test engine
    from broad.database import db

    test_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = test_session_maker

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    """The session factory the app uses during the test."""
    from broad.database import db

    return db.AsyncSessionLocal


@pytest_asyncio.fixture
async def db_session(session_factory):
    """A database session for direct service calls."""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def fake_auth():
    return FakeAuthClient()


@pytest_asyncio.fixture
async def api_client(test_engine, fake_auth):
    """HTTP client bound to the app with the fake auth provider injected."""
    from broad.api.main import app
    from broad.services.auth_service import get_auth_client

    app.dependency_overrides[get_auth_client] = lambda: fake_auth
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def make_user(session_factory, fake_auth):
    """
    Factory creating a profile plus a bearer token for it.

    Usage:
        profile, headers = await make_user(display_name="Ada", role="admin")
    """
    async def _make(display_name: str = "Rider", role: str = "rider", **fields):
        user_id = str(uuid.uuid4())
        token = fake_auth.add_user(user_id=user_id)
        data = {"displayName": display_name, "role": role}
        data.update(fields)
        async with session_factory() as session:
            profile = await profile_service.create_profile(session, user_id, data)
        return profile, {"Authorization": f"Bearer {token}"}

    return _make
