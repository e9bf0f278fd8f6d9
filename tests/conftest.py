"""
tests/conftest.py
Shared fixtures: in-memory SQLite database, HTTP client bound to the app,
pre-built users, and an OTP sender that records codes instead of sending them.
"""

import os

# Settings are read at import time; configure before importing the app
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["REDIS_ENABLED"] = "false"
os.environ["OTP_DELIVERY_BACKEND"] = "console"

from typing import List, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

import shared.models.models  # noqa: F401
from config.database import Base, enable_sqlite_savepoints, get_db
from main import app
from services.auth.otp_delivery import get_otp_sender
from services.auth.service import create_user
from shared.models.models import User, UserRole
from shared.utils.security import create_access_token

PASSWORD = "Str0ng!Pass"


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


class RecordingOTPSender:
    """Keeps every code it is asked to deliver."""

    def __init__(self):
        self.sent: List[Tuple[str, str, str, str]] = []

    async def send(self, contact: str, contact_type: str, code: str, purpose: str) -> None:
        self.sent.append((contact, contact_type, code, purpose))

    @property
    def last_code(self) -> str:
        return self.sent[-1][2]


# ── Database ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(test_engine)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """On-disk database with a connection per session, for concurrent writers."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrent.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _on_begin(conn):
        # Take the write lock up front; other writers wait on the busy timeout
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    """A short-lived session; close it before the next request runs."""
    async with session_factory() as session:
        yield session


# ── HTTP client ───────────────────────────────────────────────

@pytest.fixture
def otp_sender() -> RecordingOTPSender:
    return RecordingOTPSender()


@pytest_asyncio.fixture
async def client(session_factory, otp_sender):
    async def _override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_otp_sender] = lambda: otp_sender

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Users ─────────────────────────────────────────────────────

async def make_user(
    session_factory,
    *,
    email: str,
    mobile: str,
    name: str = "Test User",
    password: str = PASSWORD,
    role: UserRole = UserRole.USER,
) -> User:
    async with session_factory() as session:
        new_user = await create_user(
            session,
            name=name,
            email=email,
            mobile=mobile,
            password=password,
            gender="female",
            role=role,
        )
        await session.commit()
    return new_user


@pytest_asyncio.fixture
async def user(session_factory) -> User:
    return await make_user(session_factory, email="traveller@example.com", mobile="9876543210")


@pytest_asyncio.fixture
async def other_user(session_factory) -> User:
    return await make_user(
        session_factory, email="other@example.com", mobile="9123456780", name="Other User"
    )


@pytest_asyncio.fixture
async def admin_user(session_factory) -> User:
    return await make_user(
        session_factory,
        email="admin@example.com",
        mobile="9000000001",
        name="Admin",
        role=UserRole.ADMIN,
    )
