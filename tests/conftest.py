"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (auth, employees, attendance, leave, etc.).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from attendance_console.auth.otp import otp_store
from attendance_console.auth.service import create_access_token, hash_token
from attendance_console.common.constants import UserRole
from attendance_console.database import Base, get_db
from attendance_console.main import create_app

# Import ALL model modules so every table is registered on Base.metadata
import attendance_console.attendance.models  # noqa: F401
import attendance_console.auth.models  # noqa: F401
import attendance_console.backup.models  # noqa: F401
import attendance_console.common.audit  # noqa: F401
import attendance_console.corrections.models  # noqa: F401
import attendance_console.employees.models  # noqa: F401
import attendance_console.leave.models  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT/BLOB ───────────

from sqlalchemy.dialects.postgresql import INET, JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(INET, "sqlite")
def _inet_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_process_state():
    """Clear rate-limit counters and pending one-time codes between tests."""
    from attendance_console.common.rate_limit import limiter

    limiter.reset()
    otp_store.clear()
    yield
    otp_store.clear()


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    name: str = "Test User",
    email: Optional[str] = None,
    od_id: Optional[str] = None,
    designation: Optional[str] = "Associate",
    working_under_partner: Optional[str] = None,
    is_active: bool = True,
    **overrides,
) -> dict:
    data = dict(
        id=uuid.uuid4(),
        name=name,
        email=email or f"{name.lower().replace(' ', '.')}@example.com",
        od_id=od_id,
        designation=designation,
        working_under_partner=working_under_partner,
        leave_earned=0.0,
        leave_used=0.0,
        leave_remaining=0.0,
        monthly_leave_rate=2.0,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    data.update(overrides)
    return data


async def _seed_employee(db: AsyncSession, **kwargs):
    from attendance_console.employees.models import Employee

    employee = Employee(**_make_employee(**kwargs), extra_info=[])
    db.add(employee)
    await db.flush()
    return employee


@pytest.fixture
async def partner(db):
    """The partner every ``test_employee`` request is routed to."""
    return await _seed_employee(
        db, name="Priya Shah", email="priya.shah@example.com", designation="Partner"
    )


@pytest.fixture
async def test_employee(db, partner):
    """An active employee working under ``partner``."""
    return await _seed_employee(
        db,
        name="Test User",
        email="test.user@example.com",
        od_id="OD-100",
        working_under_partner=partner.name,
    )


# ── Auth helpers ────────────────────────────────────────────────────

async def _auth_headers(
    db: AsyncSession,
    role: UserRole,
    employee_id: Optional[uuid.UUID] = None,
) -> dict[str, str]:
    """Return Bearer auth headers with a valid session persisted in the DB."""
    from attendance_console.auth.models import AuthSession

    token, expires_in = create_access_token(role, employee_id)
    db.add(
        AuthSession(
            id=uuid.uuid4(),
            role=role,
            employee_id=employee_id,
            token_hash=hash_token(token),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            is_revoked=False,
            created_at=datetime.now(timezone.utc),
        )
    )
    await db.flush()
    await db.commit()
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def hr_headers(db) -> dict[str, str]:
    return await _auth_headers(db, UserRole.hr)


@pytest.fixture
async def employee_headers(db, test_employee) -> dict[str, str]:
    return await _auth_headers(db, UserRole.employee, test_employee.id)


@pytest.fixture
async def partner_headers(db, partner) -> dict[str, str]:
    return await _auth_headers(db, UserRole.employee, partner.id)


@pytest.fixture
def mock_mail():
    """Patch outbound email; the mock records every send."""
    with patch(
        "attendance_console.notifications.service.NotificationService.send_email",
        new_callable=AsyncMock,
    ) as sender:
        yield sender
