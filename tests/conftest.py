"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavedesk.common.constants import (
    BLOCK_EMPLOYEE_ID,
    EndSegment,
    LeaveStatus,
    StartSegment,
    UserRole,
)
from leavedesk.config import settings
from leavedesk.database import Base, get_db
from leavedesk.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import leavedesk.common.audit  # noqa: F401
import leavedesk.core_hr.models  # noqa: F401
import leavedesk.leave.models  # noqa: F401

from leavedesk.core_hr.models import Department, Employee
from leavedesk.leave.models import LeaveBalance, LeaveRequest

# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
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
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leavedesk.common.rate_limit import limiter

    limiter.reset()
    yield


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

def _make_department(*, name: str = "Engineering") -> dict:
    return dict(
        name=name,
        is_active=True,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


def _make_employee(
    *,
    name: str = "Test User",
    email: Optional[str] = None,
    department_id: Optional[int] = None,
    designation: Optional[str] = "Executive",
    is_active: bool = True,
) -> dict:
    return dict(
        name=name,
        email=email,
        department_id=department_id,
        designation=designation,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def seed_department(db: AsyncSession, **kwargs) -> Department:
    dept = Department(**_make_department(**kwargs))
    db.add(dept)
    await db.flush()
    return dept


async def seed_employee(db: AsyncSession, **kwargs) -> Employee:
    emp = Employee(**_make_employee(**kwargs))
    db.add(emp)
    await db.flush()
    return emp


async def seed_leave(
    db: AsyncSession,
    employee_id: int,
    start: date,
    end: Optional[date] = None,
    *,
    status: LeaveStatus = LeaveStatus.approved,
    days: Optional[Decimal] = None,
    is_paid: bool = True,
    is_uninformed: bool = False,
    department_id: Optional[int] = None,
    **extra,
) -> LeaveRequest:
    """Insert a leave row directly, bypassing the lifecycle rules."""
    end = end or start
    leave = LeaveRequest(
        employee_id=employee_id,
        department_id=department_id,
        status=status,
        start_date=start,
        end_date=end,
        start_segment=StartSegment.full_day,
        end_segment=EndSegment.full_day,
        days_requested=days if days is not None else Decimal((end - start).days + 1),
        is_paid=is_paid,
        is_uninformed=is_uninformed,
        **extra,
    )
    db.add(leave)
    await db.flush()
    return leave


async def seed_block(
    db: AsyncSession,
    day: date,
    reason: str = "HOLIDAY",
    department_id: Optional[int] = None,
) -> LeaveRequest:
    return await seed_leave(
        db, BLOCK_EMPLOYEE_ID, day,
        days=Decimal("0"), is_paid=False, reason=reason, department_id=department_id,
    )


async def seed_balance(
    db: AsyncSession,
    employee_id: int,
    year: int,
    month: int,
    *,
    paid_quota: int = 2,
    paid_used: Decimal = Decimal("0"),
    uninformed_leaves: Decimal = Decimal("0"),
    next_month_deduction: Decimal = Decimal("0"),
) -> LeaveBalance:
    bal = LeaveBalance(
        employee_id=employee_id,
        year=year,
        month=month,
        paid_quota=paid_quota,
        paid_used=paid_used,
        uninformed_leaves=uninformed_leaves,
        next_month_deduction=next_month_deduction,
    )
    db.add(bal)
    await db.flush()
    return bal


@pytest.fixture
async def test_department(db) -> Department:
    return await seed_department(db)


@pytest.fixture
async def test_employee(db, test_department) -> Employee:
    """Insert an active employee in ``test_department``."""
    return await seed_employee(
        db, email="test.user@leavedesk.local", department_id=test_department.id,
    )


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: int,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=8)
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def bearer(employee_id: int, role: UserRole = UserRole.employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id, role)}"}


@pytest.fixture
async def auth_headers(test_employee) -> dict[str, str]:
    """Bearer headers for ``test_employee``."""
    return bearer(test_employee.id)
