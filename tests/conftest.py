"""
Shared test fixtures for the Staffclock test suite.

Each test gets its own in-memory aiosqlite database (StaticPool, so every
session shares the one connection), a fake geocoder and a dispatcher bound
to the test session factory.
"""

import os
import sys
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["TIMEZONE_OFFSET"] = "+05:30"
os.environ["REQUIRE_CLOCK_IN_APPROVAL"] = "true"
os.environ["SUBMISSION_RATE_LIMIT"] = "10000/minute"

from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from staffclock.api.v1.deps import get_db, get_dispatcher, get_geocoder
from staffclock.core.security import ROLE_ADMIN, create_access_token
from staffclock.db.base import Base
from staffclock.main import app
from staffclock.models.assignment import DailyLocationAssignment
from staffclock.models.attendance import AttendanceRecord
from staffclock.models.employee import Employee
from staffclock.services.dispatcher import SideEffectDispatcher
from staffclock.services.geocoding import GeocodingError, ReverseGeocodeResult
from staffclock.services.location import LocationValidator

# 09:05 local (+05:30) on 2026-03-02
PINNED_NOW = datetime(2026, 3, 2, 3, 35, tzinfo=timezone.utc)
PINNED_DAY = "2026-03-02"

ADMIN_ID = "admin-1"


class FakeGeocoder:
    """In-process stand-in for the Nominatim client."""

    def __init__(self) -> None:
        self.reverse_result: ReverseGeocodeResult | None = ReverseGeocodeResult(
            address="12, 100 Feet Road, Indiranagar, Bengaluru, Karnataka, 560038, India",
            city="Bengaluru",
            state="Karnataka",
        )
        self.forward_result = None
        self.fail = False
        self.reverse_calls: list[tuple[float, float]] = []
        self.forward_calls: list[str] = []

    async def reverse(self, latitude: float, longitude: float):
        self.reverse_calls.append((latitude, longitude))
        if self.fail:
            raise GeocodingError("geocoder unavailable")
        return self.reverse_result

    async def forward(self, text: str):
        self.forward_calls.append(text)
        if self.fail:
            raise GeocodingError("geocoder unavailable")
        return self.forward_result


# ── Database ────────────────────────────────────────────────────────
@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


# ── Collaborators ───────────────────────────────────────────────────
@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def validator(geocoder) -> LocationValidator:
    return LocationValidator(geocoder)


@pytest.fixture
def dispatcher(session_factory) -> SideEffectDispatcher:
    return SideEffectDispatcher(session_factory)


# ── HTTP ────────────────────────────────────────────────────────────
def auth_headers(subject: str, role: str = "employee") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject, role=role)}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return auth_headers(ADMIN_ID, role=ROLE_ADMIN)


@pytest.fixture
async def anon_client(session_factory, geocoder, dispatcher) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient wired to the app, without credentials."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_geocoder] = lambda: geocoder
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(anon_client: AsyncClient, admin_headers) -> AsyncClient:
    """Client that authenticates as an admin unless a request overrides the header."""
    anon_client.headers.update(admin_headers)
    return anon_client


# ── Data helpers ────────────────────────────────────────────────────
@pytest.fixture
def make_employee(db_session: AsyncSession):
    async def _make(code: str = "FE-001", name: str = "Asha Rao", **kwargs) -> Employee:
        employee = Employee(employee_code=code, name=name, **kwargs)
        db_session.add(employee)
        await db_session.commit()
        await db_session.refresh(employee)
        return employee

    return _make


@pytest.fixture
def make_assignment(db_session: AsyncSession):
    async def _make(employee: Employee, day: str = PINNED_DAY, **kwargs) -> DailyLocationAssignment:
        values = {"start_time": "09:00", "end_time": "18:00"}
        values.update(kwargs)
        assignment = DailyLocationAssignment(employee_id=employee.id, date=day, **values)
        db_session.add(assignment)
        await db_session.commit()
        await db_session.refresh(assignment)
        return assignment

    return _make


@pytest.fixture
def run(session_factory):
    """Run one service call in its own session, the way a request would."""

    async def _run(fn, *args, **kwargs):
        async with session_factory() as session:
            return await fn(session, *args, **kwargs)

    return _run


@pytest.fixture
def fetch_record(session_factory):
    """Read the current committed record with a fresh session."""

    async def _fetch(employee: Employee, day: str = PINNED_DAY) -> AttendanceRecord | None:
        async with session_factory() as session:
            result = await session.execute(
                select(AttendanceRecord).where(
                    AttendanceRecord.employee_id == employee.id,
                    AttendanceRecord.date == day,
                )
            )
            return result.scalar_one_or_none()

    return _fetch
