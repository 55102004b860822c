"""Async test fixtures for shearsync tests using SQLite."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shearsync.models.account import Account
from shearsync.models.base import Base
from shearsync.schemas.appointment import NormalizedAppointment


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def account(db: AsyncSession):
    acct = Account(
        id=uuid.uuid4(),
        name="Test Barbershop",
        slug="test-barbershop",
        timezone="UTC",
        booking_provider="acuity",
    )
    db.add(acct)
    await db.commit()
    await db.refresh(acct)
    return acct


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Session factory over a file database, for code that opens its own sessions."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shearsync_test.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    await eng.dispose()


def _make_appt(external_id: str, appointment_date: str | date = "2025-01-05", **fields) -> NormalizedAppointment:
    if isinstance(appointment_date, str):
        appointment_date = date.fromisoformat(appointment_date)
    for key in ("price", "tip"):
        if key in fields and not isinstance(fields[key], Decimal):
            fields[key] = Decimal(str(fields[key]))
    return NormalizedAppointment(
        external_id=external_id,
        appointment_date=appointment_date,
        **fields,
    )


@pytest.fixture
def make_appt():
    """Factory for NormalizedAppointment records."""
    return _make_appt


class FakeAdapter:
    """In-memory booking adapter; raises queued errors before returning data."""

    provider = "fake"

    def __init__(self, appointments=None, errors=None):
        self.appointments = list(appointments or [])
        self.errors = list(errors or [])
        self.calls: list[tuple[date, date]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return None

    async def fetch_appointments(self, start: date, end: date):
        self.calls.append((start, end))
        if self.errors:
            raise self.errors.pop(0)
        return [a for a in self.appointments if start <= a.appointment_date <= end]


@pytest.fixture
def fake_adapter_cls():
    return FakeAdapter
