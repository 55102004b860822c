"""Test the pull orchestrator and date-range helpers."""

from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from shearsync.errors import InvalidPullOptionsError
from shearsync.models.account import Account
from shearsync.models.appointment import Appointment
from shearsync.models.client import Client
from shearsync.sync.sync_engine import (
    PullOptions,
    first_monday_of_month,
    is_transient_error,
    pull_options_to_date_range,
    run_account_syncs,
    run_pull,
)


def test_pull_options_year_and_quarter():
    assert pull_options_to_date_range(PullOptions(granularity="year", year=2024)) == (
        date(2024, 1, 1),
        date(2024, 12, 31),
    )
    assert pull_options_to_date_range(PullOptions(granularity="quarter", year=2024, quarter="Q2")) == (
        date(2024, 4, 1),
        date(2024, 6, 30),
    )


def test_pull_options_month_handles_leap_year():
    assert pull_options_to_date_range(PullOptions(granularity="month", year=2024, month="February")) == (
        date(2024, 2, 1),
        date(2024, 2, 29),
    )


def test_pull_options_week_starts_first_monday():
    # September 2025 starts on a Monday, June 2025 on a Sunday
    assert first_monday_of_month(2025, 9) == date(2025, 9, 1)
    assert first_monday_of_month(2025, 6) == date(2025, 6, 2)
    start, end = pull_options_to_date_range(
        PullOptions(granularity="week", year=2025, month="June", week_number=2)
    )
    assert start == date(2025, 6, 9)
    assert end == date(2025, 6, 15)


def test_pull_options_day_and_errors():
    assert pull_options_to_date_range(
        PullOptions(granularity="day", year=2025, month="March", day=3)
    ) == (date(2025, 3, 3), date(2025, 3, 3))

    with pytest.raises(InvalidPullOptionsError):
        pull_options_to_date_range(PullOptions(granularity="month", year=2025, month="Smarch"))
    with pytest.raises(InvalidPullOptionsError):
        pull_options_to_date_range(PullOptions(granularity="week", year=2025, month="June"))
    with pytest.raises(InvalidPullOptionsError):
        pull_options_to_date_range(PullOptions(granularity="day", year=2025, month="February", day=30))


def test_is_transient_error():
    request = httpx.Request("GET", "https://example.com")
    server_error = httpx.HTTPStatusError(
        "boom", request=request, response=httpx.Response(503, request=request)
    )
    not_found = httpx.HTTPStatusError(
        "missing", request=request, response=httpx.Response(404, request=request)
    )
    assert is_transient_error(server_error)
    assert not is_transient_error(not_found)
    assert is_transient_error(httpx.ReadTimeout("slow", request=request))
    assert is_transient_error(asyncio.TimeoutError())
    assert is_transient_error(OperationalError("UPDATE", {}, Exception("deadlock detected (40P01)")))
    assert not is_transient_error(OperationalError("UPDATE", {}, Exception("syntax error")))
    assert not is_transient_error(ValueError("bad date"))


@pytest.mark.asyncio
async def test_run_pull_reports_counts(db: AsyncSession, account: Account, make_appt, fake_adapter_cls):
    adapter = fake_adapter_cls([
        make_appt("p1", "2025-01-05", email="a@x.com", price=40),
        make_appt("p2", "2025-01-12", email="a@x.com", price=40),
        make_appt("p3", "2025-01-15", phone="416 555 0000", price=30),
        make_appt("p4", "2025-01-16", first_name="Nobody", price=30),
    ])

    summary = await run_pull(db, account, adapter, date(2025, 1, 1), date(2025, 1, 31))

    assert summary.fetched == 4
    assert summary.resolved == 3
    assert summary.new_clients == 2
    assert summary.appointments_upserted == 3
    assert summary.skipped == 1
    assert summary.success

    again = await run_pull(db, account, adapter, date(2025, 1, 1), date(2025, 1, 31))
    assert again.new_clients == 0
    assert again.appointments_upserted == 3
    clients = (await db.execute(select(func.count()).select_from(Client))).scalar_one()
    assert clients == 2


@pytest.mark.asyncio
async def test_run_pull_dry_run_writes_nothing(db: AsyncSession, account: Account, make_appt, fake_adapter_cls):
    adapter = fake_adapter_cls([make_appt("d1", "2025-01-05", email="d@x.com")])

    summary = await run_pull(db, account, adapter, date(2025, 1, 1), date(2025, 1, 31), dry_run=True)

    assert summary.dry_run
    assert summary.new_clients == 1
    count = (await db.execute(select(func.count()).select_from(Appointment))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_run_pull_propagates_fetch_errors(db: AsyncSession, account: Account, fake_adapter_cls):
    adapter = fake_adapter_cls(errors=[RuntimeError("upstream down")])
    with pytest.raises(RuntimeError):
        await run_pull(db, account, adapter, date(2025, 1, 1), date(2025, 1, 31))


@pytest.mark.asyncio
async def test_run_account_syncs_isolates_failures(file_session_factory, make_appt, fake_adapter_cls):
    async with file_session_factory() as db:
        good = Account(name="Good", slug="good")
        bad = Account(name="Bad", slug="bad")
        db.add_all([good, bad])
        await db.commit()
        good_id, bad_id = good.id, bad.id

    adapters = {
        good_id: fake_adapter_cls([make_appt("g1", "2025-01-05", email="g@x.com")]),
        bad_id: fake_adapter_cls(errors=[RuntimeError("token revoked")]),
    }

    summaries = await run_account_syncs(
        file_session_factory,
        [good_id, bad_id],
        lambda account: adapters[account.id],
        date(2025, 1, 1),
        date(2025, 1, 31),
        concurrency=1,
    )

    assert summaries[good_id].success
    assert summaries[good_id].appointments_upserted == 1
    assert not summaries[bad_id].success
    assert "token revoked" in summaries[bad_id].errors[0]


@pytest.mark.asyncio
async def test_run_pull_keeps_long_text_fields_whole(
    db: AsyncSession, account: Account, make_appt, fake_adapter_cls
):
    long_email = ("very.long.mailbox." * 20) + "@example.com"
    long_last = "Montgomery-" * 25
    long_source = ("Saw the window sign while walking past the shop on a Sunday " * 4).strip()
    long_service = ("Skin fade with beard sculpt, hot towel and scalp treatment " * 5).strip()
    long_id = "sq-" + "0123456789" * 15
    adapter = fake_adapter_cls([
        make_appt(
            long_id, "2025-01-05", email=long_email, first_name="Ada", last_name=long_last,
            referral_source=long_source, service_type=long_service,
        ),
    ])

    summary = await run_pull(db, account, adapter, date(2025, 1, 1), date(2025, 1, 31))
    assert summary.appointments_upserted == 1

    client = (await db.execute(select(Client).where(Client.account_id == account.id))).scalar_one()
    appt = (await db.execute(select(Appointment).where(Appointment.account_id == account.id))).scalar_one()
    assert client.email == long_email
    assert client.last_name == long_last
    assert client.first_source == long_source
    assert appt.external_id == long_id
    assert appt.service_type == long_service
    assert appt.referral_source == long_source

    # SQLite ignores VARCHAR limits; the column types must not declare one either
    for column in (
        Client.__table__.c.email,
        Client.__table__.c.first_name,
        Client.__table__.c.last_name,
        Client.__table__.c.first_source,
        Appointment.__table__.c.external_id,
        Appointment.__table__.c.service_type,
        Appointment.__table__.c.referral_source,
    ):
        assert getattr(column.type, "length", None) is None, column.name
