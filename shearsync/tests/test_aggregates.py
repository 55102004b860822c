"""Test aggregate recomputation from persisted history."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from shearsync.models.account import Account
from shearsync.models.client import Client
from shearsync.sync.aggregates import apply_aggregates, recompute_client_aggregates
from shearsync.sync.sync_engine import run_pull


def test_apply_aggregates_single_day_has_no_second_appt():
    client = Client(client_id="c1")
    apply_aggregates(client, [
        (date(2025, 1, 5), Decimal("5"), None),
        (date(2025, 1, 5), Decimal("3"), "Instagram"),
    ])
    assert client.first_appt == date(2025, 1, 5)
    assert client.second_appt is None
    assert client.last_appt == date(2025, 1, 5)
    assert client.total_appointments == 2
    assert client.total_tips_all_time == Decimal("8")
    assert client.first_source == "Instagram"


def test_apply_aggregates_two_distinct_days():
    client = Client(client_id="c2")
    apply_aggregates(client, [
        (date(2025, 3, 1), None, None),
        (date(2025, 1, 5), None, None),
        (date(2025, 1, 5), None, None),
    ])
    assert client.first_appt == date(2025, 1, 5)
    assert client.second_appt == date(2025, 3, 1)
    assert client.last_appt == date(2025, 3, 1)


def test_apply_aggregates_caps_tips():
    client = Client(client_id="c3")
    apply_aggregates(client, [(date(2025, 1, d), Decimal("300"), None) for d in range(1, 5)])
    assert client.total_tips_all_time == Decimal("999.99")


def test_apply_aggregates_empty_history():
    client = Client(client_id="c4", first_source="Google")
    apply_aggregates(client, [])
    assert client.first_appt is None
    assert client.total_appointments == 0
    assert client.first_source == "Google"


@pytest.mark.asyncio
async def test_out_of_order_backfill(db: AsyncSession, account: Account, make_appt, fake_adapter_cls):
    recent = [
        make_appt("r1", "2025-03-10", email="o@x.com", tip=2),
        make_appt("r2", "2025-04-10", email="o@x.com", tip=2),
    ]
    older = [make_appt("h1", "2024-06-01", email="o@x.com", tip=3, referral_source="Google")]
    adapter = fake_adapter_cls(recent + older)

    await run_pull(db, account, adapter, date(2025, 1, 1), date(2025, 12, 31))
    await run_pull(db, account, adapter, date(2024, 1, 1), date(2024, 12, 31))

    client = (await db.execute(Client.__table__.select())).first()
    assert client.first_appt == date(2024, 6, 1)
    assert client.second_appt == date(2025, 3, 10)
    assert client.last_appt == date(2025, 4, 10)
    assert client.total_appointments == 3
    assert Decimal(str(client.total_tips_all_time)) == Decimal("7")
    assert client.first_source == "Google"


@pytest.mark.asyncio
async def test_recompute_unknown_clients_is_noop(db: AsyncSession, account: Account):
    assert await recompute_client_aggregates(db, account.id, ["missing"]) == 0
