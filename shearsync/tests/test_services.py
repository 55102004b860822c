"""Tests for account, client and sync status services."""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from shearsync.models.account import Account
from shearsync.models.appointment import Appointment
from shearsync.models.client import Client
from shearsync.services import account_svc, client_svc, sync_status_svc


# -- accounts ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_and_lookup_account(db: AsyncSession):
    account = await account_svc.create_account(
        db, name="Fade Factory", slug="fade-factory", booking_provider="Square"
    )
    assert account.booking_provider == "square"
    assert (await account_svc.get_account_by_slug(db, "fade-factory")).id == account.id
    assert (await account_svc.get_account(db, account.id)).name == "Fade Factory"
    assert [a.slug for a in await account_svc.list_accounts(db)] == ["fade-factory"]


@pytest.mark.asyncio
async def test_create_account_rejects_unknown_provider(db: AsyncSession):
    with pytest.raises(ValueError, match="Unsupported booking provider"):
        await account_svc.create_account(db, name="X", slug="x", booking_provider="calendly")


# -- clients ----------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_clients_search_and_paging(db: AsyncSession, account: Account):
    db.add_all([
        Client(account_id=account.id, client_id="a", first_name="Marcus", last_appt=date(2025, 1, 3)),
        Client(account_id=account.id, client_id="b", first_name="Maria", last_appt=date(2025, 1, 9)),
        Client(account_id=account.id, client_id="c", first_name="Dev", email="dev@example.com",
               last_appt=date(2025, 1, 1)),
    ])
    await db.commit()

    clients, total = await client_svc.list_clients(db, account.id, search="mar")
    assert total == 2
    assert [c.client_id for c in clients] == ["b", "a"]

    page, total = await client_svc.list_clients(db, account.id, offset=1, limit=1)
    assert total == 3
    assert [c.client_id for c in page] == ["a"]


@pytest.mark.asyncio
async def test_delete_client_removes_appointments(db: AsyncSession, account: Account):
    db.add(Client(account_id=account.id, client_id="gone"))
    await db.flush()
    db.add(Appointment(account_id=account.id, external_id="1", client_id="gone",
                       appointment_date=date(2025, 1, 2)))
    await db.commit()

    assert await client_svc.delete_client(db, account.id, "gone") is True
    assert await client_svc.get_client(db, account.id, "gone") is None
    assert await client_svc.list_appointments(db, account.id, "gone") == []
    assert await client_svc.delete_client(db, account.id, "gone") is False


# -- sync status ------------------------------------------------------------

def test_months_between_crosses_year():
    assert sync_status_svc.months_between(date(2024, 11, 20), date(2025, 2, 1)) == [
        (2024, 11), (2024, 12), (2025, 1), (2025, 2),
    ]
    assert sync_status_svc.months_between(date(2025, 3, 1), date(2025, 2, 1)) == []


@pytest.mark.asyncio
async def test_get_or_create_status_is_idempotent(db: AsyncSession, account: Account):
    first, created = await sync_status_svc.get_or_create_status(db, account.id, 2025, 1, "priority")
    again, created_again = await sync_status_svc.get_or_create_status(db, account.id, 2025, 1, "background")
    assert created is True and created_again is False
    assert again.id == first.id
    assert again.sync_phase == "priority"
    assert first.status == "pending"


@pytest.mark.asyncio
async def test_status_transitions(db: AsyncSession, account: Account):
    status, _ = await sync_status_svc.get_or_create_status(db, account.id, 2025, 2, "priority")

    await sync_status_svc.mark_processing(db, status)
    assert status.status == "processing" and status.started_at is not None

    await sync_status_svc.mark_retrying(db, status, "timeout")
    assert status.retry_count == 1
    assert status.error_message == "timeout"

    await sync_status_svc.mark_failed(db, status, "bad credentials")
    assert status.status == "failed"
    assert await sync_status_svc.all_completed(db, account.id) is False

    assert await sync_status_svc.reset_failed(db, account.id) == 1
    assert status.status == "pending" and status.error_message is None

    await sync_status_svc.mark_completed(db, status, 12)
    assert status.appointment_count == 12
    assert await sync_status_svc.all_completed(db, account.id) is True


@pytest.mark.asyncio
async def test_list_statuses_orders_priority_first(db: AsyncSession, account: Account):
    for year, month, phase in [(2024, 5, "background"), (2025, 1, "priority"),
                               (2024, 9, "background"), (2025, 2, "priority")]:
        await sync_status_svc.get_or_create_status(db, account.id, year, month, phase)
    await db.commit()

    periods = [s.period for s in await sync_status_svc.list_statuses(db, account.id)]
    assert periods == ["2025-02", "2025-01", "2024-09", "2024-05"]
    assert await sync_status_svc.count_by_status(db, account.id) == {"pending": 4}
    assert await sync_status_svc.all_completed(db, account.id) is False
