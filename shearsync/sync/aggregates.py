"""Recompute client aggregates from the full persisted appointment history."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models.appointment import Appointment
from ..models.client import Client

logger = logging.getLogger(__name__)

CHUNK_SIZE = 500


def cap_tip_total(total: Decimal) -> Decimal:
    cap = Decimal(settings.tip_total_cap)
    return cap if total > cap else total


def apply_aggregates(client: Client, rows: list[tuple[date, Decimal | None, str | None]]) -> None:
    """Overwrite a client's markers and totals from (date, tip, source) rows."""
    if not rows:
        client.first_appt = None
        client.second_appt = None
        client.last_appt = None
        client.total_appointments = 0
        client.total_tips_all_time = Decimal("0")
        return

    days = sorted({day for day, _, _ in rows})
    client.first_appt = days[0]
    client.second_appt = days[1] if len(days) > 1 else None
    client.last_appt = days[-1]
    client.total_appointments = len(rows)
    tips = sum((tip or Decimal("0") for _, tip, _ in rows), Decimal("0"))
    client.total_tips_all_time = cap_tip_total(tips)

    sourced = [(day, source) for day, _, source in rows if source]
    if sourced:
        client.first_source = min(sourced, key=lambda item: item[0])[1]


async def recompute_client_aggregates(
    db: AsyncSession,
    account_id: uuid.UUID,
    client_ids: list[str] | set[str],
) -> int:
    """Rebuild first/second/last markers and totals for the given clients."""
    ids = sorted(set(client_ids))
    updated = 0

    for i in range(0, len(ids), CHUNK_SIZE):
        chunk = ids[i:i + CHUNK_SIZE]

        clients_result = await db.execute(
            select(Client).where(Client.account_id == account_id, Client.client_id.in_(chunk))
        )
        clients = {c.client_id: c for c in clients_result.scalars().all()}

        rows_result = await db.execute(
            select(
                Appointment.client_id,
                Appointment.appointment_date,
                Appointment.tip,
                Appointment.referral_source,
            )
            .where(Appointment.account_id == account_id, Appointment.client_id.in_(chunk))
            .order_by(Appointment.appointment_date.asc())
        )
        history: dict[str, list[tuple[date, Decimal | None, str | None]]] = defaultdict(list)
        for client_id, appt_date, tip, source in rows_result.all():
            history[client_id].append((appt_date, tip, source))

        for client_id, client in clients.items():
            apply_aggregates(client, history.get(client_id, []))
            updated += 1

    await db.flush()
    logger.debug("Recomputed aggregates for %d clients", updated)
    return updated
