"""Client service - read access and admin cleanup."""

from __future__ import annotations

import uuid

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.appointment import Appointment
from ..models.client import Client


async def list_clients(
    db: AsyncSession,
    account_id: uuid.UUID,
    *,
    search: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[Client], int]:
    stmt = select(Client).where(Client.account_id == account_id)
    count_stmt = select(func.count()).select_from(Client).where(Client.account_id == account_id)

    if search:
        pattern = f"%{search}%"
        search_filter = or_(
            Client.first_name.ilike(pattern),
            Client.last_name.ilike(pattern),
            Client.email.ilike(pattern),
            Client.phone_normalized.ilike(pattern),
        )
        stmt = stmt.where(search_filter)
        count_stmt = count_stmt.where(search_filter)

    total = (await db.execute(count_stmt)).scalar_one()
    stmt = stmt.order_by(Client.last_appt.desc(), Client.client_id).offset(offset).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def get_client(db: AsyncSession, account_id: uuid.UUID, client_id: str) -> Client | None:
    result = await db.execute(
        select(Client).where(Client.account_id == account_id, Client.client_id == client_id)
    )
    return result.scalar_one_or_none()


async def list_appointments(
    db: AsyncSession, account_id: uuid.UUID, client_id: str
) -> list[Appointment]:
    result = await db.execute(
        select(Appointment)
        .where(Appointment.account_id == account_id, Appointment.client_id == client_id)
        .order_by(Appointment.appointment_date.asc())
    )
    return list(result.scalars().all())


async def delete_client(db: AsyncSession, account_id: uuid.UUID, client_id: str) -> bool:
    """Remove a client and its appointments. Sync processing never calls this."""
    client = await get_client(db, account_id, client_id)
    if not client:
        return False
    await db.execute(
        delete(Appointment).where(
            Appointment.account_id == account_id, Appointment.client_id == client_id
        )
    )
    await db.delete(client)
    await db.commit()
    return True
