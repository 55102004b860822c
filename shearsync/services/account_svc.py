"""Account service - tenant CRUD."""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.account import Account

BOOKING_PROVIDERS = ("acuity", "square")


async def create_account(
    db: AsyncSession,
    *,
    name: str,
    slug: str,
    booking_provider: str = "acuity",
    timezone: str = "UTC",
) -> Account:
    provider = booking_provider.strip().lower()
    if provider not in BOOKING_PROVIDERS:
        raise ValueError(f"Unsupported booking provider: {booking_provider}")
    account = Account(name=name, slug=slug, booking_provider=provider, timezone=timezone)
    db.add(account)
    await db.commit()
    await db.refresh(account)
    return account


async def get_account(db: AsyncSession, account_id: uuid.UUID) -> Account | None:
    result = await db.execute(select(Account).where(Account.id == account_id))
    return result.scalar_one_or_none()


async def get_account_by_slug(db: AsyncSession, slug: str) -> Account | None:
    result = await db.execute(select(Account).where(Account.slug == slug))
    return result.scalar_one_or_none()


async def list_accounts(db: AsyncSession) -> list[Account]:
    result = await db.execute(select(Account).order_by(Account.name))
    return list(result.scalars().all())
