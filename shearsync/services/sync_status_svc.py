"""Sync status service - per-month backfill bookkeeping."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.sync_status import SyncStatus

RESUMABLE_STATUSES = ("pending", "processing", "retrying", "failed")


async def get_status(db: AsyncSession, status_id: uuid.UUID) -> SyncStatus | None:
    result = await db.execute(select(SyncStatus).where(SyncStatus.id == status_id))
    return result.scalar_one_or_none()


async def get_or_create_status(
    db: AsyncSession,
    account_id: uuid.UUID,
    year: int,
    month: int,
    sync_phase: str,
) -> tuple[SyncStatus, bool]:
    """Return the status row for a period, creating it as pending if missing."""
    result = await db.execute(
        select(SyncStatus).where(
            SyncStatus.account_id == account_id,
            SyncStatus.year == year,
            SyncStatus.month == month,
        )
    )
    status = result.scalar_one_or_none()
    if status:
        return status, False

    status = SyncStatus(
        account_id=account_id,
        year=year,
        month=month,
        status="pending",
        sync_phase=sync_phase,
        retry_count=0,
        appointment_count=0,
    )
    db.add(status)
    await db.flush()
    return status, True


async def list_statuses(
    db: AsyncSession,
    account_id: uuid.UUID,
    statuses: tuple[str, ...] | list[str] | None = None,
) -> list[SyncStatus]:
    """List periods, priority phase first, most recent month first."""
    stmt = select(SyncStatus).where(SyncStatus.account_id == account_id)
    if statuses:
        stmt = stmt.where(SyncStatus.status.in_(tuple(statuses)))
    result = await db.execute(stmt)
    rows = list(result.scalars().all())
    rows.sort(key=lambda s: (s.sync_phase != "priority", -s.year, -s.month))
    return rows


async def count_by_status(db: AsyncSession, account_id: uuid.UUID) -> dict[str, int]:
    result = await db.execute(
        select(SyncStatus.status, func.count())
        .where(SyncStatus.account_id == account_id)
        .group_by(SyncStatus.status)
    )
    return {status: count for status, count in result.all()}


async def mark_processing(db: AsyncSession, status: SyncStatus) -> None:
    status.status = "processing"
    status.started_at = datetime.now(timezone.utc)
    status.error_message = None
    await db.commit()


async def mark_completed(db: AsyncSession, status: SyncStatus, appointment_count: int) -> None:
    status.status = "completed"
    status.appointment_count = appointment_count
    status.error_message = None
    status.finished_at = datetime.now(timezone.utc)
    await db.commit()


async def mark_retrying(db: AsyncSession, status: SyncStatus, error: str) -> None:
    status.status = "retrying"
    status.retry_count += 1
    status.error_message = error
    await db.commit()


async def mark_failed(db: AsyncSession, status: SyncStatus, error: str) -> None:
    status.status = "failed"
    status.error_message = error
    status.finished_at = datetime.now(timezone.utc)
    await db.commit()


async def reset_failed(db: AsyncSession, account_id: uuid.UUID) -> int:
    """Move failed periods back to pending so a resume pass picks them up."""
    failed = await list_statuses(db, account_id, ("failed",))
    for status in failed:
        status.status = "pending"
        status.error_message = None
    await db.commit()
    return len(failed)


async def all_completed(db: AsyncSession, account_id: uuid.UUID) -> bool:
    counts = await count_by_status(db, account_id)
    total = sum(counts.values())
    return total > 0 and counts.get("completed", 0) == total


def months_between(start: date, end: date) -> list[tuple[int, int]]:
    """(year, month) pairs from start's month through end's month, inclusive."""
    months: list[tuple[int, int]] = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        months.append((year, month))
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return months
