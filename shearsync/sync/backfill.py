"""Resumable month-by-month historical backfill.

Every (account, month) period has a SyncStatus row. The current year is the
"priority" phase and runs first; older years run in the "background" phase.
Fetches for different months overlap, but resolution and upserts for one
account are serialized through a shared lock.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from datetime import date
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..adapters import get_adapter
from ..config import settings
from ..models.account import Account
from ..models.sync_status import SyncStatus
from ..schemas.sync import BackfillReport
from ..services import account_svc, sync_status_svc
from .sync_engine import is_transient_error, month_range, run_pull

logger = logging.getLogger(__name__)

OnComplete = Callable[[uuid.UUID], Awaitable[None] | None]


def retry_delay_seconds(sync_phase: str, retry_count: int) -> float:
    """Fixed delay for priority periods, capped exponential for background."""
    if sync_phase == "priority":
        return settings.backfill_priority_retry_delay_seconds
    delay = settings.backfill_background_retry_base_seconds * (2 ** max(retry_count, 0))
    return min(delay, settings.backfill_background_retry_max_seconds)


async def plan_backfill(
    db: AsyncSession,
    account: Account,
    start_year: int,
    today: date | None = None,
) -> list[SyncStatus]:
    """Create pending status rows for every month from start_year to today."""
    today = today or date.today()
    created: list[SyncStatus] = []
    for year, month in sync_status_svc.months_between(date(start_year, 1, 1), today):
        phase = "priority" if year == today.year else "background"
        status, is_new = await sync_status_svc.get_or_create_status(
            db, account.id, year, month, phase
        )
        if is_new:
            created.append(status)
    await db.commit()
    logger.info("Planned %d new backfill periods for account %s", len(created), account.id)
    return created


async def sync_period(
    session_factory: async_sessionmaker,
    status_id: uuid.UUID,
    adapter_factory: Callable = get_adapter,
    *,
    lock: asyncio.Lock | None = None,
) -> str:
    """Run one period until it completes or fails permanently.

    Transient failures are retried without a count limit; the delay follows
    retry_delay_seconds for the period's phase.
    """
    async with session_factory() as db:
        status = await sync_status_svc.get_status(db, status_id)
        if status is None:
            raise ValueError(f"Unknown sync status {status_id}")
        if status.status == "completed":
            return status.status

        account = await account_svc.get_account(db, status.account_id)
        if account is None:
            await sync_status_svc.mark_failed(db, status, "account not found")
            return status.status

        start, end = month_range(status.year, status.month)

        while True:
            await sync_status_svc.mark_processing(db, status)
            try:
                async with adapter_factory(account) as adapter:
                    summary = await run_pull(db, account, adapter, start, end, lock=lock)
            except Exception as exc:
                await db.rollback()
                await db.refresh(status)
                await db.refresh(account)
                error = f"{type(exc).__name__}: {exc}"
                if is_transient_error(exc):
                    delay = retry_delay_seconds(status.sync_phase, status.retry_count)
                    logger.warning(
                        "Period %s for account %s hit a transient error, retrying in %.1fs: %s",
                        status.period, account.id, delay, error,
                    )
                    await sync_status_svc.mark_retrying(db, status, error)
                    await asyncio.sleep(delay)
                    continue

                logger.exception("Period %s for account %s failed", status.period, account.id)
                await sync_status_svc.mark_failed(db, status, error)
                return status.status

            await sync_status_svc.mark_completed(db, status, summary.appointments_upserted)
            return status.status


async def _run_pool(
    session_factory: async_sessionmaker,
    statuses: list[tuple[uuid.UUID, str]],
    adapter_factory: Callable,
    concurrency: int,
    lock: asyncio.Lock,
    report: BackfillReport,
) -> None:
    sem = asyncio.Semaphore(max(concurrency, 1))

    async def _one(status_id: uuid.UUID, period: str) -> None:
        async with sem:
            outcome = await sync_period(session_factory, status_id, adapter_factory, lock=lock)
        report.periods.append(period)
        if outcome == "completed":
            report.completed += 1
        else:
            report.failed += 1

    await asyncio.gather(*(_one(sid, period) for sid, period in statuses))


async def run_backfill(
    session_factory: async_sessionmaker,
    account_id: uuid.UUID,
    adapter_factory: Callable = get_adapter,
    *,
    on_complete: OnComplete | None = None,
) -> BackfillReport:
    """Run every pending/processing/retrying period, priority phase first."""
    async with session_factory() as db:
        pending = await sync_status_svc.list_statuses(
            db, account_id, ("pending", "processing", "retrying")
        )
    priority = [(s.id, s.period) for s in pending if s.sync_phase == "priority"]
    background = [(s.id, s.period) for s in pending if s.sync_phase != "priority"]

    report = BackfillReport()
    lock = asyncio.Lock()
    await _run_pool(
        session_factory, priority, adapter_factory,
        settings.backfill_priority_concurrency, lock, report,
    )
    await _run_pool(
        session_factory, background, adapter_factory,
        settings.backfill_background_concurrency, lock, report,
    )

    await _notify_if_complete(session_factory, account_id, on_complete)
    logger.info(
        "Backfill for account %s: %d completed, %d failed",
        account_id, report.completed, report.failed,
    )
    return report


async def resume_backfill(
    session_factory: async_sessionmaker,
    account_id: uuid.UUID,
    adapter_factory: Callable = get_adapter,
    *,
    on_complete: OnComplete | None = None,
) -> BackfillReport:
    """Pick up every incomplete period; failed ones are reset to pending first."""
    async with session_factory() as db:
        reset = await sync_status_svc.reset_failed(db, account_id)
    if reset:
        logger.info("Reset %d failed periods for account %s", reset, account_id)
    return await run_backfill(
        session_factory, account_id, adapter_factory, on_complete=on_complete
    )


async def retry_failed_periods(
    session_factory: async_sessionmaker,
    account_id: uuid.UUID,
    adapter_factory: Callable = get_adapter,
    *,
    max_retries: int | None = None,
    concurrency: int | None = None,
    on_complete: OnComplete | None = None,
) -> BackfillReport:
    """Re-run failed periods that have not used up their retry allowance."""
    max_retries = settings.retry_failed_max_retries if max_retries is None else max_retries
    async with session_factory() as db:
        failed = await sync_status_svc.list_statuses(db, account_id, ("failed",))
        eligible = [s for s in failed if s.retry_count < max_retries]
        for status in eligible:
            status.retry_count += 1
            status.status = "pending"
            status.error_message = None
        await db.commit()
        targets = [(s.id, s.period) for s in eligible]

    report = BackfillReport(retried=len(targets))
    await _run_pool(
        session_factory, targets, adapter_factory,
        concurrency or settings.retry_failed_concurrency, asyncio.Lock(), report,
    )
    await _notify_if_complete(session_factory, account_id, on_complete)
    return report


async def _notify_if_complete(
    session_factory: async_sessionmaker,
    account_id: uuid.UUID,
    on_complete: OnComplete | None,
) -> None:
    async with session_factory() as db:
        done = await sync_status_svc.all_completed(db, account_id)
    if not done:
        return
    logger.info("All backfill periods completed for account %s", account_id)
    if on_complete is not None:
        outcome = on_complete(account_id)
        if inspect.isawaitable(outcome):
            await outcome
