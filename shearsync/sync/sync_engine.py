"""Pull orchestrator: fetch -> resolve -> reconcile -> aggregates."""

from __future__ import annotations

import asyncio
import calendar
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Literal

import httpx
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..errors import InvalidPullOptionsError, TransientSyncError
from ..models.account import Account
from ..schemas.sync import SyncSummary
from .aggregates import recompute_client_aggregates
from .analytics import run_aggregations
from .appointment_reconciler import AppointmentReconciler
from .client_resolver import ClientResolver

logger = logging.getLogger(__name__)

MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
QUARTERS = {"Q1": (1, 3), "Q2": (4, 6), "Q3": (7, 9), "Q4": (10, 12)}

# Postgres statement timeout / deadlock SQLSTATEs plus generic markers
_TRANSIENT_DB_MARKERS = ("timeout", "timed out", "57014", "deadlock", "40p01", "canceling statement")


class PullOptions(BaseModel):
    granularity: Literal["day", "week", "month", "quarter", "year"] = "month"
    year: int
    quarter: str | None = None
    month: str | None = None
    week_number: int | None = None
    day: int | None = None


def _month_index(month: str | None) -> int:
    if month:
        for i, name in enumerate(MONTHS, start=1):
            if name.lower() == month.strip().lower() or name[:3].lower() == month.strip().lower():
                return i
    raise InvalidPullOptionsError(f"Invalid month: {month}")


def first_monday_of_month(year: int, month: int) -> date:
    first = date(year, month, 1)
    return first + timedelta(days=(7 - first.weekday()) % 7)


def month_range(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def pull_options_to_date_range(options: PullOptions) -> tuple[date, date]:
    """Translate pull options into an inclusive (start, end) date range."""
    year = options.year

    if options.granularity == "year":
        return date(year, 1, 1), date(year, 12, 31)

    if options.granularity == "quarter":
        quarter = (options.quarter or "Q1").upper()
        if quarter not in QUARTERS:
            raise InvalidPullOptionsError(f"Invalid quarter: {options.quarter}")
        first_month, last_month = QUARTERS[quarter]
        return month_range(year, first_month)[0], month_range(year, last_month)[1]

    if options.granularity == "month":
        return month_range(year, _month_index(options.month))

    if options.granularity == "week":
        if not options.month or not options.week_number:
            raise InvalidPullOptionsError("Week granularity requires month and week_number")
        week_start = first_monday_of_month(year, _month_index(options.month))
        week_start += timedelta(days=(options.week_number - 1) * 7)
        return week_start, week_start + timedelta(days=6)

    if not options.month or not options.day:
        raise InvalidPullOptionsError("Day granularity requires month and day")
    try:
        day = date(year, _month_index(options.month), options.day)
    except ValueError as exc:
        raise InvalidPullOptionsError(str(exc)) from exc
    return day, day


def is_transient_error(exc: BaseException) -> bool:
    """Timeouts, deadlocks and upstream 5xx are worth retrying."""
    if isinstance(exc, (TransientSyncError, asyncio.TimeoutError, httpx.TimeoutException)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, DBAPIError):
        text = str(exc.orig if exc.orig is not None else exc).lower()
        return any(marker in text for marker in _TRANSIENT_DB_MARKERS)
    return False


async def run_pull(
    db: AsyncSession,
    account: Account,
    adapter,
    start: date,
    end: date,
    *,
    dry_run: bool = False,
    lock: asyncio.Lock | None = None,
    granularity: str = "month",
) -> SyncSummary:
    """Pull one date range for an account and persist the reconciled result.

    Reporting rollups are rebuilt for the levels the granularity calls for; a
    failing rollup is reported in the summary without undoing the pull.

    Fetch errors propagate so callers can retry; persistence errors roll the
    session back and propagate as well.
    """
    account_id = account.id
    summary = SyncSummary(
        account_id=str(account_id),
        start=start,
        end=end,
        fetched_at=datetime.now(timezone.utc),
        dry_run=dry_run,
    )

    appointments = await asyncio.wait_for(
        adapter.fetch_appointments(start, end),
        timeout=settings.request_timeout_seconds,
    )
    summary.fetched = len(appointments)

    async def _process() -> None:
        resolver = ClientResolver(db, account)
        resolution = await resolver.resolve(appointments)
        await resolver.persist(resolution)

        reconciler = AppointmentReconciler(db, account)
        reconciler.process(appointments, resolution)
        appt_result = await reconciler.upsert()

        await recompute_client_aggregates(db, account.id, appt_result.affected_client_ids)
        summary.aggregations = await run_aggregations(db, account.id, start, end, granularity)

        client_result = resolution.result
        summary.resolved = client_result.total_processed
        summary.new_clients = client_result.new_clients
        summary.failed = client_result.failed
        summary.errors.extend(client_result.errors)
        summary.appointments_upserted = appt_result.inserted + appt_result.updated
        summary.skipped = appt_result.skipped
        summary.revenue_preserved = appt_result.revenue_preserved
        summary.deleted = appt_result.deleted

        if dry_run:
            await db.rollback()
        else:
            await db.commit()

    try:
        if lock is not None:
            async with lock:
                await _process()
        else:
            await _process()
    except SQLAlchemyError:
        await db.rollback()
        raise

    logger.info(
        "Pull %s..%s for account %s: fetched=%d resolved=%d new=%d upserted=%d skipped=%d preserved=%d",
        start,
        end,
        account_id,
        summary.fetched,
        summary.resolved,
        summary.new_clients,
        summary.appointments_upserted,
        summary.skipped,
        summary.revenue_preserved,
    )
    return summary


async def run_account_syncs(
    session_factory: async_sessionmaker,
    account_ids: list[uuid.UUID],
    adapter_factory: Callable[[Account], object],
    start: date,
    end: date,
    *,
    concurrency: int | None = None,
) -> dict[uuid.UUID, SyncSummary]:
    """Pull several accounts concurrently, one session per account."""
    sem = asyncio.Semaphore(concurrency or settings.account_sync_concurrency)
    summaries: dict[uuid.UUID, SyncSummary] = {}

    async def _one(account_id: uuid.UUID) -> None:
        async with sem:
            async with session_factory() as db:
                account = (
                    await db.execute(select(Account).where(Account.id == account_id))
                ).scalar_one_or_none()
                if account is None:
                    summaries[account_id] = SyncSummary(
                        account_id=str(account_id),
                        start=start,
                        end=end,
                        errors=["account not found"],
                    )
                    return
                try:
                    async with adapter_factory(account) as adapter:
                        summaries[account_id] = await run_pull(db, account, adapter, start, end)
                except Exception as exc:
                    logger.exception("Sync failed for account %s", account_id)
                    summaries[account_id] = SyncSummary(
                        account_id=str(account_id),
                        start=start,
                        end=end,
                        errors=[f"{type(exc).__name__}: {exc}"],
                    )

    await asyncio.gather(*(_one(aid) for aid in account_ids))
    return summaries
