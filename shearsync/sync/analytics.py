"""Daily, weekly and monthly reporting rollups rebuilt after a pull.

Each table is recomputed over whole periods covering the pulled range: the
days themselves, the Monday-Sunday weeks touching it, and the calendar months
touching it. Rows in that window are replaced, so re-running a pull is
idempotent and periods whose appointments vanished are cleared.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Awaitable, Callable

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.analytics import (
    DailyData,
    MarketingFunnel,
    MonthlyData,
    MonthlyTopClient,
    ServiceBooking,
    WeeklyData,
)
from ..models.appointment import Appointment
from ..models.client import Client
from ..schemas.sync import AggregationResult

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENTS = Decimal("0.01")

# First-source values that say nothing about marketing
IGNORED_SOURCES = ("", "unknown", "returning client")

WEEKLY_GRANULARITIES = ("week", "month", "quarter", "year")
MONTHLY_GRANULARITIES = ("month", "quarter", "year")
ALL_GRANULARITIES = ("day",) + WEEKLY_GRANULARITIES


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def week_number(monday: date) -> int:
    return math.ceil(monday.day / 7)


def month_bounds(start: date, end: date) -> tuple[date, date]:
    first = start.replace(day=1)
    following = (end.replace(day=28) + timedelta(days=4)).replace(day=1)
    return first, following - timedelta(days=1)


def title_service(name: str | None) -> str:
    words = (name or "").split()
    if not words:
        return "Unknown"
    return " ".join(w[:1].upper() + w[1:].lower() for w in words)


def _avg(total: Decimal, count: int) -> Decimal:
    if not count:
        return ZERO
    return (total / count).quantize(CENTS)


async def _appointments(db: AsyncSession, account_id: uuid.UUID, start: date, end: date):
    result = await db.execute(
        select(
            Appointment.appointment_date,
            Appointment.client_id,
            Appointment.revenue,
            Appointment.tip,
            Appointment.service_type,
        )
        .where(
            Appointment.account_id == account_id,
            Appointment.appointment_date >= start,
            Appointment.appointment_date <= end,
        )
        .order_by(Appointment.appointment_date.asc())
    )
    return result.all()


async def _first_appts(db: AsyncSession, account_id: uuid.UUID, client_ids: set[str]) -> dict[str, date | None]:
    if not client_ids:
        return {}
    result = await db.execute(
        select(Client.client_id, Client.first_appt).where(
            Client.account_id == account_id, Client.client_id.in_(sorted(client_ids))
        )
    )
    return {client_id: first for client_id, first in result.all()}


async def _replace(db: AsyncSession, model, account_id: uuid.UUID, window, rows: list) -> int:
    """Delete the model's rows matching the window clause and insert the fresh ones."""
    await db.execute(delete(model).where(model.account_id == account_id, *window))
    db.add_all(rows)
    await db.flush()
    return len(rows)


def _month_window(model, start: date, end: date) -> tuple:
    # (year, month) pairs compare as yyyymm
    return (
        model.year * 100 + model.month >= start.year * 100 + start.month,
        model.year * 100 + model.month <= end.year * 100 + end.month,
    )


async def aggregate_daily(db: AsyncSession, account_id: uuid.UUID, start: date, end: date) -> int:
    stats: dict[date, list] = {}
    for day, _client_id, revenue, tip, _service in await _appointments(db, account_id, start, end):
        entry = stats.setdefault(day, [0, ZERO, ZERO])
        entry[0] += 1
        entry[1] += revenue or ZERO
        entry[2] += tip or ZERO

    rows = [
        DailyData(
            account_id=account_id,
            day=day,
            year=day.year,
            month=day.month,
            num_appointments=count,
            total_revenue=revenue,
            tips=tips,
            final_revenue=revenue + tips,
        )
        for day, (count, revenue, tips) in sorted(stats.items())
    ]
    return await _replace(
        db, DailyData, account_id, (DailyData.day >= start, DailyData.day <= end), rows
    )


async def aggregate_weekly(db: AsyncSession, account_id: uuid.UUID, start: date, end: date) -> int:
    first_monday = week_start(start)
    last_sunday = week_start(end) + timedelta(days=6)
    appts = await _appointments(db, account_id, first_monday, last_sunday)
    firsts = await _first_appts(db, account_id, {row[1] for row in appts})

    stats: dict[date, dict] = {}
    for day, client_id, revenue, tip, _service in appts:
        monday = week_start(day)
        entry = stats.setdefault(
            monday, {"count": 0, "revenue": ZERO, "tips": ZERO, "new": set(), "returning": set()}
        )
        entry["count"] += 1
        entry["revenue"] += revenue or ZERO
        entry["tips"] += tip or ZERO
        first = firsts.get(client_id)
        if first is None:
            continue
        if week_start(first) == monday:
            entry["new"].add(client_id)
        else:
            entry["returning"].add(client_id)

    rows = [
        WeeklyData(
            account_id=account_id,
            week_start=monday,
            week_end=monday + timedelta(days=6),
            week_number=week_number(monday),
            year=monday.year,
            month=monday.month,
            num_appointments=entry["count"],
            total_revenue=entry["revenue"],
            tips=entry["tips"],
            new_clients=len(entry["new"]),
            returning_clients=len(entry["returning"]),
        )
        for monday, entry in sorted(stats.items())
    ]
    window = (WeeklyData.week_start >= first_monday, WeeklyData.week_start <= last_sunday)
    return await _replace(db, WeeklyData, account_id, window, rows)


async def aggregate_monthly(db: AsyncSession, account_id: uuid.UUID, start: date, end: date) -> int:
    first_day, last_day = month_bounds(start, end)
    appts = await _appointments(db, account_id, first_day, last_day)
    firsts = await _first_appts(db, account_id, {row[1] for row in appts})

    stats: dict[tuple[int, int], dict] = {}
    for day, client_id, revenue, tip, _service in appts:
        period = (day.year, day.month)
        entry = stats.setdefault(
            period,
            {"count": 0, "revenue": ZERO, "tips": ZERO, "unique": set(), "new": set(), "returning": set()},
        )
        entry["count"] += 1
        entry["revenue"] += revenue or ZERO
        entry["tips"] += tip or ZERO
        entry["unique"].add(client_id)
        first = firsts.get(client_id)
        if first is None:
            continue
        if (first.year, first.month) == period:
            entry["new"].add(client_id)
        else:
            entry["returning"].add(client_id)

    rows = [
        MonthlyData(
            account_id=account_id,
            year=year,
            month=month,
            num_appointments=entry["count"],
            total_revenue=entry["revenue"],
            tips=entry["tips"],
            final_revenue=entry["revenue"] + entry["tips"],
            avg_ticket=_avg(entry["revenue"], entry["count"]),
            unique_clients=len(entry["unique"]),
            new_clients=len(entry["new"]),
            returning_clients=len(entry["returning"]),
        )
        for (year, month), entry in sorted(stats.items())
    ]
    return await _replace(db, MonthlyData, account_id, _month_window(MonthlyData, first_day, last_day), rows)


async def aggregate_top_clients(db: AsyncSession, account_id: uuid.UUID, start: date, end: date) -> int:
    """Per-month spend and visit count for every client seen that month."""
    first_day, last_day = month_bounds(start, end)
    appts = await _appointments(db, account_id, first_day, last_day)

    names: dict[str, str] = {}
    client_ids = sorted({row[1] for row in appts})
    if client_ids:
        result = await db.execute(
            select(Client.client_id, Client.first_name, Client.last_name).where(
                Client.account_id == account_id, Client.client_id.in_(client_ids)
            )
        )
        for client_id, first_name, last_name in result.all():
            names[client_id] = " ".join(p for p in (first_name, last_name) if p) or "Unknown"

    stats: dict[tuple[int, int, str], list] = defaultdict(lambda: [ZERO, 0])
    for day, client_id, revenue, _tip, _service in appts:
        entry = stats[(day.year, day.month, client_id)]
        entry[0] += revenue or ZERO
        entry[1] += 1

    rows = [
        MonthlyTopClient(
            account_id=account_id,
            year=year,
            month=month,
            client_id=client_id,
            client_name=names.get(client_id, "Unknown"),
            total_paid=paid,
            num_visits=visits,
        )
        for (year, month, client_id), (paid, visits) in sorted(stats.items())
    ]
    return await _replace(
        db, MonthlyTopClient, account_id, _month_window(MonthlyTopClient, first_day, last_day), rows
    )


async def aggregate_service_bookings(db: AsyncSession, account_id: uuid.UUID, start: date, end: date) -> int:
    """Bookings per service per month, priced at the first non-zero revenue seen."""
    first_day, last_day = month_bounds(start, end)
    stats: dict[tuple[int, int, str], list] = {}
    for day, _client_id, revenue, _tip, service in await _appointments(db, account_id, first_day, last_day):
        entry = stats.setdefault((day.year, day.month, title_service(service)), [0, ZERO])
        entry[0] += 1
        if not entry[1] and revenue:
            entry[1] = revenue

    rows = [
        ServiceBooking(
            account_id=account_id,
            year=year,
            month=month,
            service_name=name,
            bookings=bookings,
            price=price,
        )
        for (year, month, name), (bookings, price) in sorted(stats.items())
    ]
    return await _replace(
        db, ServiceBooking, account_id, _month_window(ServiceBooking, first_day, last_day), rows
    )


async def aggregate_marketing_funnels(db: AsyncSession, account_id: uuid.UUID, start: date, end: date) -> int:
    """New clients grouped by first-visit month and first source, with first-visit revenue."""
    first_day, last_day = month_bounds(start, end)
    result = await db.execute(
        select(Client.client_id, Client.first_appt, Client.first_source, Client.first_name, Client.last_name)
        .where(
            Client.account_id == account_id,
            Client.first_appt >= first_day,
            Client.first_appt <= last_day,
        )
        .order_by(Client.first_appt.asc(), Client.client_id.asc())
    )
    clients = [
        row for row in result.all()
        if (row.first_source or "").strip().lower() not in IGNORED_SOURCES
    ]

    first_revenue: dict[str, Decimal] = {}
    if clients:
        appt_result = await db.execute(
            select(Appointment.client_id, Appointment.appointment_date, Appointment.revenue)
            .where(
                Appointment.account_id == account_id,
                Appointment.client_id.in_([c.client_id for c in clients]),
            )
            .order_by(Appointment.appointment_date.asc())
        )
        for client_id, _day, revenue in appt_result.all():
            first_revenue.setdefault(client_id, revenue or ZERO)

    stats: dict[tuple[int, int, str], dict] = {}
    for client in clients:
        key = (client.first_appt.year, client.first_appt.month, client.first_source)
        entry = stats.setdefault(key, {"clients": 0, "names": [], "revenue": ZERO, "visits": 0})
        entry["clients"] += 1
        name = " ".join(p for p in (client.first_name, client.last_name) if p)
        if name and name not in entry["names"]:
            entry["names"].append(name)
        if client.client_id in first_revenue:
            entry["revenue"] += first_revenue[client.client_id]
            entry["visits"] += 1

    rows = [
        MarketingFunnel(
            account_id=account_id,
            year=year,
            month=month,
            source=source,
            new_clients=entry["clients"],
            client_names=entry["names"],
            first_visit_revenue=entry["revenue"],
            avg_ticket=_avg(entry["revenue"], entry["visits"]),
        )
        for (year, month, source), entry in sorted(stats.items())
    ]
    return await _replace(
        db, MarketingFunnel, account_id, _month_window(MarketingFunnel, first_day, last_day), rows
    )


Aggregator = Callable[[AsyncSession, uuid.UUID, date, date], Awaitable[int]]

# (table, granularities it runs for, builder)
AGGREGATIONS: list[tuple[str, tuple[str, ...], Aggregator]] = [
    ("daily_data", ALL_GRANULARITIES, aggregate_daily),
    ("weekly_data", WEEKLY_GRANULARITIES, aggregate_weekly),
    ("monthly_data", MONTHLY_GRANULARITIES, aggregate_monthly),
    ("monthly_top_client", MONTHLY_GRANULARITIES, aggregate_top_clients),
    ("service_booking", MONTHLY_GRANULARITIES, aggregate_service_bookings),
    ("marketing_funnel", MONTHLY_GRANULARITIES, aggregate_marketing_funnels),
]


async def run_aggregations(
    db: AsyncSession,
    account_id: uuid.UUID,
    start: date,
    end: date,
    granularity: str = "month",
) -> list[AggregationResult]:
    """Rebuild every rollup the granularity calls for.

    A failing rollup is logged and reported in its result; the rest still run.
    Database errors propagate so the caller can roll the pull back.
    """
    if start > end:
        raise ValueError(f"Start date ({start}) cannot be after end date ({end})")

    results: list[AggregationResult] = []
    for table, granularities, builder in AGGREGATIONS:
        if granularity not in granularities:
            continue
        try:
            rows = await builder(db, account_id, start, end)
        except SQLAlchemyError:
            raise
        except Exception as exc:
            logger.exception("%s aggregation failed for account %s", table, account_id)
            results.append(AggregationResult(table=table, error=f"{type(exc).__name__}: {exc}"))
            continue
        results.append(AggregationResult(table=table, rows_upserted=rows))

    logger.debug(
        "Aggregations %s..%s (%s) for account %s: %s",
        start,
        end,
        granularity,
        account_id,
        ", ".join(f"{r.table}={r.rows_upserted}" for r in results),
    )
    return results
