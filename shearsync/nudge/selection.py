"""Two-phase nudge candidate selection (strict, then lenient fill-in)."""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models.account import Account
from ..models.client import Client
from ..schemas.availability import AvailabilitySnapshot
from ..schemas.nudge import ScoredClient, SelectionResult
from . import scoring
from .holiday_sensitivity import holiday_cohort

logger = logging.getLogger(__name__)

STRICT_MIN_DAYS = 14
STRICT_MAX_MONTHS = 8
LENIENT_MIN_DAYS = 7
LENIENT_MAX_MONTHS = 24


def months_ago(today: date, months: int) -> date:
    year, month = divmod(today.year * 12 + today.month - 1 - months, 12)
    month += 1
    day = min(today.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _display_name(client: Client) -> str:
    parts = [p for p in (client.first_name, client.last_name) if p]
    return " ".join(parts)


def _candidate(
    client: Client,
    today: date,
    score: float,
    days_overdue: int,
    phase: str,
) -> ScoredClient:
    return ScoredClient(
        client_id=client.client_id,
        phone_normalized=client.phone_normalized,
        display_name=_display_name(client),
        visiting_type=client.visiting_type,
        last_appt=client.last_appt,
        days_since_last_visit=scoring.days_between(client.last_appt, today),
        expected_visit_interval_days=scoring.expected_interval_days(client.avg_weekly_visits),
        days_overdue=days_overdue,
        score=score,
        phase=phase,
    )


async def _load_candidates(
    db: AsyncSession,
    account: Account,
    today: date,
    min_days: int,
    max_months: int,
) -> list[Client]:
    stmt = (
        select(Client)
        .where(
            Client.account_id == account.id,
            Client.phone_normalized.is_not(None),
            Client.last_appt.is_not(None),
            Client.last_appt <= today - timedelta(days=min_days),
            Client.last_appt >= months_ago(today, max_months),
            Client.total_appointments > 0,
            or_(Client.sms_subscribed.is_(None), Client.sms_subscribed.is_(True)),
        )
        .order_by(Client.last_appt.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


def _overdue(client: Client, today: date) -> int:
    days_since = scoring.days_between(client.last_appt, today)
    return days_since - scoring.expected_interval_days(client.avg_weekly_visits)


async def strict_candidates(db: AsyncSession, account: Account, today: date) -> list[ScoredClient]:
    try:
        clients = await _load_candidates(db, account, today, STRICT_MIN_DAYS, STRICT_MAX_MONTHS)
    except SQLAlchemyError:
        logger.exception("Strict candidate query failed for account %s", account.id)
        return []

    scored: list[ScoredClient] = []
    for client in clients:
        if scoring.recently_messaged(client.date_last_sms_sent, today, scoring.STRICT_SMS_COOLDOWN_DAYS):
            continue
        days_overdue = _overdue(client, today)
        score = scoring.score_strict(
            client.visiting_type,
            scoring.days_between(client.last_appt, today),
            days_overdue,
            client.total_appointments,
        )
        if score <= 0:
            continue
        scored.append(_candidate(client, today, score, days_overdue, "strict"))
    return dedupe_by_phone(scored)


async def lenient_candidates(
    db: AsyncSession,
    account: Account,
    today: date,
    exclude_phones: set[str],
) -> list[ScoredClient]:
    try:
        clients = await _load_candidates(db, account, today, LENIENT_MIN_DAYS, LENIENT_MAX_MONTHS)
    except SQLAlchemyError:
        logger.exception("Lenient candidate query failed for account %s", account.id)
        return []

    scored: list[ScoredClient] = []
    for client in clients:
        if client.phone_normalized in exclude_phones:
            continue
        if scoring.recently_messaged(client.date_last_sms_sent, today, scoring.LENIENT_SMS_COOLDOWN_DAYS):
            continue
        days_overdue = _overdue(client, today)
        score = scoring.score_lenient(days_overdue)
        if score <= 0:
            continue
        scored.append(_candidate(client, today, score, days_overdue, "lenient"))
    return dedupe_by_phone(scored)


def dedupe_by_phone(candidates: list[ScoredClient]) -> list[ScoredClient]:
    """Keep one entry per phone: highest score, then most recent visit."""
    best: dict[str, ScoredClient] = {}
    for candidate in candidates:
        current = best.get(candidate.phone_normalized)
        if current is None:
            best[candidate.phone_normalized] = candidate
            continue
        if candidate.score > current.score or (
            candidate.score == current.score
            and candidate.days_since_last_visit < current.days_since_last_visit
        ):
            best[candidate.phone_normalized] = candidate
    return list(best.values())


async def select_clients(
    db: AsyncSession,
    account: Account,
    limit: int,
    now: datetime | None = None,
) -> SelectionResult:
    """Rank clients for outreach; strict candidates always outrank fill-ins."""
    today = (now or datetime.now(timezone.utc)).date()
    if limit <= 0:
        return SelectionResult()

    strict = await strict_candidates(db, account, today)
    for candidate in strict:
        candidate.score += settings.nudge_strict_boost

    lenient: list[ScoredClient] = []
    if len(strict) < limit:
        lenient = await lenient_candidates(
            db, account, today, {c.phone_normalized for c in strict}
        )

    merged = dedupe_by_phone(strict + lenient)

    cohort = await holiday_cohort(db, account.id, [c.client_id for c in merged], today)
    for candidate in merged:
        if candidate.client_id in cohort:
            candidate.score += settings.nudge_holiday_boost
            candidate.holiday_cohort = True
        candidate.days_overdue = max(0, candidate.days_overdue)

    merged.sort(key=lambda c: c.score, reverse=True)
    logger.info(
        "Nudge selection for account %s: %d strict, %d lenient, returning %d",
        account.id, len(strict), len(lenient), min(limit, len(merged)),
    )
    return SelectionResult(clients=merged[:limit], total_available_clients=len(merged))


async def select_for_availability(
    db: AsyncSession,
    account: Account,
    availability: AvailabilitySnapshot,
    max_limit: int | None = None,
    now: datetime | None = None,
) -> SelectionResult:
    """Select one candidate per open slot, capped at max_limit."""
    if not availability.should_nudge:
        return SelectionResult()
    cap = settings.nudge_max_limit if max_limit is None else max_limit
    return await select_clients(db, account, min(availability.open_slots, cap), now=now)
