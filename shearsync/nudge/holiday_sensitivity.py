"""Find clients who visited during last year's edition of the active holiday."""

from __future__ import annotations

import logging
import uuid
from datetime import date

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models.appointment import Appointment
from .holidays import Holiday, get_active_holiday, get_holiday_date_range, get_previous_year_holiday

logger = logging.getLogger(__name__)


def previous_year_window(
    today: date, buffer_days: int | None = None
) -> tuple[Holiday, tuple[date, date]] | None:
    """Return the active holiday and last year's buffered window, if any."""
    holiday = get_active_holiday(today)
    if holiday is None:
        return None
    previous = get_previous_year_holiday(holiday)
    if previous is None:
        return None
    buffer_days = settings.nudge_holiday_buffer_days if buffer_days is None else buffer_days
    return holiday, get_holiday_date_range(previous, buffer_days)


async def holiday_cohort(
    db: AsyncSession,
    account_id: uuid.UUID,
    client_ids: list[str],
    today: date,
) -> set[str]:
    """Client ids with an appointment (or booking) inside last year's window.

    Query failures degrade to an empty cohort.
    """
    if not client_ids:
        return set()
    window = previous_year_window(today)
    if window is None:
        return set()
    holiday, (start, end) = window

    try:
        result = await db.execute(
            select(Appointment.client_id)
            .where(
                Appointment.account_id == account_id,
                Appointment.client_id.in_(client_ids),
                or_(
                    and_(Appointment.appointment_date >= start, Appointment.appointment_date <= end),
                    and_(Appointment.date_created >= start, Appointment.date_created <= end),
                ),
            )
            .distinct()
        )
    except SQLAlchemyError:
        logger.exception("Holiday cohort query failed for %s; no boost applied", holiday.id)
        return set()

    cohort = set(result.scalars().all())
    logger.debug("Holiday %s cohort: %d of %d clients", holiday.id, len(cohort), len(client_ids))
    return cohort
