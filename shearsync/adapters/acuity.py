"""Acuity Scheduling adapter."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

import httpx

from ..config import settings
from ..schemas.appointment import NormalizedAppointment
from ..sync.field_mapper import acuity_to_normalized
from .base import HTTPBookingAdapter, is_future

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class AcuityAdapter(HTTPBookingAdapter):
    """Pulls appointments one day at a time from the Acuity v1 API."""

    provider = "acuity"
    base_url = settings.acuity_api_base

    def __init__(
        self,
        access_token: str,
        calendar_id: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        now: datetime | None = None,
    ) -> None:
        super().__init__(access_token, base_url=base_url, timeout=timeout, transport=transport)
        self.calendar_id = calendar_id
        self._now = now

    async def fetch_appointments(self, start: date, end: date) -> list[NormalizedAppointment]:
        seen: set[str] = set()
        appointments: list[NormalizedAppointment] = []

        day = start
        while day <= end:
            for appt in await self._fetch_day(day):
                if appt.external_id in seen:
                    continue
                seen.add(appt.external_id)
                appointments.append(appt)
            day += timedelta(days=1)

        logger.info("Fetched %d Acuity appointments for %s..%s", len(appointments), start, end)
        return appointments

    async def _fetch_day(self, day: date) -> list[NormalizedAppointment]:
        results: list[NormalizedAppointment] = []
        offset = 0

        while True:
            params = {
                "showall": "true",
                "minDate": day.isoformat(),
                "maxDate": day.isoformat(),
                "max": PAGE_SIZE,
                "offset": offset,
            }
            if self.calendar_id:
                params["calendarID"] = self.calendar_id

            data = await self._get("/appointments", **params)
            if not isinstance(data, list) or not data:
                break

            for raw in data:
                appt = acuity_to_normalized(raw)
                if appt is None or is_future(appt, self._now):
                    continue
                results.append(appt)

            if len(data) < PAGE_SIZE:
                break
            offset += PAGE_SIZE

        return results
