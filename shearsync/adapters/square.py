"""Square Appointments adapter."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone

import httpx

from ..config import settings
from ..schemas.appointment import NormalizedAppointment
from ..sync.field_mapper import apply_payment_totals, square_payment_totals, square_to_normalized
from .base import HTTPBookingAdapter, is_future

logger = logging.getLogger(__name__)

PAGE_LIMIT = 100


def chunk_range(start: date, end: date, max_days: int) -> list[tuple[date, date]]:
    """Split [start, end] into consecutive ranges of at most max_days days."""
    chunks: list[tuple[date, date]] = []
    cursor = start
    while cursor <= end:
        chunk_end = min(cursor + timedelta(days=max_days - 1), end)
        chunks.append((cursor, chunk_end))
        cursor = chunk_end + timedelta(days=1)
    return chunks


def _padded_bounds(start: date, end: date) -> tuple[str, str]:
    # One day either side covers every UTC offset; bookings are re-filtered by local date.
    lower = datetime.combine(start - timedelta(days=1), time.min, tzinfo=timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.max, tzinfo=timezone.utc)
    return lower.isoformat(), upper.isoformat()


class SquareAdapter(HTTPBookingAdapter):
    """Pulls bookings from /v2/bookings and completed payments from /v2/payments.

    Bookings only carry the list price; when a booking's order was paid, the
    paid amount and tip replace it.
    """

    provider = "square"
    base_url = settings.square_api_base

    def __init__(
        self,
        access_token: str,
        location_id: str,
        *,
        tz_name: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        now: datetime | None = None,
        page_delay_seconds: float = 0.1,
    ) -> None:
        super().__init__(access_token, base_url=base_url, timeout=timeout, transport=transport)
        self.location_id = location_id
        self.tz_name = tz_name
        self._now = now
        self._page_delay = page_delay_seconds

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Square-Version"] = settings.square_version
        return headers

    async def fetch_appointments(self, start: date, end: date) -> list[NormalizedAppointment]:
        seen: set[str] = set()
        appointments: list[NormalizedAppointment] = []
        payments: list[dict] = []

        for chunk_start, chunk_end in chunk_range(start, end, settings.square_max_range_days):
            for raw in await self._list_bookings(chunk_start, chunk_end):
                appt = square_to_normalized(raw, self.tz_name)
                if appt is None or appt.external_id in seen:
                    continue
                if appt.appointment_date < start or appt.appointment_date > end:
                    continue
                if is_future(appt, self._now):
                    continue
                seen.add(appt.external_id)
                appointments.append(appt)
            payments.extend(await self._list_payments(chunk_start, chunk_end))

        totals = square_payment_totals(payments)
        appointments = [apply_payment_totals(appt, totals) for appt in appointments]

        logger.info(
            "Fetched %d Square bookings and %d payments for %s..%s",
            len(appointments), len(payments), start, end,
        )
        return appointments

    async def _paginate(self, endpoint: str, key: str, params: dict) -> list[dict]:
        items: list[dict] = []
        cursor: str | None = None
        while True:
            page_params = dict(params)
            if cursor:
                page_params["cursor"] = cursor

            data = await self._get(endpoint, **page_params)
            page = data.get(key) if isinstance(data, dict) else None
            if isinstance(page, list):
                items.extend(item for item in page if isinstance(item, dict))

            cursor = data.get("cursor") if isinstance(data, dict) else None
            if not cursor:
                break
            if self._page_delay:
                await asyncio.sleep(self._page_delay)
        return items

    async def _list_bookings(self, start: date, end: date) -> list[dict]:
        start_at, end_at = _padded_bounds(start, end)
        return await self._paginate(
            "/v2/bookings",
            "bookings",
            {
                "start_at_min": start_at,
                "start_at_max": end_at,
                "location_id": self.location_id,
                "limit": PAGE_LIMIT,
            },
        )

    async def _list_payments(self, start: date, end: date) -> list[dict]:
        begin_time, end_time = _padded_bounds(start, end)
        return await self._paginate(
            "/v2/payments",
            "payments",
            {
                "begin_time": begin_time,
                "end_time": end_time,
                "location_id": self.location_id,
                "limit": PAGE_LIMIT,
            },
        )
