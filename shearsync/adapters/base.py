"""Booking adapter contract and shared httpx plumbing."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Protocol, runtime_checkable

import httpx

from ..config import settings
from ..schemas.appointment import NormalizedAppointment

logger = logging.getLogger(__name__)


@runtime_checkable
class BookingAdapter(Protocol):
    """Anything that can list normalized appointments for a date range."""

    provider: str

    async def fetch_appointments(self, start: date, end: date) -> list[NormalizedAppointment]:
        ...


class HTTPBookingAdapter:
    """Base for adapters backed by a provider REST API.

    Usage:
        async with AcuityAdapter(token, calendar_id) as acuity:
            appts = await acuity.fetch_appointments(date(2025, 1, 1), date(2025, 1, 31))
    """

    provider = "unknown"
    base_url = ""

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.access_token = access_token
        self.base_url = base_url or self.base_url
        self.timeout = timeout or settings.request_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._headers(),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get(self, endpoint: str, **params) -> Any:
        """Make GET request."""
        if self._client is None:
            raise RuntimeError("Adapter not initialized. Use 'async with' context.")
        resp = await self._client.get(endpoint, params=params)
        resp.raise_for_status()
        return resp.json()

    async def fetch_appointments(self, start: date, end: date) -> list[NormalizedAppointment]:
        raise NotImplementedError


def is_future(appt: NormalizedAppointment, now: datetime | None = None) -> bool:
    """Appointments that have not happened yet are not synced."""
    now = now or datetime.now(timezone.utc)
    if appt.starts_at is not None and appt.starts_at.tzinfo is not None:
        return appt.starts_at > now
    return appt.appointment_date > now.date()
