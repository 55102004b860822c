"""Booking platform adapters.

Usage:
    from shearsync.adapters import get_adapter

    async with get_adapter(account) as adapter:
        appts = await adapter.fetch_appointments(start, end)
"""

from __future__ import annotations

from ..config import settings
from ..errors import AdapterNotConfiguredError
from ..models.account import Account
from .acuity import AcuityAdapter
from .base import BookingAdapter, HTTPBookingAdapter
from .square import SquareAdapter


def get_adapter(account: Account) -> HTTPBookingAdapter:
    """Build the adapter for the account's booking provider from settings."""
    provider = (account.booking_provider or "").strip().lower()
    if provider == "acuity":
        if not settings.acuity_configured:
            raise AdapterNotConfiguredError("Acuity access token is not configured")
        return AcuityAdapter(settings.acuity_access_token, settings.acuity_calendar_id)
    if provider == "square":
        if not settings.square_configured:
            raise AdapterNotConfiguredError("Square access token/location is not configured")
        return SquareAdapter(
            settings.square_access_token,
            settings.square_location_id,
            tz_name=account.timezone,
        )
    raise AdapterNotConfiguredError(f"Unknown booking provider: {account.booking_provider!r}")


__all__ = [
    "AcuityAdapter",
    "BookingAdapter",
    "HTTPBookingAdapter",
    "SquareAdapter",
    "get_adapter",
]
