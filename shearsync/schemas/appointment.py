"""Provider-neutral appointment shape produced by booking adapters."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel


class NormalizedAppointment(BaseModel):
    external_id: str
    starts_at: datetime | None = None
    appointment_date: date
    email: str | None = None
    phone: str | None = None
    phone_normalized: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    service_type: str | None = None
    price: Decimal = Decimal("0")
    tip: Decimal = Decimal("0")
    notes: str | None = None
    referral_source: str | None = None
    date_created: date | None = None
    canceled: bool = False
    provider: str = "acuity"
    order_id: str | None = None  # square only
