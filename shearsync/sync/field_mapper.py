"""Mapping from raw Acuity / Square payloads to NormalizedAppointment."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..schemas.appointment import NormalizedAppointment
from .identity import normalize_email, normalize_phone

logger = logging.getLogger(__name__)

DEFAULT_PRIMARY_SERVICE = "Haircut"

# Intake-form field names that carry "how did you hear about us"
REFERRAL_KEYWORDS = (
    "referral",
    "referred",
    "hear",
    "heard",
    "source",
    "social",
    "instagram",
    "facebook",
    "tiktok",
    "walking",
    "walk",
)
REFERRAL_FILTER = ("unknown",)
RETURNING_CLIENT = "Returning Client"

_SOURCE_ALIASES: dict[str, str] = {
    "tiktok": "TikTok",
    "tik tok": "TikTok",
    "tik-tok": "TikTok",
    "instagram": "Instagram",
    "insta": "Instagram",
    "ig": "Instagram",
    "facebook": "Facebook",
    "fb": "Facebook",
    "google": "Google",
    "google search": "Google",
    "google maps": "Google",
    "walk": "Walk-in",
    "walking": "Walk-in",
    "walk-in": "Walk-in",
    "walk in": "Walk-in",
    "walk by": "Walk-in",
}

_BASIC_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def normalize_service_name(value: str | None) -> str:
    """Collapse free-form service names into the primary service buckets."""
    name = (value or "").strip().lower()
    if not name:
        return DEFAULT_PRIMARY_SERVICE
    if "haircut" in name:
        return DEFAULT_PRIMARY_SERVICE
    if "kids" in name:
        return "Kids Haircut"
    if "lineup" in name:
        return "Lineup"
    if "beard" in name:
        return "Beard"
    if "shave" in name:
        return "Head Shave"
    return (value or "").strip() or DEFAULT_PRIMARY_SERVICE


def canonicalize_source(raw: str | None) -> str | None:
    if not raw:
        return None
    value = raw.strip()
    if not value:
        return None
    return _SOURCE_ALIASES.get(value.lower(), value)


def extract_source_from_forms(forms: Any) -> str | None:
    """Return the referral source answered on an Acuity intake form, if any."""
    if not isinstance(forms, list):
        return None

    for form in forms:
        values = form.get("values") if isinstance(form, dict) else None
        if not isinstance(values, list):
            continue
        for field in values:
            if not isinstance(field, dict):
                continue
            field_name = str(field.get("name") or "").lower()
            field_value = str(field.get("value") or "").strip()

            if not any(k in field_name for k in REFERRAL_KEYWORDS):
                continue
            # Multi-select answers are ambiguous
            if not field_value or "," in field_value:
                continue

            value_lower = field_value.lower()
            if "return" in value_lower:
                return RETURNING_CLIENT
            if any(k in value_lower for k in REFERRAL_FILTER):
                continue

            canonical = canonicalize_source(field_value)
            if canonical:
                return canonical
    return None


def parse_provider_datetime(value: Any) -> datetime | None:
    """Parse ISO timestamps, including Acuity's "+HHMM" offsets."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _BASIC_OFFSET.sub(r"\1:\2", text)
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _to_decimal(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _date_part(raw: Any, parsed: datetime | None) -> date | None:
    if parsed is not None:
        return parsed.date()
    if isinstance(raw, str) and len(raw) >= 10:
        try:
            return date.fromisoformat(raw[:10])
        except ValueError:
            return None
    return None


def acuity_to_normalized(raw: dict) -> NormalizedAppointment | None:
    """Convert one Acuity /appointments item. Returns None for unusable records."""
    if not isinstance(raw, dict) or raw.get("id") in (None, ""):
        return None

    starts_at = parse_provider_datetime(raw.get("datetime"))
    appt_date = _date_part(raw.get("datetime"), starts_at)
    if appt_date is None:
        logger.warning("Skipping Acuity appointment %s with bad datetime %r", raw.get("id"), raw.get("datetime"))
        return None

    phone = _clean(raw.get("phone"))
    created = parse_provider_datetime(raw.get("datetimeCreated"))

    return NormalizedAppointment(
        external_id=str(raw["id"]),
        starts_at=starts_at,
        appointment_date=appt_date,
        email=normalize_email(raw.get("email")),
        phone=phone,
        phone_normalized=normalize_phone(phone),
        first_name=_clean(raw.get("firstName")),
        last_name=_clean(raw.get("lastName")),
        service_type=normalize_service_name(raw.get("type")),
        price=_to_decimal(raw.get("priceSold")),
        tip=_to_decimal(raw.get("tip")),
        notes=_clean(raw.get("notes")),
        referral_source=extract_source_from_forms(raw.get("forms")),
        date_created=_date_part(raw.get("datetimeCreated"), created),
        canceled=bool(raw.get("canceled")),
        provider="acuity",
    )


def _zone(tz_name: str | None) -> ZoneInfo | None:
    if not tz_name:
        return None
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; using UTC dates", tz_name)
        return None


def local_date(value: datetime | None, tz_name: str | None) -> date | None:
    """Calendar date of an aware timestamp in the given IANA zone (UTC if unset)."""
    if value is None:
        return None
    zone = _zone(tz_name)
    if zone is not None and value.tzinfo is not None:
        return value.astimezone(zone).date()
    return value.date()


def _money(value: Any) -> Decimal:
    """Square money objects carry integer minor units."""
    if not isinstance(value, dict) or not value.get("amount"):
        return Decimal("0")
    return (_to_decimal(value["amount"]) / 100).quantize(Decimal("0.01"))


def square_payment_totals(payments: list[dict]) -> dict[str, tuple[Decimal, Decimal]]:
    """Sum COMPLETED payments per order id into (amount, tip)."""
    totals: dict[str, tuple[Decimal, Decimal]] = {}
    for payment in payments:
        if not isinstance(payment, dict) or payment.get("status") != "COMPLETED":
            continue
        order_id = payment.get("order_id")
        if not order_id:
            continue
        amount, tip = totals.get(order_id, (Decimal("0"), Decimal("0")))
        totals[order_id] = (
            amount + _money(payment.get("amount_money")),
            tip + _money(payment.get("tip_money")),
        )
    return totals


def apply_payment_totals(
    appt: NormalizedAppointment,
    totals: dict[str, tuple[Decimal, Decimal]],
) -> NormalizedAppointment:
    """Replace list price and zero tip with what was actually paid for the booking's order."""
    if not appt.order_id or appt.order_id not in totals:
        return appt
    amount, tip = totals[appt.order_id]
    return appt.model_copy(update={"price": amount, "tip": tip})


def square_to_normalized(raw: dict, tz_name: str | None = None) -> NormalizedAppointment | None:
    """Convert one Square /v2/bookings item. Returns None for unusable records.

    Square timestamps are UTC; the appointment date is taken in the location's
    timezone so evening bookings land on the right day.
    """
    if not isinstance(raw, dict) or not raw.get("id"):
        return None

    starts_at = parse_provider_datetime(raw.get("start_at"))
    appt_date = local_date(starts_at, tz_name) or _date_part(raw.get("start_at"), None)
    if appt_date is None:
        logger.warning("Skipping Square booking %s with bad start_at %r", raw.get("id"), raw.get("start_at"))
        return None

    details = raw.get("customer_details") or {}
    phone = _clean(raw.get("customer_phone") or details.get("phone_number"))

    segments = raw.get("appointment_segments") or []
    segment = segments[0] if segments and isinstance(segments[0], dict) else {}
    price = _money(segment.get("service_variation_price_money"))

    created = parse_provider_datetime(raw.get("created_at"))
    status = str(raw.get("status") or "").upper()

    return NormalizedAppointment(
        external_id=str(raw["id"]),
        starts_at=starts_at,
        appointment_date=appt_date,
        email=normalize_email(details.get("email_address")),
        phone=phone,
        phone_normalized=normalize_phone(phone),
        first_name=_clean(details.get("given_name")),
        last_name=_clean(details.get("family_name")),
        service_type=normalize_service_name(segment.get("service_variation_name")),
        price=price,
        tip=Decimal("0"),
        notes=_clean(raw.get("customer_note")),
        referral_source=None,
        date_created=local_date(created, tz_name),
        order_id=_clean(raw.get("order_id")),
        canceled=status.startswith("CANCELLED") or status == "DECLINED",
        provider="square",
    )
