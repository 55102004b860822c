"""Comparison keys used to match appointments to client identities.

Keys are literal: hyphens, suffixes, accents and internal
spacing are kept, so "Mary-Jane Watson" and "Mary Jane Watson" only unify
through a shared phone or email.
"""

from __future__ import annotations

import re

from ..schemas.appointment import NormalizedAppointment

_NON_DIGITS = re.compile(r"\D")

MIN_NAME_PART_LENGTH = 2


def normalize_phone(raw: str | None) -> str | None:
    """Return a +1 E.164 phone for North American numbers, else None."""
    if not raw:
        return None
    digits = _NON_DIGITS.sub("", str(raw))
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None


def normalize_email(raw: str | None) -> str | None:
    if raw is None:
        return None
    email = str(raw).strip().lower()
    return email or None


def name_key(first_name: str | None, last_name: str | None) -> str | None:
    """Return "first last" lowercased, or None unless both parts are usable."""
    first = (first_name or "").strip().lower()
    last = (last_name or "").strip().lower()
    if len(first) < MIN_NAME_PART_LENGTH or len(last) < MIN_NAME_PART_LENGTH:
        return None
    return f"{first} {last}"


def appointment_phone(appt: NormalizedAppointment) -> str | None:
    return normalize_phone(appt.phone_normalized) or normalize_phone(appt.phone)


def identity_keys(appt: NormalizedAppointment) -> tuple[str | None, str | None, str | None]:
    """Return (phone, email, name_key) for an appointment."""
    return (
        appointment_phone(appt),
        normalize_email(appt.email),
        name_key(appt.first_name, appt.last_name),
    )


def has_identity(appt: NormalizedAppointment) -> bool:
    return any(identity_keys(appt))
