"""Test Acuity / Square payload mapping."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from shearsync.sync.field_mapper import (
    acuity_to_normalized,
    canonicalize_source,
    extract_source_from_forms,
    normalize_service_name,
    apply_payment_totals,
    parse_provider_datetime,
    square_payment_totals,
    square_to_normalized,
)


def _referral_form(value: str, name: str = "How did you hear about us?") -> list[dict]:
    return [{"id": 1, "values": [{"name": name, "value": value}]}]


def test_normalize_service_name():
    assert normalize_service_name(None) == "Haircut"
    assert normalize_service_name("Men's Haircut + Beard") == "Haircut"
    assert normalize_service_name("Kids Cut") == "Kids Haircut"
    assert normalize_service_name("Lineup Only") == "Lineup"
    assert normalize_service_name("Beard Trim") == "Beard"
    assert normalize_service_name("Hot Towel Shave") == "Head Shave"
    assert normalize_service_name(" Color ") == "Color"


def test_canonicalize_source():
    assert canonicalize_source("tik tok") == "TikTok"
    assert canonicalize_source("IG") == "Instagram"
    assert canonicalize_source("walk in") == "Walk-in"
    assert canonicalize_source("Friend") == "Friend"
    assert canonicalize_source("  ") is None


def test_extract_source_from_forms():
    assert extract_source_from_forms(_referral_form("insta")) == "Instagram"
    assert extract_source_from_forms(_referral_form("I'm a returning client")) == "Returning Client"
    assert extract_source_from_forms(_referral_form("Unknown")) is None
    assert extract_source_from_forms(_referral_form("Instagram, TikTok")) is None
    assert extract_source_from_forms(_referral_form("Instagram", name="Allergies")) is None
    assert extract_source_from_forms(None) is None


def test_parse_provider_datetime_basic_offset():
    parsed = parse_provider_datetime("2025-01-05T10:30:00-0500")
    assert parsed is not None
    assert parsed.utcoffset().total_seconds() == -5 * 3600
    assert parse_provider_datetime("not a date") is None


def test_acuity_to_normalized():
    raw = {
        "id": 12345,
        "datetime": "2025-01-05T10:30:00-0500",
        "datetimeCreated": "2024-12-20T08:00:00-0500",
        "email": " Alice@Example.com ",
        "phone": "(416) 555-0000",
        "firstName": " Alice ",
        "lastName": "Smith",
        "type": "Haircut",
        "priceSold": "40.00",
        "tip": "5",
        "notes": "",
        "canceled": False,
        "forms": _referral_form("TikTok"),
    }
    appt = acuity_to_normalized(raw)
    assert appt.external_id == "12345"
    assert appt.appointment_date == date(2025, 1, 5)
    assert appt.date_created == date(2024, 12, 20)
    assert appt.email == "alice@example.com"
    assert appt.phone_normalized == "+14165550000"
    assert appt.first_name == "Alice"
    assert appt.price == Decimal("40.00")
    assert appt.tip == Decimal("5.00")
    assert appt.notes is None
    assert appt.referral_source == "TikTok"
    assert appt.provider == "acuity"


def test_acuity_to_normalized_rejects_bad_datetime():
    assert acuity_to_normalized({"id": 1, "datetime": "garbage"}) is None
    assert acuity_to_normalized({"datetime": "2025-01-05T10:30:00-0500"}) is None


def test_square_to_normalized():
    raw = {
        "id": "bk_1",
        "status": "ACCEPTED",
        "start_at": "2025-02-01T15:00:00Z",
        "created_at": "2025-01-25T12:00:00Z",
        "customer_note": "fade",
        "customer_details": {
            "email_address": "Bob@X.com",
            "given_name": "Bob",
            "family_name": "Ray",
            "phone_number": "+1 416 555 1111",
        },
        "appointment_segments": [
            {
                "service_variation_name": "Skin Fade Haircut",
                "service_variation_price_money": {"amount": 4500, "currency": "USD"},
            }
        ],
    }
    appt = square_to_normalized(raw)
    assert appt.external_id == "bk_1"
    assert appt.appointment_date == date(2025, 2, 1)
    assert appt.phone_normalized == "+14165551111"
    assert appt.email == "bob@x.com"
    assert appt.service_type == "Haircut"
    assert appt.price == Decimal("45.00")
    assert appt.tip == Decimal("0")
    assert appt.canceled is False


def test_square_cancelled_status():
    raw = {"id": "bk_2", "status": "CANCELLED_BY_CUSTOMER", "start_at": "2025-02-01T15:00:00Z"}
    assert square_to_normalized(raw).canceled is True


def test_square_date_follows_location_timezone():
    raw = {"id": "bk_3", "start_at": "2025-01-06T02:00:00Z", "created_at": "2025-01-01T03:00:00Z"}

    local = square_to_normalized(raw, "America/Toronto")
    assert local.appointment_date == date(2025, 1, 5)
    assert local.date_created == date(2024, 12, 31)

    assert square_to_normalized(raw).appointment_date == date(2025, 1, 6)
    assert square_to_normalized(raw, "Not/AZone").appointment_date == date(2025, 1, 6)


def test_square_payment_totals_by_order():
    totals = square_payment_totals([
        {"order_id": "o1", "status": "COMPLETED", "amount_money": {"amount": 3000}, "tip_money": {"amount": 500}},
        {"order_id": "o1", "status": "COMPLETED", "amount_money": {"amount": 1000}},
        {"order_id": "o2", "status": "CANCELED", "amount_money": {"amount": 7000}},
        {"status": "COMPLETED", "amount_money": {"amount": 2000}},
    ])
    assert totals == {"o1": (Decimal("40.00"), Decimal("5.00"))}

    booked = square_to_normalized({
        "id": "bk_4",
        "order_id": "o1",
        "start_at": "2025-02-01T15:00:00Z",
        "appointment_segments": [{"service_variation_price_money": {"amount": 3500}}],
    })
    paid = apply_payment_totals(booked, totals)
    assert (paid.price, paid.tip) == (Decimal("40.00"), Decimal("5.00"))
    assert booked.price == Decimal("35.00")
