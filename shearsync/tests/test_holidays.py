"""Test holiday calendar helpers."""

from __future__ import annotations

from datetime import date

from shearsync.nudge.holiday_sensitivity import previous_year_window
from shearsync.nudge.holidays import (
    HOLIDAYS,
    get_active_holiday,
    get_holiday_date_range,
    get_previous_year_holiday,
    is_date_in_holiday_window,
)


def test_active_holiday():
    holiday = get_active_holiday(date(2026, 3, 1))
    assert holiday is not None
    assert holiday.id == "spring_break_2026"
    assert get_active_holiday(date(2026, 7, 1)) is None


def test_window_edges_are_inclusive():
    spring_2025 = HOLIDAYS[0]
    assert is_date_in_holiday_window(date(2025, 2, 17), spring_2025)
    assert is_date_in_holiday_window(date(2025, 3, 14), spring_2025)
    assert not is_date_in_holiday_window(date(2025, 3, 15), spring_2025)


def test_window_buffer_extends_both_ends():
    spring_2025 = HOLIDAYS[0]
    assert is_date_in_holiday_window(date(2025, 3, 8), spring_2025, 14)
    assert is_date_in_holiday_window(date(2025, 3, 28), spring_2025, 14)
    assert is_date_in_holiday_window(date(2025, 2, 3), spring_2025, 14)
    assert not is_date_in_holiday_window(date(2025, 3, 29), spring_2025, 14)
    assert not is_date_in_holiday_window(date(2025, 2, 2), spring_2025, 14)
    assert not is_date_in_holiday_window(date(2025, 3, 20), spring_2025)


def test_previous_year_holiday():
    current = get_active_holiday(date(2026, 3, 1))
    previous = get_previous_year_holiday(current)
    assert previous.id == "spring_break_2025"
    assert get_previous_year_holiday(previous) is None


def test_holiday_date_range_buffer():
    assert get_holiday_date_range(HOLIDAYS[0], 14) == (date(2025, 2, 3), date(2025, 3, 28))


def test_previous_year_window():
    holiday, window = previous_year_window(date(2026, 3, 1), buffer_days=14)
    assert holiday.id == "spring_break_2026"
    assert window == (date(2025, 2, 3), date(2025, 3, 28))
    assert previous_year_window(date(2025, 3, 1)) is None
