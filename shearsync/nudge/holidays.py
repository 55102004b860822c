"""Seasonal holiday windows used to boost nudge candidates."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta


@dataclass(frozen=True)
class Holiday:
    id: str
    name: str
    start: date
    end: date
    activation_days_before: int = 0

    @property
    def base_id(self) -> str:
        return self.id.rsplit("_", 1)[0]

    @property
    def year(self) -> int:
        return self.start.year


HOLIDAYS: tuple[Holiday, ...] = (
    Holiday("spring_break_2025", "Spring Break", date(2025, 2, 17), date(2025, 3, 14)),
    Holiday("spring_break_2026", "Spring Break", date(2026, 2, 16), date(2026, 3, 20)),
)


def is_date_in_holiday_window(day: date, holiday: Holiday, buffer_days: int = 0) -> bool:
    """Inclusive check; buffer_days widens the window on both sides."""
    window_start = holiday.start - timedelta(days=holiday.activation_days_before + buffer_days)
    return window_start <= day <= holiday.end + timedelta(days=buffer_days)


def get_active_holiday(today: date, holidays: tuple[Holiday, ...] = HOLIDAYS) -> Holiday | None:
    for holiday in holidays:
        if is_date_in_holiday_window(today, holiday):
            return holiday
    return None


def get_previous_year_holiday(
    holiday: Holiday, holidays: tuple[Holiday, ...] = HOLIDAYS
) -> Holiday | None:
    wanted = f"{holiday.base_id}_{holiday.year - 1}"
    for candidate in holidays:
        if candidate.id == wanted:
            return candidate
    return None


def get_holiday_date_range(holiday: Holiday, buffer_days: int = 0) -> tuple[date, date]:
    return (
        holiday.start - timedelta(days=buffer_days),
        holiday.end + timedelta(days=buffer_days),
    )
