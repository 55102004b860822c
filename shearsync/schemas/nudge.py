"""Nudge candidate selection schemas."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class ScoredClient(BaseModel):
    client_id: str
    phone_normalized: str
    display_name: str
    visiting_type: str | None = None
    last_appt: date
    days_since_last_visit: int
    expected_visit_interval_days: int
    days_overdue: int
    score: float
    phase: str  # strict/lenient
    holiday_cohort: bool = False


class SelectionResult(BaseModel):
    clients: list[ScoredClient] = []
    total_available_clients: int = 0
