"""Weekly availability figures consumed before triggering a nudge campaign."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field


class AvailabilitySnapshot(BaseModel):
    week_start: date
    open_slots: int = Field(default=0, ge=0)
    estimated_revenue_per_slot: Decimal | None = None

    @property
    def should_nudge(self) -> bool:
        return self.open_slots > 0

    @property
    def estimated_open_revenue(self) -> Decimal | None:
        if self.estimated_revenue_per_slot is None:
            return None
        return self.estimated_revenue_per_slot * self.open_slots
