"""Sync result schemas."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel


class ClientProcessorResult(BaseModel):
    total_processed: int = 0
    new_clients: int = 0
    existing_clients: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = []


class AppointmentProcessorResult(BaseModel):
    total_processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    revenue_preserved: int = 0
    deleted: int = 0
    affected_client_ids: list[str] = []


class AggregationResult(BaseModel):
    table: str
    rows_upserted: int = 0
    error: str | None = None


class SyncSummary(BaseModel):
    """Counts reported for every pull, including partial failures."""

    account_id: str | None = None
    start: date | None = None
    end: date | None = None
    fetched_at: datetime | None = None
    fetched: int = 0
    resolved: int = 0
    new_clients: int = 0
    appointments_upserted: int = 0
    skipped: int = 0
    revenue_preserved: int = 0
    deleted: int = 0
    failed: int = 0
    dry_run: bool = False
    errors: list[str] = []
    aggregations: list[AggregationResult] = []

    @property
    def success(self) -> bool:
        if any(result.error for result in self.aggregations):
            return False
        return not self.errors and self.failed == 0


class BackfillReport(BaseModel):
    completed: int = 0
    failed: int = 0
    retried: int = 0
    periods: list[str] = []
