"""Per-month sync status used to resume historical backfills."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, PeriodMixin, UUIDMixin, TimestampMixin, TenantMixin

SYNC_STATUSES = ("pending", "processing", "retrying", "completed", "failed")
SYNC_PHASES = ("priority", "background")


class SyncStatus(UUIDMixin, TimestampMixin, TenantMixin, PeriodMixin, Base):
    """One backfill period (a calendar month) for an account."""

    __tablename__ = "sync_status"
    __table_args__ = (
        UniqueConstraint("account_id", "year", "month", name="uq_sync_status_account_period"),
    )

    status: Mapped[str] = mapped_column(
        String(20), default="pending", index=True
    )  # pending/processing/retrying/completed/failed
    sync_phase: Mapped[str] = mapped_column(String(20), default="background")  # priority/background
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, default=None)
    appointment_count: Mapped[int] = mapped_column(Integer, default=0)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, nullable=True
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, nullable=True
    )

    # Relationships
    account: Mapped["Account"] = relationship(back_populates="sync_statuses")  # noqa: F821

    def __repr__(self) -> str:
        return f"<SyncStatus {self.period} {self.status}>"
