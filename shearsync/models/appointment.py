"""Appointment model - one row per external booking."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKeyConstraint,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin, TenantMixin


class Appointment(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "appointment"
    __table_args__ = (
        UniqueConstraint("account_id", "external_id", name="uq_appointment_account_external_id"),
        ForeignKeyConstraint(
            ["account_id", "client_id"],
            ["client.account_id", "client.client_id"],
            ondelete="CASCADE",
        ),
        Index("ix_appointment_account_client", "account_id", "client_id"),
        Index("ix_appointment_account_date", "account_id", "appointment_date"),
    )

    external_id: Mapped[str] = mapped_column(String())
    client_id: Mapped[str] = mapped_column(String(64))
    provider: Mapped[str] = mapped_column(String(20), default="acuity")
    appointment_date: Mapped[date] = mapped_column(Date)
    starts_at: Mapped[datetime | None] = mapped_column(
        "datetime", DateTime(timezone=True), default=None
    )
    date_created: Mapped[date | None] = mapped_column(Date, default=None)
    service_type: Mapped[str | None] = mapped_column(Text, default=None)
    referral_source: Mapped[str | None] = mapped_column(Text, default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)

    # revenue/tip may be hand-edited; synced_* hold what the last sync wrote
    revenue: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), default=None)
    tip: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), default=None)
    synced_revenue: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), default=None)
    synced_tip: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), default=None)

    def __repr__(self) -> str:
        return f"<Appointment {self.external_id!r} {self.appointment_date}>"
