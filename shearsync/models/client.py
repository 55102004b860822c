"""Client model - a resolved customer identity and its derived aggregates."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, Float, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TimestampMixin, TenantMixin


class Client(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "client"
    __table_args__ = (
        UniqueConstraint("account_id", "client_id", name="uq_client_account_client_id"),
        Index("ix_client_account_phone", "account_id", "phone_normalized"),
        Index("ix_client_account_email", "account_id", "email"),
        Index("ix_client_account_last_appt", "account_id", "last_appt"),
    )

    client_id: Mapped[str] = mapped_column(String(64))
    email: Mapped[str | None] = mapped_column(String(), default=None)
    phone_normalized: Mapped[str | None] = mapped_column(String(32), default=None)
    first_name: Mapped[str | None] = mapped_column(Text, default=None)
    last_name: Mapped[str | None] = mapped_column(Text, default=None)

    first_appt: Mapped[date | None] = mapped_column(Date, default=None)
    second_appt: Mapped[date | None] = mapped_column(Date, default=None)
    last_appt: Mapped[date | None] = mapped_column(Date, default=None)
    first_source: Mapped[str | None] = mapped_column(Text, default=None)
    total_appointments: Mapped[int] = mapped_column(Integer, default=0)
    total_tips_all_time: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("0"))

    # Supplied by the analytics side; read by nudge selection
    visiting_type: Mapped[str | None] = mapped_column(String(30), default=None)
    avg_weekly_visits: Mapped[float | None] = mapped_column(Float, default=None)
    sms_subscribed: Mapped[bool] = mapped_column(Boolean, default=True)
    date_last_sms_sent: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    # Relationships
    account: Mapped["Account"] = relationship(back_populates="clients")  # noqa: F821

    @property
    def full_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or "Unnamed"

    def __repr__(self) -> str:
        return f"<Client {self.client_id!r} {self.full_name!r}>"
