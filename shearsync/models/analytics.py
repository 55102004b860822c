"""Rolled-up reporting tables rebuilt from appointments after each pull."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import JSON, Date, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, PeriodMixin, UUIDMixin, TimestampMixin, TenantMixin


class DailyData(UUIDMixin, TimestampMixin, TenantMixin, PeriodMixin, Base):
    __tablename__ = "daily_data"
    __table_args__ = (
        UniqueConstraint("account_id", "day", name="uq_daily_data_account_day"),
    )

    day: Mapped[date] = mapped_column(Date)
    num_appointments: Mapped[int] = mapped_column(Integer, default=0)
    total_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    tips: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    final_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<DailyData {self.day} n={self.num_appointments}>"


class WeeklyData(UUIDMixin, TimestampMixin, TenantMixin, PeriodMixin, Base):
    """Monday-Sunday week, filed under the month its Monday falls in."""

    __tablename__ = "weekly_data"
    __table_args__ = (
        UniqueConstraint("account_id", "week_start", name="uq_weekly_data_account_week"),
    )

    week_start: Mapped[date] = mapped_column(Date)
    week_end: Mapped[date] = mapped_column(Date)
    week_number: Mapped[int] = mapped_column(Integer)  # 1-5 within the month
    num_appointments: Mapped[int] = mapped_column(Integer, default=0)
    total_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    tips: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    new_clients: Mapped[int] = mapped_column(Integer, default=0)
    returning_clients: Mapped[int] = mapped_column(Integer, default=0)


class MonthlyData(UUIDMixin, TimestampMixin, TenantMixin, PeriodMixin, Base):
    __tablename__ = "monthly_data"
    __table_args__ = (
        UniqueConstraint("account_id", "year", "month", name="uq_monthly_data_account_period"),
    )

    num_appointments: Mapped[int] = mapped_column(Integer, default=0)
    total_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    tips: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    final_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    avg_ticket: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    unique_clients: Mapped[int] = mapped_column(Integer, default=0)
    new_clients: Mapped[int] = mapped_column(Integer, default=0)
    returning_clients: Mapped[int] = mapped_column(Integer, default=0)


class MonthlyTopClient(UUIDMixin, TimestampMixin, TenantMixin, PeriodMixin, Base):
    __tablename__ = "monthly_top_client"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "year", "month", "client_id", name="uq_monthly_top_client_period_client"
        ),
    )

    client_id: Mapped[str] = mapped_column(String(64))
    client_name: Mapped[str] = mapped_column(Text)
    total_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    num_visits: Mapped[int] = mapped_column(Integer, default=0)


class ServiceBooking(UUIDMixin, TimestampMixin, TenantMixin, PeriodMixin, Base):
    __tablename__ = "service_booking"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "year", "month", "service_name", name="uq_service_booking_period_service"
        ),
    )

    service_name: Mapped[str] = mapped_column(Text)
    bookings: Mapped[int] = mapped_column(Integer, default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))


class MarketingFunnel(UUIDMixin, TimestampMixin, TenantMixin, PeriodMixin, Base):
    """New clients per first-visit month, grouped by where they heard of the shop."""

    __tablename__ = "marketing_funnel"
    __table_args__ = (
        UniqueConstraint("account_id", "year", "month", "source", name="uq_marketing_funnel_period_source"),
    )

    source: Mapped[str] = mapped_column(Text)
    new_clients: Mapped[int] = mapped_column(Integer, default=0)
    client_names: Mapped[list | None] = mapped_column(JSON, default=None)
    first_visit_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    avg_ticket: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
