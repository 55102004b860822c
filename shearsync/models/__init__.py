"""shearsync models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, TimestampMixin, TenantMixin
from .account import Account
from .client import Client
from .appointment import Appointment
from .sync_status import SyncStatus
from .analytics import (
    DailyData,
    MarketingFunnel,
    MonthlyData,
    MonthlyTopClient,
    ServiceBooking,
    WeeklyData,
)

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "TenantMixin",
    "Account",
    "Client",
    "Appointment",
    "SyncStatus",
    "DailyData",
    "WeeklyData",
    "MonthlyData",
    "MonthlyTopClient",
    "ServiceBooking",
    "MarketingFunnel",
]
