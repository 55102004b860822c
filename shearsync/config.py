"""shearsync configuration via pydantic-settings."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from pydantic_settings import BaseSettings


class SyncSettings(BaseSettings):
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///shearsync.db"
    echo_sql: bool = False
    log_level: str = "INFO"

    # Acuity Scheduling
    acuity_api_base: str = "https://acuityscheduling.com/api/v1"
    acuity_access_token: str | None = None
    acuity_calendar_id: str | None = None

    # Square Appointments
    square_api_base: str = "https://connect.squareup.com"
    square_access_token: str | None = None
    square_location_id: str | None = None
    square_version: str = "2025-01-23"
    square_max_range_days: int = 31

    request_timeout_seconds: float = 120.0
    tip_total_cap: Decimal = Decimal("999.99")
    account_sync_concurrency: int = 4

    # Month-by-month historical backfill
    backfill_priority_concurrency: int = 3
    backfill_background_concurrency: int = 4
    backfill_priority_retry_delay_seconds: float = 6.0
    backfill_background_retry_base_seconds: float = 2.0
    backfill_background_retry_max_seconds: float = 30.0
    retry_failed_max_retries: int = 3
    retry_failed_concurrency: int = 6

    # Nudge candidate selection
    nudge_strict_boost: int = 500
    nudge_holiday_boost: int = 50
    nudge_holiday_buffer_days: int = 14
    nudge_max_limit: int = 50

    model_config = {"env_prefix": "SHEARSYNC_", "env_file": ".env", "extra": "ignore"}

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent

    @property
    def acuity_configured(self) -> bool:
        return bool(self.acuity_access_token)

    @property
    def square_configured(self) -> bool:
        return bool(self.square_access_token and self.square_location_id)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production"}


settings = SyncSettings()
