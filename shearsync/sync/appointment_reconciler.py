"""Upsert resolved appointments keyed by (account, external_id).

Revenue and tip can be corrected by hand after a sync. Each row keeps the
values the last sync wrote (synced_revenue / synced_tip); when the live value
differs from both that and the fresh source value, it is a manual edit and
is kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.account import Account
from ..models.appointment import Appointment
from ..schemas.appointment import NormalizedAppointment
from ..schemas.sync import AppointmentProcessorResult
from .client_resolver import ClientResolution

logger = logging.getLogger(__name__)

LOOKUP_CHUNK_SIZE = 500


@dataclass
class _AppointmentRow:
    external_id: str
    client_id: str
    provider: str
    appointment_date: date
    starts_at: datetime | None
    date_created: date | None
    service_type: str | None
    referral_source: str | None
    notes: str | None
    revenue: Decimal
    tip: Decimal


def keep_edited_value(
    current: Decimal | None,
    last_synced: Decimal | None,
    incoming: Decimal,
) -> bool:
    """True when the stored value is a manual edit that must survive this sync."""
    if current is None or current == incoming:
        return False
    if last_synced is None:
        return True
    return current != last_synced


class AppointmentReconciler:
    """Builds and writes the appointment upsert payload for one account."""

    def __init__(self, db: AsyncSession, account: Account) -> None:
        self.db = db
        self.account = account
        self._rows: dict[str, _AppointmentRow] = {}
        self._canceled: set[str] = set()
        self._skipped = 0

    def process(
        self,
        appointments: list[NormalizedAppointment],
        resolution: ClientResolution,
    ) -> None:
        for appt in appointments:
            if appt.canceled:
                self._canceled.add(appt.external_id)
                self._rows.pop(appt.external_id, None)
                continue

            client_id = resolution.appointment_to_client.get(appt.external_id)
            if client_id is None:
                self._skipped += 1
                continue

            self._canceled.discard(appt.external_id)
            self._rows[appt.external_id] = _AppointmentRow(
                external_id=appt.external_id,
                client_id=client_id,
                provider=appt.provider,
                appointment_date=appt.appointment_date,
                starts_at=appt.starts_at,
                date_created=appt.date_created,
                service_type=appt.service_type,
                referral_source=appt.referral_source,
                notes=appt.notes,
                revenue=appt.price,
                tip=appt.tip,
            )

    async def upsert(self) -> AppointmentProcessorResult:
        result = AppointmentProcessorResult(
            total_processed=len(self._rows),
            skipped=self._skipped,
        )
        affected: set[str] = set()

        existing = await self._load_existing(list(self._rows) + list(self._canceled))

        for external_id in self._canceled:
            row = existing.get(external_id)
            if row is None:
                continue
            affected.add(row.client_id)
            await self.db.delete(row)
            result.deleted += 1

        for external_id, payload in self._rows.items():
            appt = existing.get(external_id)
            affected.add(payload.client_id)

            if appt is None:
                self.db.add(
                    Appointment(
                        account_id=self.account.id,
                        external_id=external_id,
                        client_id=payload.client_id,
                        provider=payload.provider,
                        appointment_date=payload.appointment_date,
                        starts_at=payload.starts_at,
                        date_created=payload.date_created,
                        service_type=payload.service_type,
                        referral_source=payload.referral_source,
                        notes=payload.notes,
                        revenue=payload.revenue,
                        tip=payload.tip,
                        synced_revenue=payload.revenue,
                        synced_tip=payload.tip,
                    )
                )
                result.inserted += 1
                continue

            if appt.client_id != payload.client_id:
                affected.add(appt.client_id)
            appt.client_id = payload.client_id
            appt.provider = payload.provider
            appt.appointment_date = payload.appointment_date
            appt.starts_at = payload.starts_at
            appt.date_created = payload.date_created
            appt.service_type = payload.service_type
            appt.referral_source = payload.referral_source
            appt.notes = payload.notes

            preserved = False
            if keep_edited_value(appt.revenue, appt.synced_revenue, payload.revenue):
                preserved = True
            else:
                appt.revenue = payload.revenue
            if keep_edited_value(appt.tip, appt.synced_tip, payload.tip):
                preserved = True
            else:
                appt.tip = payload.tip
            appt.synced_revenue = payload.revenue
            appt.synced_tip = payload.tip

            if preserved:
                result.revenue_preserved += 1
            result.updated += 1

        await self.db.flush()
        result.affected_client_ids = sorted(affected)
        logger.info(
            "Appointments upserted for account %s: %d inserted, %d updated, %d preserved, %d deleted",
            self.account.id,
            result.inserted,
            result.updated,
            result.revenue_preserved,
            result.deleted,
        )
        return result

    async def _load_existing(self, external_ids: list[str]) -> dict[str, Appointment]:
        found: dict[str, Appointment] = {}
        for i in range(0, len(external_ids), LOOKUP_CHUNK_SIZE):
            chunk = external_ids[i:i + LOOKUP_CHUNK_SIZE]
            stmt = select(Appointment).where(
                Appointment.account_id == self.account.id,
                Appointment.external_id.in_(chunk),
            )
            result = await self.db.execute(stmt)
            for appt in result.scalars().all():
                found[appt.external_id] = appt
        return found
