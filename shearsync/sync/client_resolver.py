"""Resolve normalized appointments to stable client identities.

Appointments are processed one by one in input order. Each is matched to a
client by normalized phone, then email, then name key; the first hit wins.
A client minted earlier in the batch is matchable by any of its keys, so
records can chain (phone -> phone+email -> email) into one identity.
Sharing a single signal is enough to merge, including a shared family phone.
Canceled bookings carry no identity here; the reconciler removes them.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.account import Account
from ..models.client import Client
from ..schemas.appointment import NormalizedAppointment
from ..schemas.sync import ClientProcessorResult
from .identity import identity_keys, name_key

logger = logging.getLogger(__name__)


@dataclass
class ClientResolution:
    clients: dict[str, Client] = field(default_factory=dict)
    appointment_to_client: dict[str, str] = field(default_factory=dict)
    new_client_ids: set[str] = field(default_factory=set)
    result: ClientProcessorResult = field(default_factory=ClientProcessorResult)


@dataclass
class _MergeState:
    """Per-client bookkeeping for one resolve pass."""

    days: set[date] = field(default_factory=set)
    newest: date | None = None
    source_date: date | None = None

    @classmethod
    def from_client(cls, client: Client) -> "_MergeState":
        days = {d for d in (client.first_appt, client.second_appt, client.last_appt) if d}
        return cls(
            days=days,
            newest=client.last_appt,
            source_date=client.first_appt if client.first_source else None,
        )


class ClientResolver:
    """Assigns appointments to clients for one account."""

    def __init__(self, db: AsyncSession, account: Account) -> None:
        self.db = db
        self.account = account
        self._by_phone: dict[str, Client] = {}
        self._by_email: dict[str, Client] = {}
        self._by_name: dict[str, Client] = {}
        self._states: dict[str, _MergeState] = {}
        self._loaded = False

    async def load_existing(self) -> int:
        """Preload the account's clients into the lookup maps."""
        stmt = (
            select(Client)
            .where(Client.account_id == self.account.id)
            .order_by(Client.created_at.asc())
        )
        result = await self.db.execute(stmt)
        clients = list(result.scalars().all())
        for client in clients:
            name = name_key(client.first_name, client.last_name)
            self._register(client, client.phone_normalized, client.email, name)
        self._loaded = True
        logger.debug("Loaded %d existing clients for account %s", len(clients), self.account.id)
        return len(clients)

    async def resolve(self, appointments: list[NormalizedAppointment]) -> ClientResolution:
        if not self._loaded:
            await self.load_existing()

        resolution = ClientResolution()
        result = resolution.result
        existing_touched: set[str] = set()

        for appt in appointments:
            if appt.canceled:
                continue
            try:
                phone, email, name = identity_keys(appt)
                if not (phone or email or name):
                    result.skipped += 1
                    continue

                client = self._match(phone, email, name)
                minted = client is None
                if minted:
                    client = self._mint(appt)

                self._merge(client, appt, phone, email)
                self._register(client, phone, email, name)
                if minted:
                    resolution.new_client_ids.add(client.client_id)
                elif client.client_id not in resolution.new_client_ids:
                    existing_touched.add(client.client_id)
                resolution.clients[client.client_id] = client
                resolution.appointment_to_client[appt.external_id] = client.client_id
                result.total_processed += 1
            except Exception as exc:
                logger.exception("Failed to resolve appointment %s", appt.external_id)
                result.failed += 1
                result.errors.append(f"{appt.external_id}: {exc}")

        result.new_clients = len(resolution.new_client_ids)
        result.existing_clients = len(existing_touched)
        return resolution

    async def persist(self, resolution: ClientResolution) -> None:
        """Stage new clients and flush merged attributes."""
        for client_id in resolution.new_client_ids:
            self.db.add(resolution.clients[client_id])
        await self.db.flush()

    def _match(self, phone: str | None, email: str | None, name: str | None) -> Client | None:
        if phone and phone in self._by_phone:
            return self._by_phone[phone]
        if email and email in self._by_email:
            return self._by_email[email]
        if name and name in self._by_name:
            return self._by_name[name]
        return None

    def _register(
        self,
        client: Client,
        phone: str | None,
        email: str | None,
        name: str | None,
    ) -> None:
        if phone:
            self._by_phone[phone] = client
        if email:
            self._by_email[email] = client
        if name and name not in self._by_name:
            self._by_name[name] = client

    def _mint(self, appt: NormalizedAppointment) -> Client:
        client = Client(
            id=uuid.uuid4(),
            account_id=self.account.id,
            client_id=uuid.uuid4().hex,
            total_appointments=0,
            total_tips_all_time=Decimal("0"),
            sms_subscribed=True,
        )
        self._states[client.client_id] = _MergeState()
        return client

    def _merge(
        self,
        client: Client,
        appt: NormalizedAppointment,
        phone: str | None,
        email: str | None,
    ) -> None:
        state = self._states.get(client.client_id)
        if state is None:
            state = _MergeState.from_client(client)
            self._states[client.client_id] = state

        day = appt.appointment_date
        state.days.add(day)

        # Display identity follows the newest visit; blanks never erase values.
        if state.newest is None or day >= state.newest:
            state.newest = day
            if email:
                client.email = email
            if phone:
                client.phone_normalized = phone
            # A junk name ("Juan .") never replaces a usable one
            incoming_valid = name_key(appt.first_name, appt.last_name) is not None
            if incoming_valid or name_key(client.first_name, client.last_name) is None:
                if appt.first_name and appt.first_name.strip():
                    client.first_name = appt.first_name.strip()
                if appt.last_name and appt.last_name.strip():
                    client.last_name = appt.last_name.strip()

        if appt.referral_source and (state.source_date is None or day < state.source_date):
            client.first_source = appt.referral_source
            state.source_date = day

        ordered = sorted(state.days)
        client.first_appt = ordered[0]
        client.second_appt = ordered[1] if len(ordered) > 1 else None
        client.last_appt = ordered[-1]
