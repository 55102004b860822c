"""Account model - the tenant root (one business owner)."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TimestampMixin


class Account(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "account"

    name: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    timezone: Mapped[str] = mapped_column(String(50), default="UTC")
    booking_provider: Mapped[str] = mapped_column(String(20), default="acuity")  # acuity/square

    # Relationships
    clients: Mapped[list["Client"]] = relationship(  # noqa: F821
        back_populates="account", cascade="all, delete-orphan"
    )
    sync_statuses: Mapped[list["SyncStatus"]] = relationship(  # noqa: F821
        back_populates="account", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Account {self.slug!r}>"
