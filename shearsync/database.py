"""Async database engine and session factory."""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite leaves FK enforcement (and ON DELETE CASCADE) off per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine; SQLite connections get foreign keys switched on."""
    eng = create_async_engine(url, **kwargs)
    if eng.dialect.name == "sqlite":
        event.listen(eng.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return eng


engine = make_engine(settings.database_url, echo=settings.echo_sql)
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(target: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    from .models import Base

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
