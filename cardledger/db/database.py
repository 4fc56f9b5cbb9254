"""
Ledger store engine and per-request sessions.

The default store is a local SQLite file through aiosqlite; any async
SQLAlchemy URL (e.g. postgresql+asyncpg) can be configured instead.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardledger.config import settings
from cardledger.models.db import Base

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    """SQLite ignores ON DELETE CASCADE unless this is set per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if engine.dialect.name == "sqlite":
    event.listen(engine.sync_engine, "connect", enable_sqlite_foreign_keys)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    One request, one transaction.

    Commits when the handler returns and rolls back on any exception, so
    a failed engine call leaves no partial writes behind.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create any missing tables. Called once at startup and by CLI jobs."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
