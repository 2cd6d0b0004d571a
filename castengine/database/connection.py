"""
Database connection and session management.

The schedule store talks to the database through async sessions
(SQLAlchemy asyncio over aiosqlite for SQLite URLs), so dispatcher ticks
and API requests never block the event loop on I/O. In-memory SQLite uses
a StaticPool so every session sees the same database.
"""

import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from castengine.config import get_config
from castengine.database.models.base import Base

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None


def _get_async_url(url: str) -> str:
    """Convert a sync database URL to its async driver variant."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and ":memory:" in url


def create_db_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with SQLite-friendly pool settings."""
    async_url = _get_async_url(url)
    kwargs: dict = {"echo": echo, "future": True}

    if async_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_sqlite(async_url):
            kwargs["poolclass"] = StaticPool

    engine = create_async_engine(async_url, **kwargs)

    if async_url.startswith("sqlite") and not _is_memory_sqlite(async_url):

        @event.listens_for(engine.sync_engine, "connect")
        def on_connect(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(url: Optional[str] = None, echo: Optional[bool] = None) -> async_sessionmaker:
    """
    Initialize the database and create tables.

    Args:
        url: Database URL, defaults to ``database.url`` from config
        echo: Log SQL, defaults to ``database.echo`` from config

    Returns:
        Session factory bound to the new engine
    """
    global _engine

    if url is None or echo is None:
        config = get_config()
        url = url if url is not None else config.database.url
        echo = echo if echo is not None else config.database.echo

    _engine = create_db_engine(url, echo=echo)
    await create_tables(_engine)
    session_factory = create_session_factory(_engine)

    logger.info(f"Database initialized: {_engine.url.render_as_string(hide_password=True)}")
    return session_factory


async def close_db() -> None:
    """Dispose of the engine."""
    global _engine

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
