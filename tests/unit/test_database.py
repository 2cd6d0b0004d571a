"""
Unit tests for database connection management.
"""

import pytest
from sqlalchemy import inspect

from castengine.database import close_db, create_db_engine, init_db
from castengine.database.connection import _get_async_url


@pytest.mark.unit
class TestAsyncUrl:
    """Tests for _get_async_url()."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("sqlite:///./castengine.db", "sqlite+aiosqlite:///./castengine.db"),
            ("sqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
            ("sqlite+aiosqlite:///x.db", "sqlite+aiosqlite:///x.db"),
        ],
    )
    def test_conversion(self, url, expected):
        assert _get_async_url(url) == expected


@pytest.mark.unit
class TestLifecycle:
    """Tests for init_db()/close_db()."""

    @pytest.mark.asyncio
    async def test_init_creates_tables(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'castengine.db'}"

        session_factory = await init_db(url, echo=False)
        try:
            async with session_factory() as db:
                conn = await db.connection()
                tables = await conn.run_sync(lambda sync: inspect(sync).get_table_names())
        finally:
            await close_db()

        assert "scheduled_broadcasts" in tables
        assert (tmp_path / "castengine.db").exists()

    @pytest.mark.asyncio
    async def test_close_without_init(self):
        await close_db()

    def test_memory_engine_uses_aiosqlite(self):
        engine = create_db_engine("sqlite:///:memory:")

        assert engine.url.drivername == "sqlite+aiosqlite"
