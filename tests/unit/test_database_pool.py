"""Tests for the asyncpg connection pool wrapper."""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from exambot.core.exceptions import (
    DatabaseNotConnectedError,
    DatabasePoolTimeoutError,
    MissingEnvironmentVariableError,
)
from exambot.models.database import Database
from exambot.models.schema import INDEX_STATEMENTS, TABLE_STATEMENTS, TABLES_WITH_UPDATED_AT

URL = "postgresql://bot:secret@db:5432/exambot"


def fake_pool(conn=None, acquire_error=None):
    conn = conn or AsyncMock()
    conn.transaction = MagicMock(return_value=AsyncMock())
    pool = MagicMock()
    pool.close = AsyncMock()

    @asynccontextmanager
    async def acquire(timeout=None):
        if acquire_error:
            raise acquire_error
        yield conn

    pool.acquire = acquire
    return pool, conn


class TestDatabase:
    def test_requires_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(MissingEnvironmentVariableError, match="DATABASE_URL"):
            Database()

    def test_url_from_env(self):
        assert Database().database_url == "postgresql://localhost:5432/exambot_test"

    @pytest.mark.asyncio
    async def test_connect_creates_schema(self):
        pool, conn = fake_pool()
        with patch("asyncpg.create_pool", AsyncMock(return_value=pool)) as create_pool:
            db = Database(URL, pool_size=6)
            await db.connect()

        kwargs = create_pool.await_args.kwargs
        assert (kwargs["min_size"], kwargs["max_size"]) == (3, 6)
        statements = [c.args[0] for c in conn.execute.await_args_list]
        expected = len(TABLE_STATEMENTS) + 1 + len(TABLES_WITH_UPDATED_AT) + len(INDEX_STATEMENTS)
        assert len(statements) == expected
        assert db.pool is pool

    @pytest.mark.asyncio
    async def test_connect_failure_closes_pool(self):
        pool, conn = fake_pool()
        conn.execute.side_effect = asyncpg.PostgresError("permission denied")
        with patch("asyncpg.create_pool", AsyncMock(return_value=pool)):
            db = Database(URL)
            with pytest.raises(asyncpg.PostgresError):
                await db.connect()

        pool.close.assert_awaited_once()
        assert db.pool is None

    @pytest.mark.asyncio
    async def test_get_connection_requires_connect(self):
        with pytest.raises(DatabaseNotConnectedError):
            async with Database(URL).get_connection():
                pass

    @pytest.mark.asyncio
    async def test_pool_timeout(self):
        db = Database(URL, pool_size=4)
        db.pool, _ = fake_pool(acquire_error=asyncio.TimeoutError())

        with pytest.raises(DatabasePoolTimeoutError):
            async with db.get_connection(timeout=0.1):
                pass

    @pytest.mark.asyncio
    async def test_health_check(self):
        db = Database(URL)
        assert await db.health_check() is False

        db.pool, conn = fake_pool()
        conn.fetchval.return_value = 1
        assert await db.health_check() is True

    @pytest.mark.asyncio
    async def test_close(self):
        db = Database(URL)
        db.pool, _ = fake_pool()
        pool = db.pool

        await db.close()
        await db.close()

        pool.close.assert_awaited_once()
        assert db.pool is None
