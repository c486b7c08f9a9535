"""Database connection pool for ExamBot using PostgreSQL."""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import asyncpg
from loguru import logger

from exambot.constants import Database as DatabaseDefaults
from exambot.core.exceptions import (
    DatabaseNotConnectedError,
    DatabasePoolTimeoutError,
    MissingEnvironmentVariableError,
)
from exambot.models.schema import (
    INDEX_STATEMENTS,
    TABLE_STATEMENTS,
    TABLES_WITH_UPDATED_AT,
    UPDATED_AT_FUNCTION,
    updated_at_trigger,
)
from exambot.utils.masking import mask_database_url


class Database:
    """PostgreSQL database manager with connection pooling."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        pool_size: Optional[int] = None,
        connection_timeout: float = DatabaseDefaults.CONNECTION_TIMEOUT,
    ):
        """
        Initialize database manager.

        Args:
            database_url: PostgreSQL connection URL (defaults to DATABASE_URL env var)
            pool_size: Maximum number of concurrent connections
            connection_timeout: Seconds to wait for a pooled connection

        Raises:
            MissingEnvironmentVariableError: If DATABASE_URL is not set and no
                database_url is provided
        """
        self.database_url = database_url or os.getenv("DATABASE_URL")
        if not self.database_url:
            raise MissingEnvironmentVariableError("DATABASE_URL")
        self.pool: Optional[asyncpg.Pool] = None
        self.pool_size = pool_size or DatabaseDefaults.POOL_SIZE
        self.connection_timeout = connection_timeout
        self._pool_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Establish database connection pool and create tables."""
        async with self._pool_lock:
            try:
                min_pool = max(2, (self.pool_size + 1) // 2)
                self.pool = await asyncpg.create_pool(
                    self.database_url,
                    min_size=min_pool,
                    max_size=self.pool_size,
                    timeout=self.connection_timeout,
                    command_timeout=60.0,
                    max_inactive_connection_lifetime=300.0,
                )

                await self._create_tables()

                logger.info(
                    f"Database connected with pool size {min_pool}-{self.pool_size}: "
                    f"{mask_database_url(self.database_url)}"
                )
            except Exception:
                if self.pool:
                    await self.pool.close()
                    self.pool = None
                raise

    async def close(self) -> None:
        """Close database connection pool."""
        async with self._pool_lock:
            if self.pool:
                await self.pool.close()
                self.pool = None
            logger.info("Database connection pool closed")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @asynccontextmanager
    async def get_connection(self, timeout: Optional[float] = None) -> AsyncIterator[asyncpg.Connection]:
        """
        Get a connection from the pool with timeout.

        Args:
            timeout: Maximum time to wait for a connection

        Yields:
            Database connection from pool

        Raises:
            DatabaseNotConnectedError: If connect() was not called
            DatabasePoolTimeoutError: If connection cannot be acquired within timeout
        """
        if self.pool is None:
            raise DatabaseNotConnectedError()

        timeout = timeout or self.connection_timeout
        try:
            async with self.pool.acquire(timeout=timeout) as conn:
                yield conn
        except asyncio.TimeoutError:
            logger.error(
                f"Database connection pool exhausted "
                f"(timeout: {timeout}s, pool_size: {self.pool_size})"
            )
            raise DatabasePoolTimeoutError(timeout=timeout, pool_size=self.pool_size)

    async def health_check(self) -> bool:
        """
        Perform a health check on the database connection.

        Returns:
            True if database is healthy
        """
        try:
            async with self.get_connection(timeout=5.0) as conn:
                result = await conn.fetchval("SELECT 1")
                return result is not None
        except (DatabaseNotConnectedError, DatabasePoolTimeoutError, asyncpg.PostgresError) as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def _create_tables(self) -> None:
        """
        Create database tables if they don't exist.

        Schema changes are managed via Alembic migrations; this bootstraps the
        baseline for fresh installs.
        """
        if self.pool is None:
            raise DatabaseNotConnectedError()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                for statement in TABLE_STATEMENTS:
                    await conn.execute(statement)

            async with conn.transaction():
                await conn.execute(UPDATED_AT_FUNCTION)
                for table in TABLES_WITH_UPDATED_AT:
                    await conn.execute(updated_at_trigger(table))
                for statement in INDEX_STATEMENTS:
                    await conn.execute(statement)

        logger.info("Database tables created/verified")
