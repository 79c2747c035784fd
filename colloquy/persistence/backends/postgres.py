"""
Colloquy PostgreSQL Backend

asyncpg pool. Every acquired connection opens a transaction that the
database manager commits; release rolls back whatever was not committed.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import asyncpg
import structlog

from colloquy.persistence.config import ConnectionPoolConfig, PostgreSQLConfig
from colloquy.persistence.database import ConnectionPool, DatabaseConnection

logger = structlog.get_logger(__name__)


def _affected_rows(status: Optional[str]) -> int:
    """Row count from a command tag such as "DELETE 3" or "INSERT 0 1"."""
    if not status:
        return 0
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


class PostgreSQLConnection(DatabaseConnection):
    """asyncpg connection with the transaction opened for it."""

    def __init__(self, conn: asyncpg.Connection, transaction: Optional[Any] = None):
        self._conn = conn
        self._transaction = transaction

    async def execute(self, query: str, params: Optional[tuple] = None) -> int:
        return _affected_rows(await self._conn.execute(query, *(params or ())))

    async def execute_many(self, query: str, params_list: list[tuple]) -> int:
        if not params_list:
            return 0
        await self._conn.executemany(query, params_list)
        return len(params_list)

    async def fetch_all(
        self,
        query: str,
        params: Optional[tuple] = None,
    ) -> list[dict[str, Any]]:
        return [dict(record) for record in await self._conn.fetch(query, *(params or ()))]

    async def _finish(self, commit: bool) -> None:
        transaction, self._transaction = self._transaction, None
        if transaction is None:
            return
        if commit:
            await transaction.commit()
        else:
            await transaction.rollback()

    async def commit(self) -> None:
        await self._finish(commit=True)

    async def rollback(self) -> None:
        await self._finish(commit=False)


class PostgreSQLConnectionPool(ConnectionPool):
    """Adapts an asyncpg pool to the ConnectionPool interface."""

    def __init__(
        self,
        pg_config: PostgreSQLConfig,
        pool_config: ConnectionPoolConfig,
    ):
        super().__init__(pool_config)
        self.pg_config = pg_config
        self._pool: Optional[asyncpg.Pool] = None

    async def initialize(self) -> None:
        if self._pool is not None:
            return

        self._pool = await asyncpg.create_pool(
            dsn=self.pg_config.dsn,
            min_size=self.config.min_connections,
            max_size=self.config.max_connections,
            command_timeout=self.pg_config.command_timeout,
        )
        logger.info(
            "PostgreSQL pool ready",
            host=self.pg_config.host,
            database=self.pg_config.database,
            size=self._pool.get_size(),
        )

    async def shutdown(self) -> None:
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        logger.info("PostgreSQL pool closed", host=self.pg_config.host)

    async def acquire(self) -> DatabaseConnection:
        if self._pool is None:
            raise RuntimeError("PostgreSQL pool is not initialized")

        try:
            conn = await self._pool.acquire(timeout=self.config.acquire_timeout)
        except asyncio.TimeoutError:
            raise RuntimeError(
                f"No PostgreSQL connection free after {self.config.acquire_timeout}s"
            ) from None

        try:
            transaction = conn.transaction()
            await transaction.start()
        except BaseException:
            await self._pool.release(conn)
            raise

        return PostgreSQLConnection(conn, transaction)

    async def release(self, conn: DatabaseConnection) -> None:
        if not isinstance(conn, PostgreSQLConnection) or self._pool is None:
            return
        try:
            await conn.rollback()
        except Exception as e:
            logger.warning("Rollback on release failed", error=str(e))
        finally:
            await self._pool.release(conn._conn)
