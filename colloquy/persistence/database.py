"""
Colloquy Database Access

Thin async layer under the repositories:
- Bounded connection pool per backend
- `transaction()` scoped to one unit of work (one conversation)
- Rollback on any exit other than normal completion
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional

import structlog

from colloquy.persistence.config import (
    ConnectionPoolConfig,
    DatabaseBackend,
    PersistenceConfig,
)

logger = structlog.get_logger(__name__)


@dataclass
class DatabaseStats:
    """Counters for statements and transactions."""
    queries: int = 0
    failed_queries: int = 0
    transactions_committed: int = 0
    transactions_rolled_back: int = 0
    transactions_cancelled: int = 0


class DatabaseConnection(ABC):
    """One pooled connection as seen by repositories."""

    @abstractmethod
    async def execute(self, query: str, params: Optional[tuple] = None) -> int:
        """Run a statement and return the affected row count."""

    @abstractmethod
    async def execute_many(self, query: str, params_list: list[tuple]) -> int:
        """Run a statement once per parameter tuple."""

    @abstractmethod
    async def fetch_all(
        self,
        query: str,
        params: Optional[tuple] = None,
    ) -> list[dict[str, Any]]:
        """Run a query and return its rows as dicts."""

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...


class ConnectionPool(ABC):
    """Bounded pool of DatabaseConnections."""

    def __init__(self, config: ConnectionPoolConfig):
        self.config = config
        self._lock = asyncio.Lock()

    @abstractmethod
    async def initialize(self) -> None:
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        ...

    @abstractmethod
    async def acquire(self) -> DatabaseConnection:
        """Take a connection, raising RuntimeError once `acquire_timeout` passes."""

    @abstractmethod
    async def release(self, conn: DatabaseConnection) -> None:
        """Return a connection, discarding anything left uncommitted."""

    @asynccontextmanager
    async def write_lock(self) -> AsyncGenerator[None, None]:
        """Serialize writers. Backends with concurrent writers need nothing."""
        yield

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[DatabaseConnection, None]:
        conn = await self.acquire()
        try:
            yield conn
        finally:
            await self.release(conn)


class DatabaseManager:
    """
    Owns the pool for the configured backend.

    Backends are imported lazily so that only the selected driver is needed.
    The pool is created on first use if `initialize` was not called.
    """

    def __init__(self, config: Optional[PersistenceConfig] = None):
        self.config = config or PersistenceConfig()
        self._pool: Optional[ConnectionPool] = None
        self._stats = DatabaseStats()
        self._lock = asyncio.Lock()
        self._initialized = False

    @property
    def backend(self) -> DatabaseBackend:
        return self.config.backend

    @property
    def stats(self) -> DatabaseStats:
        return self._stats

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            logger.info("Initializing database", backend=self.backend.value)

            if self.backend == DatabaseBackend.POSTGRESQL:
                from colloquy.persistence.backends.postgres import PostgreSQLConnectionPool
                self._pool = PostgreSQLConnectionPool(self.config.postgresql, self.config.pool)
            else:
                from colloquy.persistence.backends.sqlite import SQLiteConnectionPool
                from colloquy.persistence.config import SQLiteConfig
                sqlite_config = (
                    SQLiteConfig(path=":memory:")
                    if self.backend == DatabaseBackend.MEMORY
                    else self.config.sqlite
                )
                self._pool = SQLiteConnectionPool(sqlite_config, self.config.pool)

            await self._pool.initialize()
            self._initialized = True

    async def shutdown(self) -> None:
        if not self._initialized:
            return

        async with self._lock:
            if self._pool:
                await self._pool.shutdown()
                self._pool = None

            self._initialized = False
            logger.info("Database shut down", backend=self.backend.value)

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[DatabaseConnection, None]:
        if not self._initialized:
            await self.initialize()

        async with self._pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[DatabaseConnection, None]:
        """
        Run a block on one connection inside one transaction.

        Commits when the block exits normally. Errors and cancellation both
        roll back every statement issued in the block; only errors are
        logged as failures.
        """
        async with self.connection() as conn:
            async with self._pool.write_lock():
                try:
                    yield conn
                    await conn.commit()
                except (asyncio.CancelledError, GeneratorExit):
                    await self._rollback(conn)
                    self._stats.transactions_cancelled += 1
                    raise
                except BaseException as e:
                    await self._rollback(conn)
                    self._stats.transactions_rolled_back += 1
                    logger.warning("Transaction rolled back", error=repr(e))
                    raise

        self._stats.transactions_committed += 1

    async def _rollback(self, conn: DatabaseConnection) -> None:
        try:
            await conn.rollback()
        except Exception as e:
            # The pool rolls back again on release
            logger.warning("Rollback failed", error=str(e))

    async def execute(self, query: str, params: Optional[tuple] = None) -> int:
        """Run a single statement in its own transaction."""
        async with self.transaction() as conn:
            return await self._timed(conn.execute(query, params), query)

    async def fetch_all(
        self,
        query: str,
        params: Optional[tuple] = None,
    ) -> list[dict[str, Any]]:
        async with self.connection() as conn:
            return await self._timed(conn.fetch_all(query, params), query)

    async def fetch_one(
        self,
        query: str,
        params: Optional[tuple] = None,
    ) -> Optional[dict[str, Any]]:
        rows = await self.fetch_all(query, params)
        return rows[0] if rows else None

    async def _timed(self, operation: Any, query: str) -> Any:
        start_time = time.time()
        self._stats.queries += 1
        try:
            return await operation
        except Exception as e:
            self._stats.failed_queries += 1
            logger.warning("Query failed", query=query.split()[0], error=str(e))
            raise
        finally:
            duration_ms = (time.time() - start_time) * 1000
            if duration_ms > self.config.slow_query_threshold_ms:
                logger.info("Slow query", query=query.split()[0], duration_ms=round(duration_ms, 2))

    async def health_check(self) -> dict[str, Any]:
        try:
            row = await self.fetch_one("SELECT 1 AS ok")
            healthy = row is not None
            error = None
        except Exception as e:
            healthy = False
            error = str(e)

        return {
            "healthy": healthy,
            "backend": self.backend.value,
            "error": error,
            "stats": self._stats,
        }
