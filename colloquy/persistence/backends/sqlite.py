"""
Colloquy SQLite Backend

aiosqlite pool with WAL journaling and a single in-process writer.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Optional

import aiosqlite
import structlog

from colloquy.persistence.config import ConnectionPoolConfig, SQLiteConfig
from colloquy.persistence.database import ConnectionPool, DatabaseConnection

logger = structlog.get_logger(__name__)


def _row_to_dict(cursor: sqlite3.Cursor, row: tuple) -> dict[str, Any]:
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


class SQLiteConnection(DatabaseConnection):
    """aiosqlite connection returning rows as dicts."""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def execute(self, query: str, params: Optional[tuple] = None) -> int:
        cursor = await self._conn.execute(query, params or ())
        return cursor.rowcount

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
        async with self._conn.execute(query, params or ()) as cursor:
            return list(await cursor.fetchall())

    async def commit(self) -> None:
        await self._conn.commit()

    async def rollback(self) -> None:
        await self._conn.rollback()


class SQLiteConnectionPool(ConnectionPool):
    """
    SQLite connection pool.

    WAL lets readers run beside the writer, but SQLite admits one writer at a
    time, so transactions queue on `write_lock` instead of on busy retries.
    An in-memory database is private to its connection, which pins the pool
    to a single connection.
    """

    def __init__(
        self,
        sqlite_config: SQLiteConfig,
        pool_config: ConnectionPoolConfig,
    ):
        if sqlite_config.in_memory:
            pool_config = ConnectionPoolConfig(
                min_connections=1,
                max_connections=1,
                acquire_timeout=pool_config.acquire_timeout,
            )
        super().__init__(pool_config)
        self.sqlite_config = sqlite_config
        self._opened: list[aiosqlite.Connection] = []
        self._idle: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue()
        self._writer = asyncio.Lock()

    @property
    def size(self) -> int:
        return len(self._opened)

    async def initialize(self) -> None:
        if self._opened:
            return

        if not self.sqlite_config.in_memory:
            Path(self.sqlite_config.path).parent.mkdir(parents=True, exist_ok=True)

        for _ in range(self.config.min_connections):
            await self._idle.put(await self._open())

        logger.info(
            "SQLite pool ready",
            path=str(self.sqlite_config.path),
            connections=self.size,
        )

    async def shutdown(self) -> None:
        for conn in self._opened:
            try:
                await conn.close()
            except Exception as e:
                logger.warning("Error closing SQLite connection", error=str(e))

        self._opened.clear()
        self._idle = asyncio.Queue()
        logger.info("SQLite pool closed", path=str(self.sqlite_config.path))

    async def _open(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(
            str(self.sqlite_config.path),
            timeout=self.sqlite_config.busy_timeout / 1000,
        )
        conn.row_factory = _row_to_dict
        for pragma in self.sqlite_config.pragmas():
            await conn.execute(pragma)
        self._opened.append(conn)
        return conn

    async def acquire(self) -> DatabaseConnection:
        """Reuse an idle connection, open another below the bound, else wait."""
        async with self._lock:
            if self._idle.empty() and self.size < self.config.max_connections:
                return SQLiteConnection(await self._open())

        try:
            conn = await asyncio.wait_for(self._idle.get(), timeout=self.config.acquire_timeout)
        except asyncio.TimeoutError:
            raise RuntimeError(
                f"No SQLite connection free after {self.config.acquire_timeout}s"
            ) from None
        return SQLiteConnection(conn)

    async def release(self, conn: DatabaseConnection) -> None:
        if not isinstance(conn, SQLiteConnection):
            return
        try:
            await conn.rollback()
        except Exception as e:
            logger.warning("Rollback on release failed", error=str(e))
        self._idle.put_nowait(conn._conn)

    @asynccontextmanager
    async def write_lock(self) -> AsyncGenerator[None, None]:
        async with self._writer:
            yield
