"""
Colloquy Base Repository

Shared plumbing for SQL-backed repositories:
- Dialect selection from the database backend
- Idempotent schema creation
- Serialization helpers
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import structlog

from colloquy.persistence.database import DatabaseManager
from colloquy.persistence.dialects import SQLDialect, dialect_for

logger = structlog.get_logger(__name__)


class BaseRepository(ABC):
    """Base class for repositories backed by a DatabaseManager."""

    def __init__(
        self,
        db: DatabaseManager,
        dialect: Optional[SQLDialect] = None,
    ):
        self.db = db
        self.dialect = dialect or dialect_for(db.backend)
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    @property
    @abstractmethod
    def schema(self) -> tuple[str, ...]:
        """DDL statements creating this repository's tables."""

    async def initialize(self) -> None:
        """Create tables if they do not exist yet."""
        if self._schema_ready:
            return

        async with self._schema_lock:
            if self._schema_ready:
                return

            async with self.db.transaction() as conn:
                for ddl in self.schema:
                    await conn.execute(ddl)

            self._schema_ready = True
            logger.debug(
                "Schema ready",
                repository=type(self).__name__,
                dialect=self.dialect.name,
            )

    @staticmethod
    def _to_datetime(s: Optional[str]) -> Optional[datetime]:
        """Parse datetime string."""
        if not s:
            return None
        if isinstance(s, datetime):
            return s
        try:
            return datetime.fromisoformat(s)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _from_datetime(dt: Optional[datetime]) -> Optional[str]:
        """Convert datetime to ISO string."""
        if not dt:
            return None
        return dt.isoformat()
