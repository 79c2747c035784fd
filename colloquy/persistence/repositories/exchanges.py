"""
Colloquy Exchange Repository

Per-user log of completed exchanges (prompt plus committed reply).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import structlog

from colloquy.conversation.types import ExchangeRecord
from colloquy.persistence.database import DatabaseManager
from colloquy.persistence.dialects import SQLDialect
from colloquy.persistence.repositories.base import BaseRepository

logger = structlog.get_logger(__name__)


class ExchangeRepository(BaseRepository):
    """Append-only exchange log queried by user."""

    def __init__(
        self,
        db: DatabaseManager,
        dialect: Optional[SQLDialect] = None,
    ):
        super().__init__(db, dialect)

    @property
    def schema(self) -> tuple[str, ...]:
        return self.dialect.create_exchange_schema

    def _deserialize(self, row: dict[str, Any]) -> ExchangeRecord:
        return ExchangeRecord(
            id=row["id"],
            user_id=row["user_id"],
            conversation_id=row["conversation_id"],
            prompt=row["prompt"],
            reply=row["reply"],
            created_at=self._to_datetime(row.get("created_at")) or datetime.now(),
        )

    async def record(self, exchange: ExchangeRecord) -> None:
        await self.initialize()

        async with self.db.transaction() as conn:
            await conn.execute(
                self.dialect.insert_exchange,
                (
                    exchange.user_id,
                    exchange.conversation_id,
                    exchange.prompt,
                    exchange.reply,
                    self._from_datetime(exchange.created_at),
                ),
            )

    async def list_by_user(self, user_id: str) -> list[ExchangeRecord]:
        """Exchanges for a user, oldest first."""
        await self.initialize()
        rows = await self.db.fetch_all(self.dialect.select_exchanges_by_user, (user_id,))
        return [self._deserialize(row) for row in rows]

    async def delete_conversation(self, conversation_id: str) -> None:
        await self.initialize()

        async with self.db.transaction() as conn:
            await conn.execute(self.dialect.delete_exchanges_by_conversation, (conversation_id,))
