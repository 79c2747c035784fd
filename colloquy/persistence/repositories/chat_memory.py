"""
Colloquy Chat Memory Repository

Durable store of full conversation history with:
- All-or-nothing replacement of a conversation's messages
- Retrieval ordered by a per-insert sequence, never by wall clock
- Idempotent deletion
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

import structlog

from colloquy.conversation.types import Message, MessageRole
from colloquy.logging import short_id
from colloquy.persistence.database import DatabaseManager
from colloquy.persistence.dialects import SQLDialect
from colloquy.persistence.repositories.base import BaseRepository

logger = structlog.get_logger(__name__)


class ChatMemoryRepository(BaseRepository):
    """
    Repository for conversation history.

    Rows are keyed by (conversation_id, seq). `replace_all` rewrites a
    conversation inside one transaction, so replaying the same call leaves
    the same final state and a failure leaves the previous history intact.
    """

    def __init__(
        self,
        db: DatabaseManager,
        dialect: Optional[SQLDialect] = None,
    ):
        super().__init__(db, dialect)

    @property
    def schema(self) -> tuple[str, ...]:
        return self.dialect.create_memory_schema

    def _serialize(self, conversation_id: str, seq: int, message: Message) -> tuple:
        return (
            conversation_id,
            seq,
            message.text,
            message.role.value,
            self._from_datetime(message.occurred_at),
        )

    def _deserialize(self, row: dict[str, Any]) -> Message:
        return Message(
            role=MessageRole(row["role"]),
            text=row["content"],
            occurred_at=self._to_datetime(row.get("occurred_at")) or datetime.now(),
        )

    async def list_conversation_ids(self) -> set[str]:
        """All conversation ids with stored history."""
        await self.initialize()
        rows = await self.db.fetch_all(self.dialect.select_conversation_ids)
        return {row["conversation_id"] for row in rows}

    async def load(self, conversation_id: str) -> list[Message]:
        """Full history in insertion order. Unknown ids yield an empty list."""
        _require_id(conversation_id)
        await self.initialize()

        rows = await self.db.fetch_all(self.dialect.select_messages, (conversation_id,))
        return [self._deserialize(row) for row in rows]

    async def replace_all(
        self,
        conversation_id: str,
        messages: Sequence[Message],
    ) -> None:
        """
        Atomically replace a conversation's history.

        Deletes existing rows and inserts `messages` in one transaction.
        Sequence numbers are assigned in insertion order.
        """
        _require_id(conversation_id)
        if messages is None:
            raise ValueError("messages cannot be None")
        if any(m is None for m in messages):
            raise ValueError("messages cannot contain None elements")

        await self.initialize()

        rows = [
            self._serialize(conversation_id, seq, message)
            for seq, message in enumerate(messages)
        ]

        async with self.db.transaction() as conn:
            await conn.execute(self.dialect.delete_messages, (conversation_id,))
            await conn.execute_many(self.dialect.insert_message, rows)

        logger.debug(
            "Conversation history replaced",
            conversation_id=short_id(conversation_id),
            count=len(rows),
        )

    async def delete(self, conversation_id: str) -> None:
        """Remove all messages for a conversation. Unknown ids are a no-op."""
        _require_id(conversation_id)
        await self.initialize()

        async with self.db.transaction() as conn:
            deleted = await conn.execute(self.dialect.delete_messages, (conversation_id,))

        logger.debug(
            "Conversation history deleted",
            conversation_id=short_id(conversation_id),
            count=deleted,
        )


def _require_id(conversation_id: str) -> None:
    if not conversation_id:
        raise ValueError("conversation_id cannot be None or empty")
