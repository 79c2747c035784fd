"""
Colloquy SQL Dialects

Parameterized query templates for each supported backend, selected once
when a repository is built.
"""

from __future__ import annotations

from dataclasses import dataclass

from colloquy.persistence.config import DatabaseBackend


@dataclass(frozen=True)
class SQLDialect:
    """Query templates in the backend's native placeholder style."""
    name: str

    # chat_memory
    create_memory_schema: tuple[str, ...]
    select_conversation_ids: str
    select_messages: str
    insert_message: str
    delete_messages: str

    # chat_exchanges
    create_exchange_schema: tuple[str, ...]
    insert_exchange: str
    select_exchanges_by_user: str
    delete_exchanges_by_conversation: str


SQLITE_DIALECT = SQLDialect(
    name="sqlite",
    create_memory_schema=(
        """
        CREATE TABLE IF NOT EXISTS chat_memory (
            conversation_id TEXT NOT NULL,
            seq INTEGER NOT NULL,
            content TEXT NOT NULL,
            role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'system', 'tool')),
            occurred_at TEXT NOT NULL,
            PRIMARY KEY (conversation_id, seq)
        )
        """,
    ),
    select_conversation_ids="SELECT DISTINCT conversation_id FROM chat_memory",
    select_messages=(
        "SELECT content, role, occurred_at FROM chat_memory "
        "WHERE conversation_id = ? ORDER BY seq ASC"
    ),
    insert_message=(
        "INSERT INTO chat_memory (conversation_id, seq, content, role, occurred_at) "
        "VALUES (?, ?, ?, ?, ?)"
    ),
    delete_messages="DELETE FROM chat_memory WHERE conversation_id = ?",
    create_exchange_schema=(
        """
        CREATE TABLE IF NOT EXISTS chat_exchanges (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            conversation_id TEXT NOT NULL,
            prompt TEXT NOT NULL,
            reply TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_chat_exchanges_user ON chat_exchanges (user_id, id)",
    ),
    insert_exchange=(
        "INSERT INTO chat_exchanges (user_id, conversation_id, prompt, reply, created_at) "
        "VALUES (?, ?, ?, ?, ?)"
    ),
    select_exchanges_by_user=(
        "SELECT id, user_id, conversation_id, prompt, reply, created_at "
        "FROM chat_exchanges WHERE user_id = ? ORDER BY id ASC"
    ),
    delete_exchanges_by_conversation="DELETE FROM chat_exchanges WHERE conversation_id = ?",
)


POSTGRESQL_DIALECT = SQLDialect(
    name="postgresql",
    create_memory_schema=(
        """
        CREATE TABLE IF NOT EXISTS chat_memory (
            conversation_id TEXT NOT NULL,
            seq BIGINT NOT NULL,
            content TEXT NOT NULL,
            role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'system', 'tool')),
            occurred_at TEXT NOT NULL,
            PRIMARY KEY (conversation_id, seq)
        )
        """,
    ),
    select_conversation_ids="SELECT DISTINCT conversation_id FROM chat_memory",
    select_messages=(
        "SELECT content, role, occurred_at FROM chat_memory "
        "WHERE conversation_id = $1 ORDER BY seq ASC"
    ),
    insert_message=(
        "INSERT INTO chat_memory (conversation_id, seq, content, role, occurred_at) "
        "VALUES ($1, $2, $3, $4, $5)"
    ),
    delete_messages="DELETE FROM chat_memory WHERE conversation_id = $1",
    create_exchange_schema=(
        """
        CREATE TABLE IF NOT EXISTS chat_exchanges (
            id BIGSERIAL PRIMARY KEY,
            user_id TEXT NOT NULL,
            conversation_id TEXT NOT NULL,
            prompt TEXT NOT NULL,
            reply TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_chat_exchanges_user ON chat_exchanges (user_id, id)",
    ),
    insert_exchange=(
        "INSERT INTO chat_exchanges (user_id, conversation_id, prompt, reply, created_at) "
        "VALUES ($1, $2, $3, $4, $5)"
    ),
    select_exchanges_by_user=(
        "SELECT id, user_id, conversation_id, prompt, reply, created_at "
        "FROM chat_exchanges WHERE user_id = $1 ORDER BY id ASC"
    ),
    delete_exchanges_by_conversation="DELETE FROM chat_exchanges WHERE conversation_id = $1",
)


def dialect_for(backend: DatabaseBackend) -> SQLDialect:
    """Select the query templates for a backend."""
    if backend == DatabaseBackend.POSTGRESQL:
        return POSTGRESQL_DIALECT
    return SQLITE_DIALECT
