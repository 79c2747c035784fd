"""
Colloquy Persistence Layer

Durable conversation storage with:
- Async connection pooling (SQLite, PostgreSQL)
- Transactions scoped to one conversation
- Per-backend SQL dialects
- Transactional repositories
"""

from colloquy.persistence.config import (
    ConnectionPoolConfig,
    DatabaseBackend,
    PersistenceConfig,
    PostgreSQLConfig,
    SQLiteConfig,
    get_persistence_config,
    set_persistence_config,
)
from colloquy.persistence.database import (
    ConnectionPool,
    DatabaseStats,
    DatabaseConnection,
    DatabaseManager,
)
from colloquy.persistence.dialects import (
    POSTGRESQL_DIALECT,
    SQLITE_DIALECT,
    SQLDialect,
    dialect_for,
)
from colloquy.persistence.repositories import (
    ChatMemoryRepository,
    ExchangeRepository,
)

__all__ = [
    # Config
    "ConnectionPoolConfig",
    "DatabaseBackend",
    "PersistenceConfig",
    "PostgreSQLConfig",
    "SQLiteConfig",
    "get_persistence_config",
    "set_persistence_config",
    # Database
    "ConnectionPool",
    "DatabaseStats",
    "DatabaseConnection",
    "DatabaseManager",
    # Dialects
    "POSTGRESQL_DIALECT",
    "SQLITE_DIALECT",
    "SQLDialect",
    "dialect_for",
    # Repositories
    "ChatMemoryRepository",
    "ExchangeRepository",
]
