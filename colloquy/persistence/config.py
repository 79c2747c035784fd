"""
Colloquy Persistence Configuration

Where conversation history is stored and how many connections may reach it.
Read from `COLLOQUY_DB_*`, `COLLOQUY_SQLITE_*`, `COLLOQUY_PG_*` and
`COLLOQUY_POOL_*` environment variables by `PersistenceConfig.from_env`.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class DatabaseBackend(str, Enum):
    """Supported database backends."""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MEMORY = "memory"  # private in-memory SQLite


@dataclass
class ConnectionPoolConfig:
    """Bounds on concurrent database access."""
    min_connections: int = 1
    max_connections: int = 10
    acquire_timeout: float = 30.0


@dataclass
class SQLiteConfig:
    path: Path = field(default_factory=lambda: Path("./data/colloquy.db"))
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    busy_timeout: int = 30000  # ms

    @property
    def in_memory(self) -> bool:
        return str(self.path) == ":memory:"

    def pragmas(self) -> list[str]:
        return [
            f"PRAGMA journal_mode = {self.journal_mode}",
            f"PRAGMA synchronous = {self.synchronous}",
            f"PRAGMA busy_timeout = {self.busy_timeout}",
        ]


@dataclass
class PostgreSQLConfig:
    host: str = "localhost"
    port: int = 5432
    database: str = "colloquy"
    user: str = "colloquy"
    password: str = ""
    command_timeout: float = 30.0

    @property
    def dsn(self) -> str:
        auth = f"{self.user}:{self.password}" if self.password else self.user
        return f"postgresql://{auth}@{self.host}:{self.port}/{self.database}"


_ENV_FIELDS: dict[str, tuple[str, str, type]] = {
    "COLLOQUY_SQLITE_PATH": ("sqlite", "path", Path),
    "COLLOQUY_PG_HOST": ("postgresql", "host", str),
    "COLLOQUY_PG_PORT": ("postgresql", "port", int),
    "COLLOQUY_PG_DATABASE": ("postgresql", "database", str),
    "COLLOQUY_PG_USER": ("postgresql", "user", str),
    "COLLOQUY_PG_PASSWORD": ("postgresql", "password", str),
    "COLLOQUY_POOL_MIN": ("pool", "min_connections", int),
    "COLLOQUY_POOL_MAX": ("pool", "max_connections", int),
    "COLLOQUY_POOL_ACQUIRE_TIMEOUT": ("pool", "acquire_timeout", float),
}


@dataclass
class PersistenceConfig:
    """Backend selection plus the settings of each backend."""
    backend: DatabaseBackend = DatabaseBackend.SQLITE

    sqlite: SQLiteConfig = field(default_factory=SQLiteConfig)
    postgresql: PostgreSQLConfig = field(default_factory=PostgreSQLConfig)
    pool: ConnectionPoolConfig = field(default_factory=ConnectionPoolConfig)

    # Statements slower than this are logged
    slow_query_threshold_ms: float = 100.0

    @classmethod
    def from_env(cls) -> "PersistenceConfig":
        config = cls()
        config.backend = DatabaseBackend(os.environ.get("COLLOQUY_DB_BACKEND", "sqlite").lower())

        for name, (section, attr, convert) in _ENV_FIELDS.items():
            if value := os.environ.get(name):
                setattr(getattr(config, section), attr, convert(value))

        return config

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["backend"] = self.backend.value
        data["sqlite"]["path"] = str(self.sqlite.path)
        data["postgresql"]["password"] = "***" if self.postgresql.password else ""
        return data

    def validate(self) -> list[str]:
        """Return configuration problems, empty when usable."""
        errors = []

        if self.backend == DatabaseBackend.POSTGRESQL:
            if not self.postgresql.host:
                errors.append("PostgreSQL host is required")
            if not self.postgresql.database:
                errors.append("PostgreSQL database name is required")

        if self.pool.min_connections < 1:
            errors.append("Pool min_connections must be at least 1")
        if self.pool.min_connections > self.pool.max_connections:
            errors.append("Pool min_connections cannot exceed max_connections")
        if self.pool.acquire_timeout <= 0:
            errors.append("Pool acquire_timeout must be positive")

        return errors


_default_config: Optional[PersistenceConfig] = None


def get_persistence_config() -> PersistenceConfig:
    global _default_config
    if _default_config is None:
        _default_config = PersistenceConfig.from_env()
    return _default_config


def set_persistence_config(config: PersistenceConfig) -> None:
    global _default_config
    _default_config = config
