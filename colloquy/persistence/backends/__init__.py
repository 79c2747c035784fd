"""
Colloquy Persistence Backends

Database backend implementations:
- SQLite via aiosqlite (development/embedded)
- PostgreSQL via asyncpg (production)

Backends are imported lazily by the database manager.
"""
