"""
Colloquy Persistence Repositories

- ChatMemoryRepository: durable conversation history
- ExchangeRepository: per-user log of completed exchanges
"""

from colloquy.persistence.repositories.base import BaseRepository
from colloquy.persistence.repositories.chat_memory import ChatMemoryRepository
from colloquy.persistence.repositories.exchanges import ExchangeRepository

__all__ = [
    "BaseRepository",
    "ChatMemoryRepository",
    "ExchangeRepository",
]
