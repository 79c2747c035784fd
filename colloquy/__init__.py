"""
Colloquy - Conversational memory and streaming backend

Core pipeline for a chat service:
- Ordered advisor chain that can short-circuit requests
- Bounded in-memory conversation windows
- Durable, transactional conversation history
- Exactly-once aggregation of streamed model output
"""

__version__ = "1.0.0"
__author__ = "Colloquy Team"

from colloquy.config import ColloquyConfig
from colloquy.conversation.service import ConversationService, create_conversation_service

__all__ = [
    "ColloquyConfig",
    "ConversationService",
    "create_conversation_service",
    "__version__",
]
