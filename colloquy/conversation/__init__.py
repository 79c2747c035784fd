"""
Colloquy Conversation Pipeline

Components:
- ConversationService: submit / history / delete entry points
- AdvisorChain: priority-ordered interceptors around the model call
- MemoryWindow: bounded per-conversation recent history
- StreamAggregator: exactly-once commit of streamed responses
- LLMProvider: model boundary
"""

from colloquy.conversation.types import (
    AdvisedRequest,
    ExchangeRecord,
    Message,
    MessageRole,
)
from colloquy.conversation.exceptions import (
    AdvisorError,
    ConversationError,
    PersistenceFailure,
    RejectedByAdvisor,
    UpstreamGenerationFailure,
)
from colloquy.conversation.window import MemoryWindow, create_memory_window
from colloquy.conversation.advisors import (
    Advisor,
    AdvisorChain,
    ContentFilterAdvisor,
    LoggerAdvisor,
)
from colloquy.conversation.streaming import StreamAggregator, StreamState
from colloquy.conversation.llm import LLMProvider, MockLLMProvider
from colloquy.conversation.service import (
    ConversationService,
    build_advisors,
    create_conversation_service,
)

__all__ = [
    # Types
    "AdvisedRequest",
    "ExchangeRecord",
    "Message",
    "MessageRole",
    # Errors
    "AdvisorError",
    "ConversationError",
    "PersistenceFailure",
    "RejectedByAdvisor",
    "UpstreamGenerationFailure",
    # Window
    "MemoryWindow",
    "create_memory_window",
    # Advisors
    "Advisor",
    "AdvisorChain",
    "ContentFilterAdvisor",
    "LoggerAdvisor",
    # Streaming
    "StreamAggregator",
    "StreamState",
    # LLM
    "LLMProvider",
    "MockLLMProvider",
    # Service
    "ConversationService",
    "build_advisors",
    "create_conversation_service",
]
