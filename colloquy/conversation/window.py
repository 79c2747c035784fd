"""
Colloquy Memory Window

Bounded, per-conversation recent-history cache used for low-latency prompt
construction. Not durable; the chat memory repository is the record of truth.
"""

from __future__ import annotations

from collections import OrderedDict, deque
from typing import Iterable, Optional

import structlog

from colloquy.conversation.types import Message
from colloquy.logging import short_id

logger = structlog.get_logger(__name__)


class MemoryWindow:
    """
    Most-recent-N messages per conversation.

    Eviction is strict FIFO within a conversation: appending past capacity
    drops the oldest messages. With `max_conversations` set, the least
    recently used conversation is dropped once that many are cached.
    Callers serialize mutation of a conversation through the
    per-conversation locks held by the service.
    """

    def __init__(self, max_messages: int, max_conversations: Optional[int] = None):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        if max_conversations is not None and max_conversations < 1:
            raise ValueError("max_conversations must be at least 1")
        self.max_messages = max_messages
        self.max_conversations = max_conversations
        self._windows: OrderedDict[str, deque[Message]] = OrderedDict()

    def append(self, conversation_id: str, message: Message) -> None:
        """Add a message to the tail, evicting from the head on overflow."""
        window = self._windows.get(conversation_id)
        if window is None:
            window = deque(maxlen=self.max_messages)
        window.append(message)
        self._store(conversation_id, window)

    def extend(self, conversation_id: str, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(conversation_id, message)

    def get(self, conversation_id: str) -> list[Message]:
        """Retained messages, oldest first. Unknown ids yield an empty list."""
        window = self._windows.get(conversation_id)
        if not window:
            return []
        self._windows.move_to_end(conversation_id)
        return list(window)

    def seed(self, conversation_id: str, messages: Iterable[Message]) -> None:
        """Replace the window with the tail of the given history."""
        window: deque[Message] = deque(messages, maxlen=self.max_messages)
        self._store(conversation_id, window)
        logger.debug(
            "Window seeded",
            conversation_id=short_id(conversation_id),
            size=len(window),
        )

    def contains(self, conversation_id: str) -> bool:
        return conversation_id in self._windows

    def clear(self, conversation_id: str) -> None:
        self._windows.pop(conversation_id, None)

    def size(self, conversation_id: str) -> int:
        window = self._windows.get(conversation_id)
        return len(window) if window else 0

    def conversation_ids(self) -> set[str]:
        return {cid for cid, window in self._windows.items() if window}

    def __len__(self) -> int:
        return len(self._windows)

    def _store(self, conversation_id: str, window: deque[Message]) -> None:
        self._windows[conversation_id] = window
        self._windows.move_to_end(conversation_id)

        if self.max_conversations is None:
            return
        while len(self._windows) > self.max_conversations:
            evicted, _ = self._windows.popitem(last=False)
            logger.debug("Window evicted", conversation_id=short_id(evicted))


def create_memory_window(
    max_messages: int,
    max_conversations: Optional[int] = None,
) -> MemoryWindow:
    """Build an empty window with the given retention depth."""
    return MemoryWindow(max_messages=max_messages, max_conversations=max_conversations)
