"""
Colloquy Conversation Types

Core dataclasses for the conversation pipeline.
Provides immutable representations of messages, advised requests and
logged exchanges.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
import uuid


class MessageRole(str, Enum):
    """Role of a message sender."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass(frozen=True)
class Message:
    """One turn of a conversation. Immutable once constructed."""
    role: MessageRole
    text: str
    occurred_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "text": self.text,
            "occurred_at": self.occurred_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        occurred_at = data.get("occurred_at")
        if isinstance(occurred_at, str):
            occurred_at = datetime.fromisoformat(occurred_at)
        elif occurred_at is None:
            occurred_at = datetime.now()

        return cls(
            role=MessageRole(data.get("role", "user")),
            text=data.get("text", ""),
            occurred_at=occurred_at,
        )

    @classmethod
    def user(cls, text: str, **kwargs: Any) -> "Message":
        """Create a user message."""
        return cls(role=MessageRole.USER, text=text, **kwargs)

    @classmethod
    def assistant(cls, text: str, **kwargs: Any) -> "Message":
        """Create an assistant message."""
        return cls(role=MessageRole.ASSISTANT, text=text, **kwargs)

    @classmethod
    def system(cls, text: str, **kwargs: Any) -> "Message":
        """Create a system message."""
        return cls(role=MessageRole.SYSTEM, text=text, **kwargs)

    @classmethod
    def tool(cls, text: str, **kwargs: Any) -> "Message":
        """Create a tool response message."""
        return cls(role=MessageRole.TOOL, text=text, **kwargs)


@dataclass(frozen=True)
class AdvisedRequest:
    """
    A pending request as seen by the advisor chain.

    `history` holds the prior turns used to build the prompt, oldest first;
    `user_message` is the turn being submitted.
    """
    conversation_id: str
    user_message: Message
    history: tuple[Message, ...] = ()
    system: Optional[str] = None
    user_id: Optional[str] = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])

    @property
    def user_text(self) -> str:
        return self.user_message.text

    def prompt_messages(self) -> list[Message]:
        """Prior turns followed by the new user message."""
        return [*self.history, self.user_message]


@dataclass
class ExchangeRecord:
    """One user prompt paired with the committed assistant reply."""
    user_id: str
    conversation_id: str
    prompt: str
    reply: str
    created_at: datetime = field(default_factory=datetime.now)
    id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "conversation_id": self.conversation_id,
            "prompt": self.prompt,
            "reply": self.reply,
            "created_at": self.created_at.isoformat(),
        }
