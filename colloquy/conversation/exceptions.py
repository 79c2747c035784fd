"""
Colloquy Conversation Errors

Error taxonomy for the conversation pipeline.
"""

from __future__ import annotations

from typing import Optional


class ConversationError(Exception):
    """Base class for conversation pipeline errors."""

    def __init__(self, message: str, conversation_id: Optional[str] = None):
        self.conversation_id = conversation_id
        super().__init__(message)


class RejectedByAdvisor(ConversationError):
    """
    An advisor refused the request.

    Not a failure: the chain converts it into a normal response made of the
    refusal text.
    """

    def __init__(
        self,
        advisor: str,
        refusal_text: str,
        conversation_id: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        self.advisor = advisor
        self.refusal_text = refusal_text
        self.reason = reason
        super().__init__(f"Request rejected by {advisor}", conversation_id)


class AdvisorError(ConversationError):
    """An advisor raised an unexpected exception."""

    def __init__(self, advisor: str, conversation_id: Optional[str] = None):
        self.advisor = advisor
        super().__init__(f"Advisor {advisor} failed", conversation_id)


class UpstreamGenerationFailure(ConversationError):
    """The model call failed, timed out or was cancelled mid-stream."""


class PersistenceFailure(ConversationError):
    """A durable write of conversation history failed."""
