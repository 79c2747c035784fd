"""
Colloquy Conversation Advisors

Priority-ordered interceptors around the model call:
- LoggerAdvisor (priority 0): request/response logging
- ContentFilterAdvisor (priority 5): static keyword filter
"""

from colloquy.conversation.advisors.base import (
    Advisor,
    AdvisorChain,
    NextStage,
    closing_stream,
)
from colloquy.conversation.advisors.logging import LoggerAdvisor
from colloquy.conversation.advisors.content_filter import ContentFilterAdvisor

__all__ = [
    "Advisor",
    "AdvisorChain",
    "NextStage",
    "closing_stream",
    "LoggerAdvisor",
    "ContentFilterAdvisor",
]
