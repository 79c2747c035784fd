"""
Colloquy Conversation Streaming

Fragment stream aggregation with exactly-once commit.
"""

from colloquy.conversation.streaming.aggregator import (
    CompletionCallback,
    StreamAggregator,
    StreamState,
)

__all__ = [
    "CompletionCallback",
    "StreamAggregator",
    "StreamState",
]
