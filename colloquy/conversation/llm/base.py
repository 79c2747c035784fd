"""
Colloquy LLM Provider Base

Abstract boundary to the language model: a prompt goes in, an ordered
stream of text fragments comes out.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Sequence

from colloquy.conversation.types import Message


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    `generate` must be an async generator so that closing it tells the
    provider to stop producing fragments.
    """

    async def initialize(self) -> None:
        """Initialize the LLM provider."""

    async def shutdown(self) -> None:
        """Shutdown the LLM provider."""

    @abstractmethod
    def generate(
        self,
        messages: Sequence[Message],
        system: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Stream a completion.

        Args:
            messages: Conversation turns, oldest first, ending with the new user turn
            system: Optional rendered system prompt

        Yields:
            Text fragments in generation order
        """

    def get_model_name(self) -> str:
        """Get the name of the current model."""
        return "unknown"


class MockLLMProvider(LLMProvider):
    """
    Scripted LLM provider for testing.

    Each call to `generate` replays the next scripted response as a list of
    fragments. `fail_after` raises after that many fragments; `delay` sleeps
    before each fragment.
    """

    def __init__(
        self,
        responses: Optional[list[list[str]]] = None,
        delay: float = 0.0,
        fail_after: Optional[int] = None,
    ):
        self._responses = responses or [["This is ", "a mock ", "response."]]
        self._response_index = 0
        self.delay = delay
        self.fail_after = fail_after

        self.calls: list[list[Message]] = []
        self.systems: list[Optional[str]] = []
        self.closed_early = 0
        self._initialized = False

    async def initialize(self) -> None:
        self._initialized = True

    async def shutdown(self) -> None:
        self._initialized = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def generate(
        self,
        messages: Sequence[Message],
        system: Optional[str] = None,
    ) -> AsyncIterator[str]:
        self.calls.append(list(messages))
        self.systems.append(system)

        fragments = self._responses[self._response_index % len(self._responses)]
        self._response_index += 1

        emitted = 0
        try:
            for fragment in fragments:
                if self.fail_after is not None and emitted >= self.fail_after:
                    raise RuntimeError("mock generation failure")
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield fragment
                emitted += 1
        except GeneratorExit:
            self.closed_early += 1
            raise

    def get_model_name(self) -> str:
        return "mock-model"
