"""
Colloquy Advisor Chain

Ordered interceptors around the model call. Each advisor receives the
pending request and an explicit `call_next` continuation; it may stream
through the continuation or answer on its own without calling it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional, Sequence

import structlog

from colloquy.conversation.exceptions import (
    AdvisorError,
    ConversationError,
    RejectedByAdvisor,
)
from colloquy.conversation.types import AdvisedRequest
from colloquy.logging import short_id

logger = structlog.get_logger(__name__)

NextStage = Callable[[AdvisedRequest], AsyncIterator[str]]


@asynccontextmanager
async def closing_stream(stream: AsyncIterator[str]) -> AsyncIterator[AsyncIterator[str]]:
    """Yield `stream` and close it on exit if it has `aclose`."""
    try:
        yield stream
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()


class Advisor(ABC):
    """
    Base class for advisors.

    Lower `priority` runs first (outermost). `around_stream` must return an
    async iterator of fragments. Async generators are the usual form; any
    iterator works, and one with `aclose` is closed when its stage ends.
    Advisors that stop consuming `call_next` early should close that stream
    through `closing_stream`.
    """

    priority: int = 0

    def __init__(self, name: Optional[str] = None, priority: Optional[int] = None):
        self._name = name
        if priority is not None:
            self.priority = priority

    @property
    def name(self) -> str:
        return self._name or type(self).__name__

    @abstractmethod
    def around_stream(
        self,
        request: AdvisedRequest,
        call_next: NextStage,
    ) -> AsyncIterator[str]:
        """Produce the response stream for `request`."""

    def __repr__(self) -> str:
        return f"<{self.name} priority={self.priority}>"


class AdvisorChain:
    """
    Priority-ordered advisor pipeline.

    The order is fixed at construction (ties keep registration order). At
    request time advisor i wraps the continuation made of advisors i+1..n
    and the terminal stage.
    """

    def __init__(self, advisors: Sequence[Advisor] = ()):
        self._advisors: tuple[Advisor, ...] = tuple(
            sorted(advisors, key=lambda a: a.priority)
        )
        logger.info(
            "Advisor chain built",
            advisors=[a.name for a in self._advisors],
        )

    @property
    def advisors(self) -> tuple[Advisor, ...]:
        return self._advisors

    def stream(
        self,
        request: AdvisedRequest,
        terminal: NextStage,
    ) -> AsyncIterator[str]:
        """Run `request` through every advisor and then `terminal`."""
        call = terminal
        for advisor in reversed(self._advisors):
            call = self._bind(advisor, call)
        return call(request)

    @staticmethod
    def _bind(advisor: Advisor, call_next: NextStage) -> NextStage:
        async def stage(request: AdvisedRequest) -> AsyncIterator[str]:
            try:
                async with closing_stream(advisor.around_stream(request, call_next)) as stream:
                    async for fragment in stream:
                        yield fragment

            except RejectedByAdvisor as rejection:
                logger.info(
                    "Request rejected by advisor",
                    advisor=rejection.advisor,
                    conversation_id=short_id(request.conversation_id),
                    request_id=request.request_id,
                )
                yield rejection.refusal_text

            except ConversationError:
                raise

            except Exception as e:
                logger.error(
                    "Advisor failed",
                    advisor=advisor.name,
                    conversation_id=short_id(request.conversation_id),
                    error=str(e),
                )
                raise AdvisorError(advisor.name, request.conversation_id) from e

        return stage
