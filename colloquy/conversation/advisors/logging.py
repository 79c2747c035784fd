"""
Colloquy Logger Advisor

Structured logging of advised requests and their completed responses.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

import structlog

from colloquy.conversation.advisors.base import Advisor, NextStage, closing_stream
from colloquy.conversation.types import AdvisedRequest
from colloquy.logging import short_id

logger = structlog.get_logger(__name__)

ResponseSink = Callable[[AdvisedRequest, str], Union[None, Awaitable[None]]]


class LoggerAdvisor(Advisor):
    """
    Logs the request, forwards it unchanged, and logs the aggregated
    response once the wrapped stream completes normally.

    A stream that ends in an error or is closed early is never reported as
    a response. An optional `sink` receives `(request, response_text)`;
    coroutine sinks run as background tasks so they never hold up the stream.
    """

    priority = 0

    def __init__(
        self,
        sink: Optional[ResponseSink] = None,
        max_preview: int = 200,
        name: Optional[str] = None,
        priority: Optional[int] = None,
    ):
        super().__init__(name=name, priority=priority)
        self.sink = sink
        self.max_preview = max_preview
        self._pending: set[asyncio.Task] = set()

    async def around_stream(
        self,
        request: AdvisedRequest,
        call_next: NextStage,
    ) -> AsyncIterator[str]:
        logger.info(
            "Advised request",
            advisor=self.name,
            request_id=request.request_id,
            conversation_id=short_id(request.conversation_id),
            history=len(request.history),
            user_text=self._preview(request.user_text),
        )

        start_time = time.time()
        parts: list[str] = []

        async with closing_stream(call_next(request)) as stream:
            async for fragment in stream:
                parts.append(fragment)
                yield fragment

        response_text = "".join(parts)
        logger.info(
            "Advised response",
            advisor=self.name,
            request_id=request.request_id,
            conversation_id=short_id(request.conversation_id),
            fragments=len(parts),
            response=self._preview(response_text),
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        self._notify(request, response_text)

    def _notify(self, request: AdvisedRequest, response_text: str) -> None:
        if self.sink is None:
            return

        try:
            result = self.sink(request, response_text)
        except Exception as e:
            logger.warning("Response sink error", advisor=self.name, error=str(e))
            return

        if asyncio.iscoroutine(result):
            task = asyncio.create_task(result)
            self._pending.add(task)
            task.add_done_callback(self._sink_done)

    def _sink_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(
                "Response sink error",
                advisor=self.name,
                error=str(task.exception()),
            )

    async def drain(self) -> None:
        """Wait for background sink tasks."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _preview(self, text: str) -> Any:
        if len(text) <= self.max_preview:
            return text
        return text[:self.max_preview] + "..."
