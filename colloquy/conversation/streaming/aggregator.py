"""
Colloquy Stream Aggregator

Reduces a model fragment stream into one assistant message and commits it
exactly once, on natural completion only.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Optional

import structlog

from colloquy.conversation.exceptions import (
    ConversationError,
    PersistenceFailure,
    UpstreamGenerationFailure,
)
from colloquy.conversation.types import Message
from colloquy.logging import short_id

logger = structlog.get_logger(__name__)

CompletionCallback = Callable[[Message], Awaitable[None]]


@dataclass
class StreamState:
    """Tracks the state of one aggregated stream."""
    conversation_id: str
    started_at: datetime = field(default_factory=datetime.now)

    buffer: list[str] = field(default_factory=list)
    fragment_count: int = 0

    completed: bool = False
    aborted: bool = False
    error_message: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(self.buffer)

    def discard(self) -> None:
        self.buffer.clear()


class StreamAggregator:
    """
    Forwards fragments while buffering them, then commits the assembled
    assistant message through `on_complete`.

    Upstream errors and timeouts surface as UpstreamGenerationFailure. A
    closed or cancelled consumer tears the upstream down. In both cases the
    partial text is discarded and nothing is committed.
    """

    def __init__(
        self,
        conversation_id: str,
        on_complete: CompletionCallback,
        fragment_timeout: Optional[float] = None,
    ):
        self.conversation_id = conversation_id
        self.on_complete = on_complete
        self.fragment_timeout = fragment_timeout
        self.state = StreamState(conversation_id=conversation_id)

    @property
    def completed(self) -> bool:
        return self.state.completed

    @property
    def aborted(self) -> bool:
        return self.state.aborted

    async def consume(self, upstream: AsyncIterator[str]) -> AsyncIterator[str]:
        """Yield upstream fragments, committing once the stream ends."""
        try:
            while True:
                try:
                    fragment = await self._next(upstream)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError as e:
                    self._fail("fragment timeout")
                    raise UpstreamGenerationFailure(
                        f"No fragment within {self.fragment_timeout}s",
                        self.conversation_id,
                    ) from e
                except ConversationError:
                    self._fail("upstream conversation error")
                    raise
                except Exception as e:
                    self._fail(str(e))
                    raise UpstreamGenerationFailure(
                        f"Model generation failed: {e}",
                        self.conversation_id,
                    ) from e

                self.state.buffer.append(fragment)
                self.state.fragment_count += 1
                yield fragment

        except (GeneratorExit, asyncio.CancelledError):
            self._abort()
            raise

        finally:
            await self._close_upstream(upstream)

        await self.complete()

    async def complete(self) -> None:
        """Commit the buffered message. Later calls are no-ops."""
        if self.state.completed or self.state.aborted:
            return
        self.state.completed = True

        message = Message.assistant(self.state.text)

        try:
            await self.on_complete(message)
        except ConversationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to commit response",
                conversation_id=short_id(self.conversation_id),
                error=str(e),
            )
            raise PersistenceFailure(
                f"Failed to commit response: {e}",
                self.conversation_id,
            ) from e

        logger.debug(
            "Stream committed",
            conversation_id=short_id(self.conversation_id),
            fragments=self.state.fragment_count,
            chars=len(message.text),
        )

    async def _next(self, upstream: AsyncIterator[str]) -> str:
        if self.fragment_timeout is None:
            return await upstream.__anext__()
        return await asyncio.wait_for(upstream.__anext__(), timeout=self.fragment_timeout)

    def _fail(self, reason: str) -> None:
        self.state.aborted = True
        self.state.error_message = reason
        self.state.discard()
        logger.warning(
            "Upstream generation failed",
            conversation_id=short_id(self.conversation_id),
            fragments=self.state.fragment_count,
            error=reason,
        )

    def _abort(self) -> None:
        if self.state.aborted:
            return
        self.state.aborted = True
        self.state.discard()
        logger.info(
            "Stream cancelled",
            conversation_id=short_id(self.conversation_id),
            fragments=self.state.fragment_count,
        )

    async def _close_upstream(self, upstream: AsyncIterator[str]) -> None:
        aclose = getattr(upstream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.warning(
                "Error closing upstream",
                conversation_id=short_id(self.conversation_id),
                error=str(e),
            )
