"""
Colloquy Conversation Service

Entry point of the conversation pipeline:
- Per-conversation serialization of history reads and writes
- Advisor chain around the model call
- Bounded memory window in front of the durable repository
- Exactly-once commit of completed responses
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Sequence

import structlog

from colloquy.config import AdvisorConfig, ColloquyConfig, get_config
from colloquy.conversation.advisors import (
    Advisor,
    AdvisorChain,
    ContentFilterAdvisor,
    LoggerAdvisor,
)
from colloquy.conversation.exceptions import (
    ConversationError,
    PersistenceFailure,
    UpstreamGenerationFailure,
)
from colloquy.conversation.llm.base import LLMProvider
from colloquy.conversation.streaming import StreamAggregator
from colloquy.conversation.types import (
    AdvisedRequest,
    ExchangeRecord,
    Message,
)
from colloquy.conversation.window import MemoryWindow, create_memory_window
from colloquy.logging import short_id
from colloquy.persistence.database import DatabaseManager
from colloquy.persistence.dialects import dialect_for
from colloquy.persistence.repositories import (
    ChatMemoryRepository,
    ExchangeRepository,
)

logger = structlog.get_logger(__name__)


@dataclass
class _ConversationLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class ConversationService:
    """
    Conversation pipeline over one model provider.

    With a repository, the repository is the source of truth and the window
    is a cache seeded from it. Without one, conversations are ephemeral and
    live only in the window.

    One exchange per conversation id runs at a time: `submit` holds that
    conversation's lock from the history read until the response is
    committed or abandoned. A lock lives only while some caller holds or
    waits for it. Callers should close the stream returned by `submit` (for
    example with `contextlib.aclosing`) when they stop early.
    """

    def __init__(
        self,
        llm: LLMProvider,
        window: MemoryWindow,
        repository: Optional[ChatMemoryRepository] = None,
        exchanges: Optional[ExchangeRepository] = None,
        advisors: Sequence[Advisor] = (),
        system_prompt: Optional[str] = None,
        fragment_timeout: Optional[float] = None,
        fragment_delay: float = 0.0,
        db: Optional[DatabaseManager] = None,
    ):
        self.llm = llm
        self.window = window
        self.repository = repository
        self.exchanges = exchanges
        self.chain = AdvisorChain(advisors)
        self.system_prompt = system_prompt
        self.fragment_timeout = fragment_timeout
        self.fragment_delay = fragment_delay
        self.db = db

        self._locks: dict[str, _ConversationLock] = {}
        self._global_lock = asyncio.Lock()
        self._initialized = False

    @property
    def persistent(self) -> bool:
        return self.repository is not None

    async def initialize(self) -> None:
        """Initialize the provider and storage."""
        if self._initialized:
            return

        logger.info(
            "Initializing conversation service",
            model=self.llm.get_model_name(),
            persistent=self.persistent,
        )

        await self.llm.initialize()

        if self.db is not None:
            await self.db.initialize()
        if self.repository is not None:
            await self.repository.initialize()
        if self.exchanges is not None:
            await self.exchanges.initialize()

        self._initialized = True
        logger.info("Conversation service initialized")

    async def shutdown(self) -> None:
        """Shutdown the provider and storage."""
        logger.info("Shutting down conversation service")

        for advisor in self.chain.advisors:
            if isinstance(advisor, LoggerAdvisor):
                await advisor.drain()

        await self.llm.shutdown()

        if self.db is not None:
            await self.db.shutdown()

        self._initialized = False
        logger.info("Conversation service shutdown complete")

    @asynccontextmanager
    async def _conversation_lock(self, conversation_id: str) -> AsyncIterator[None]:
        """Hold the conversation's lock, dropping it once nobody needs it."""
        async with self._global_lock:
            entry = self._locks.get(conversation_id)
            if entry is None:
                entry = self._locks[conversation_id] = _ConversationLock()
            entry.holders += 1

        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0 and self._locks.get(conversation_id) is entry:
                del self._locks[conversation_id]

    async def submit(
        self,
        conversation_id: str,
        user_text: str,
        user_id: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Submit a user message and stream the response fragments.

        Completes once the assistant reply is committed. Raises
        UpstreamGenerationFailure, PersistenceFailure or AdvisorError as the
        single terminal error of the stream. A refusal is a normal response.

        Args:
            conversation_id: Conversation to continue (created on first use)
            user_text: The user's message
            user_id: Optional user for the exchange log
        """
        _require_id(conversation_id)
        if user_text is None:
            raise ValueError("user_text cannot be None")

        async with self._conversation_lock(conversation_id):
            history = await self._load_window(conversation_id)

            request = AdvisedRequest(
                conversation_id=conversation_id,
                user_message=Message.user(user_text),
                history=tuple(history),
                system=self.system_prompt,
                user_id=user_id,
            )

            logger.debug(
                "Submitting message",
                conversation_id=short_id(conversation_id),
                request_id=request.request_id,
                history=len(history),
            )

            forwarded = 0
            async with aclosing(self.chain.stream(request, self._generate)) as stream:
                async for fragment in stream:
                    if forwarded and self.fragment_delay > 0:
                        await asyncio.sleep(self.fragment_delay)
                    forwarded += 1
                    yield fragment

    async def ask(
        self,
        conversation_id: str,
        user_text: str,
        user_id: Optional[str] = None,
    ) -> str:
        """Submit a message and return the whole response text."""
        parts: list[str] = []
        async with aclosing(self.submit(conversation_id, user_text, user_id)) as stream:
            async for fragment in stream:
                parts.append(fragment)
        return "".join(parts)

    async def _load_window(self, conversation_id: str) -> list[Message]:
        """Window contents, seeding the window from storage on first use."""
        if self.repository is not None and not self.window.contains(conversation_id):
            try:
                stored = await self.repository.load(conversation_id)
            except Exception as e:
                raise PersistenceFailure(
                    f"Failed to load history: {e}",
                    conversation_id,
                ) from e
            self.window.seed(conversation_id, stored)

        return self.window.get(conversation_id)

    async def _generate(self, request: AdvisedRequest) -> AsyncIterator[str]:
        """Terminal stage: record the user turn, then stream the model."""
        conversation_id = request.conversation_id
        stored = await self._record_user_message(request)

        async def on_complete(message: Message) -> None:
            await self._record_assistant_message(request, stored, message)

        aggregator = StreamAggregator(
            conversation_id,
            on_complete,
            fragment_timeout=self.fragment_timeout,
        )

        try:
            upstream = self.llm.generate(request.prompt_messages(), system=request.system)
        except Exception as e:
            raise UpstreamGenerationFailure(
                f"Model generation failed: {e}",
                conversation_id,
            ) from e

        async with aclosing(aggregator.consume(upstream)) as stream:
            async for fragment in stream:
                yield fragment

    async def _record_user_message(self, request: AdvisedRequest) -> Optional[list[Message]]:
        """Commit the user turn. Returns the stored history including it."""
        conversation_id = request.conversation_id
        stored: Optional[list[Message]] = None

        if self.repository is not None:
            try:
                stored = await self.repository.load(conversation_id)
                stored.append(request.user_message)
                await self.repository.replace_all(conversation_id, stored)
            except ConversationError:
                raise
            except Exception as e:
                logger.error(
                    "Failed to record user message",
                    conversation_id=short_id(conversation_id),
                    error=str(e),
                )
                raise PersistenceFailure(
                    f"Failed to record user message: {e}",
                    conversation_id,
                ) from e

        self._remember(conversation_id, stored, request.user_message)
        return stored

    async def _record_assistant_message(
        self,
        request: AdvisedRequest,
        stored: Optional[list[Message]],
        message: Message,
    ) -> None:
        conversation_id = request.conversation_id

        if self.repository is not None and stored is not None:
            stored = [*stored, message]
            await self.repository.replace_all(conversation_id, stored)

        self._remember(conversation_id, stored, message)

        if request.user_id is not None and self.exchanges is not None:
            await self._log_exchange(request, message)

        logger.info(
            "Exchange committed",
            conversation_id=short_id(conversation_id),
            request_id=request.request_id,
            chars=len(message.text),
        )

    def _remember(
        self,
        conversation_id: str,
        stored: Optional[list[Message]],
        message: Message,
    ) -> None:
        """Mirror a committed turn into the window."""
        if stored is None:
            self.window.append(conversation_id, message)
        else:
            # Durable windows always hold the tail of the stored history
            self.window.seed(conversation_id, stored)

    async def _log_exchange(self, request: AdvisedRequest, message: Message) -> None:
        try:
            await self.exchanges.record(
                ExchangeRecord(
                    user_id=request.user_id,
                    conversation_id=request.conversation_id,
                    prompt=request.user_text,
                    reply=message.text,
                )
            )
        except Exception as e:
            logger.warning(
                "Failed to log exchange",
                conversation_id=short_id(request.conversation_id),
                user_id=request.user_id,
                error=str(e),
            )

    async def list_history(self, conversation_id: str) -> list[Message]:
        """Full history, oldest first. Unknown ids give an empty list."""
        _require_id(conversation_id)

        if self.repository is None:
            return self.window.get(conversation_id)

        try:
            return await self.repository.load(conversation_id)
        except Exception as e:
            raise PersistenceFailure(
                f"Failed to load history: {e}",
                conversation_id,
            ) from e

    async def delete_history(self, conversation_id: str) -> None:
        """Delete a conversation's history. Unknown ids are a no-op."""
        _require_id(conversation_id)

        async with self._conversation_lock(conversation_id):
            self.window.clear(conversation_id)

            try:
                if self.repository is not None:
                    await self.repository.delete(conversation_id)
                if self.exchanges is not None:
                    await self.exchanges.delete_conversation(conversation_id)
            except Exception as e:
                logger.error(
                    "Failed to delete history",
                    conversation_id=short_id(conversation_id),
                    error=str(e),
                )
                raise PersistenceFailure(
                    f"Failed to delete history: {e}",
                    conversation_id,
                ) from e

        logger.info("Deleted conversation history", conversation_id=short_id(conversation_id))

    async def list_conversations(self) -> set[str]:
        """Ids of all conversations with history."""
        if self.repository is None:
            return self.window.conversation_ids()

        try:
            return await self.repository.list_conversation_ids()
        except Exception as e:
            raise PersistenceFailure(f"Failed to list conversations: {e}") from e

    async def list_exchanges(self, user_id: str) -> list[ExchangeRecord]:
        """Logged exchanges for a user, oldest first."""
        if self.exchanges is None:
            return []

        try:
            return await self.exchanges.list_by_user(user_id)
        except Exception as e:
            raise PersistenceFailure(f"Failed to list exchanges: {e}") from e


def _require_id(conversation_id: str) -> None:
    if not conversation_id:
        raise ValueError("conversation_id cannot be None or empty")


def build_advisors(config: AdvisorConfig) -> list[Advisor]:
    """Advisors enabled by configuration."""
    advisors: list[Advisor] = []

    if config.logger_enabled:
        advisors.append(LoggerAdvisor())

    if config.content_filter_enabled:
        advisors.append(
            ContentFilterAdvisor(
                blocked_terms=config.blocked_terms,
                refusal_text=config.refusal_text,
            )
        )

    return advisors


def create_conversation_service(
    config: Optional[ColloquyConfig] = None,
    llm: Optional[LLMProvider] = None,
    db: Optional[DatabaseManager] = None,
) -> ConversationService:
    """
    Build a conversation service from configuration.

    With `db` the service is durable and uses `memory.window_size`;
    without it conversations are ephemeral and use
    `memory.ephemeral_window_size`.
    """
    if llm is None:
        raise ValueError("An LLM provider is required")

    config = config or get_config()

    repository: Optional[ChatMemoryRepository] = None
    exchanges: Optional[ExchangeRepository] = None

    if db is not None:
        dialect = dialect_for(db.backend)
        repository = ChatMemoryRepository(db, dialect)
        exchanges = ExchangeRepository(db, dialect)
        window_size = config.memory.window_size
    else:
        window_size = config.memory.ephemeral_window_size
    window = create_memory_window(window_size, config.memory.max_conversations)

    return ConversationService(
        llm=llm,
        window=window,
        repository=repository,
        exchanges=exchanges,
        advisors=build_advisors(config.advisors),
        system_prompt=config.system_prompt,
        fragment_timeout=config.streaming.fragment_timeout,
        fragment_delay=config.streaming.fragment_delay,
        db=db,
    )
