"""
Colloquy Content Filter Advisor

Static keyword filter over user-authored text.
"""

from __future__ import annotations

from typing import AsyncIterator, Iterable, Optional

import structlog

from colloquy.config import DEFAULT_BLOCKED_TERMS, DEFAULT_REFUSAL_TEXT
from colloquy.conversation.advisors.base import Advisor, NextStage, closing_stream
from colloquy.conversation.exceptions import RejectedByAdvisor
from colloquy.conversation.types import AdvisedRequest
from colloquy.logging import short_id

logger = structlog.get_logger(__name__)


class ContentFilterAdvisor(Advisor):
    """
    Refuses requests whose text contains a blocked term.

    Matching is a case-insensitive substring test with no word boundaries,
    so a term inside a longer word still matches. A match short-circuits
    the chain: the model is not called and the refusal text is the whole
    response.
    """

    priority = 5

    def __init__(
        self,
        blocked_terms: Optional[Iterable[str]] = None,
        refusal_text: str = DEFAULT_REFUSAL_TEXT,
        name: Optional[str] = None,
        priority: Optional[int] = None,
    ):
        super().__init__(name=name, priority=priority)
        terms = DEFAULT_BLOCKED_TERMS if blocked_terms is None else blocked_terms
        self.blocked_terms: tuple[str, ...] = tuple(
            sorted({t.lower() for t in terms if t})
        )
        self.refusal_text = refusal_text

    def find_blocked_term(self, text: Optional[str]) -> Optional[str]:
        """First blocked term (in sorted order) found in `text`, if any."""
        if not text:
            return None

        lowered = text.lower()
        for term in self.blocked_terms:
            if term in lowered:
                return term
        return None

    def is_blocked(self, text: Optional[str]) -> bool:
        return self.find_blocked_term(text) is not None

    async def around_stream(
        self,
        request: AdvisedRequest,
        call_next: NextStage,
    ) -> AsyncIterator[str]:
        term = self.find_blocked_term(request.user_text)

        if term is not None:
            logger.warning(
                "Blocked content filtered",
                advisor=self.name,
                conversation_id=short_id(request.conversation_id),
                term=term,
            )
            raise RejectedByAdvisor(
                self.name,
                self.refusal_text,
                conversation_id=request.conversation_id,
                reason=term,
            )

        logger.debug(
            "Content check passed",
            advisor=self.name,
            conversation_id=short_id(request.conversation_id),
        )

        async with closing_stream(call_next(request)) as stream:
            async for fragment in stream:
                yield fragment
