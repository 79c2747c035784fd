"""
Colloquy LLM Providers

Boundary to the language model.
"""

from colloquy.conversation.llm.base import LLMProvider, MockLLMProvider

__all__ = [
    "LLMProvider",
    "MockLLMProvider",
]
