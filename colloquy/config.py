"""
Colloquy Configuration

Centralized settings for the conversation pipeline with:
- Environment-based configuration (COLLOQUY_ prefix)
- Type-safe settings with Pydantic
- Process-wide configuration singleton
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


DEFAULT_BLOCKED_TERMS = [
    "暴力", "色情", "赌博", "毒品", "政治", "恐怖",
    "骚扰", "歧视", "侮辱", "威胁", "仇恨", "谁侮辱",
]

DEFAULT_REFUSAL_TEXT = (
    "很抱歉，您的请求包含敏感内容，无法提供相关回答。"
    "请调整您的提问，避免包含不适当的内容。"
)


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class MemoryConfig(BaseModel):
    """Retention depth of the in-process conversation windows."""
    window_size: int = 20  # backed by the durable repository
    ephemeral_window_size: int = 10  # no repository behind the window
    max_conversations: int = 1000  # least recently used windows are dropped past this

    @field_validator("window_size", "ephemeral_window_size", "max_conversations")
    @classmethod
    def positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v


class AdvisorConfig(BaseModel):
    """Configuration for the built-in advisors."""
    logger_enabled: bool = True
    content_filter_enabled: bool = True
    blocked_terms: list[str] = Field(default_factory=lambda: list(DEFAULT_BLOCKED_TERMS))
    refusal_text: str = DEFAULT_REFUSAL_TEXT


class StreamingConfig(BaseModel):
    """Configuration for response streaming."""
    fragment_timeout: Optional[float] = 60.0  # seconds to wait for the next fragment
    fragment_delay: float = 0.0  # pacing between forwarded fragments


class ColloquyConfig(BaseSettings):
    """
    Main Colloquy configuration.

    Environment variables are prefixed with COLLOQUY_ (e.g. COLLOQUY_LOG_LEVEL=DEBUG),
    nested fields use a double underscore (COLLOQUY_MEMORY__WINDOW_SIZE=30).
    """

    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    advisors: AdvisorConfig = Field(default_factory=AdvisorConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)

    system_prompt: Optional[str] = None

    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "text"] = "json"

    model_config = {
        "env_prefix": "COLLOQUY_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @classmethod
    def from_file(cls, config_path: Path) -> "ColloquyConfig":
        """Load configuration from a JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = json.load(f)

        return cls(**config_data)

    def to_file(self, config_path: Path) -> None:
        """Save configuration to a JSON file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, ensure_ascii=False)


_config: Optional[ColloquyConfig] = None


def get_config() -> ColloquyConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ColloquyConfig()
    return _config


def set_config(config: ColloquyConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration to default."""
    global _config
    _config = None
