"""
Tests for Colloquy configuration and logging setup.
"""

import os
from unittest.mock import patch

import pytest
import structlog
from pydantic import ValidationError

from colloquy.config import (
    DEFAULT_BLOCKED_TERMS,
    ColloquyConfig,
    LogLevel,
    MemoryConfig,
    get_config,
    reset_config,
    set_config,
)
from colloquy.logging import setup_logging, short_id


class TestColloquyConfig:
    """Tests for application settings."""

    def test_defaults(self):
        config = ColloquyConfig()

        assert config.memory.window_size == 20
        assert config.memory.ephemeral_window_size == 10
        assert config.memory.max_conversations == 1000
        assert config.advisors.content_filter_enabled is True
        assert config.advisors.blocked_terms == DEFAULT_BLOCKED_TERMS
        assert config.streaming.fragment_timeout == 60.0
        assert config.streaming.fragment_delay == 0.0
        assert config.system_prompt is None
        assert config.log_level == LogLevel.INFO

    def test_env_overrides(self):
        """Nested settings are read with the COLLOQUY_ prefix and __ delimiter."""
        with patch.dict(os.environ, {
            "COLLOQUY_SYSTEM_PROMPT": "Be kind.",
            "COLLOQUY_MEMORY__WINDOW_SIZE": "5",
            "COLLOQUY_LOG_LEVEL": "DEBUG",
        }):
            config = ColloquyConfig()

        assert config.system_prompt == "Be kind."
        assert config.memory.window_size == 5
        assert config.log_level == LogLevel.DEBUG

    def test_window_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            MemoryConfig(window_size=0)
        with pytest.raises(ValidationError):
            MemoryConfig(max_conversations=0)

    def test_file_round_trip(self, tmp_path):
        path = tmp_path / "conf" / "colloquy.json"
        config = ColloquyConfig(system_prompt="hello", memory={"window_size": 3})

        config.to_file(path)
        loaded = ColloquyConfig.from_file(path)

        assert loaded.system_prompt == "hello"
        assert loaded.memory.window_size == 3
        assert loaded.advisors.blocked_terms == DEFAULT_BLOCKED_TERMS

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ColloquyConfig.from_file(tmp_path / "missing.json")

    def test_global_config(self):
        reset_config()
        try:
            default = get_config()
            assert get_config() is default

            custom = ColloquyConfig(system_prompt="custom")
            set_config(custom)
            assert get_config() is custom
        finally:
            reset_config()


class TestLogging:
    """Tests for logging helpers."""

    def test_short_id(self):
        assert short_id("0123456789abcdef") == "01234567"
        assert short_id("abc") == "abc"
        assert short_id(None) is None

    @pytest.mark.parametrize("log_format", ["json", "text"])
    def test_setup_logging(self, log_format):
        setup_logging("DEBUG", log_format)

        logger = structlog.get_logger("colloquy.test")
        logger.info("configured", log_format=log_format)

        structlog.reset_defaults()
