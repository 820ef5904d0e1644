"""Tests for logging_config.py utility functions."""

import logging
import os
import sys
from unittest.mock import patch

from photo_ingest.core.logging_config import (
    get_logger,
    logger,
    set_debug_logging,
    setup_logger,
)


class TestSetupLogger:
    """Tests for setup_logger function."""

    def test_setup_logger_custom_name(self):
        """Test setup_logger with custom name."""
        test_logger = setup_logger(name="test-custom-logger")
        assert test_logger.name == "test-custom-logger"
        assert len(test_logger.handlers) == 1
        assert not test_logger.propagate

    def test_setup_logger_custom_level_by_parameter(self):
        """Test setup_logger with custom level via parameter."""
        test_logger = setup_logger(name="test-param-level", level="DEBUG")
        assert test_logger.level == logging.DEBUG

    def test_setup_logger_custom_level_by_env_var(self):
        """Test setup_logger with custom level via environment variable."""
        with patch.dict(os.environ, {"LOG_LEVEL": "WARNING"}):
            test_logger = setup_logger(name="test-env-level")
            assert test_logger.level == logging.WARNING

    def test_setup_logger_invalid_level_defaults_to_info(self):
        """Test setup_logger with invalid level defaults to INFO."""
        test_logger = setup_logger(name="test-invalid-level", level="INVALID_LEVEL")
        assert test_logger.level == logging.INFO

    def test_setup_logger_structured_format(self):
        """Test setup_logger with structured format."""
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("LOG_FORMAT", None)
            test_logger = setup_logger(name="test-structured", format_type="structured")
        format_string = test_logger.handlers[0].formatter._fmt
        assert "%(filename)s" in format_string
        assert "%(lineno)d" in format_string
        assert "%(funcName)s" in format_string

    def test_setup_logger_env_format_override(self):
        """LOG_FORMAT wins over the format_type argument."""
        with patch.dict(os.environ, {"LOG_FORMAT": "simple"}):
            test_logger = setup_logger(name="test-env-format", format_type="structured")
        format_string = test_logger.handlers[0].formatter._fmt
        assert "%(filename)s" not in format_string
        assert "%(message)s" in format_string

    def test_setup_logger_no_duplicate_handlers(self):
        """Test that setup_logger doesn't add duplicate handlers."""
        first = setup_logger(name="test-no-duplicates")
        second = setup_logger(name="test-no-duplicates")
        assert first is second
        assert len(first.handlers) == 1

    def test_setup_logger_handler_uses_stdout(self):
        """Test that logger handler uses stdout."""
        test_logger = setup_logger(name="test-stdout")
        assert test_logger.handlers[0].stream is sys.stdout


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_default_name(self):
        assert get_logger().name == "photo-ingest"

    def test_get_logger_nests_short_names(self):
        assert get_logger("fetcher").name == "photo-ingest.fetcher"

    def test_get_logger_keeps_qualified_names(self):
        assert get_logger("photo-ingest.storage").name == "photo-ingest.storage"

    def test_get_logger_returns_configured_logger(self):
        test_logger = get_logger("test-configured")
        assert len(test_logger.handlers) == 1
        assert not test_logger.propagate


class TestSetDebugLogging:
    """Tests for set_debug_logging."""

    def _snapshot(self):
        names = [n for n in logging.root.manager.loggerDict if n.startswith("photo-ingest")]
        return {n: logging.getLogger(n).level for n in names}, logging.getLogger().level

    def _restore(self, snapshot):
        levels, root_level = snapshot
        for name, level in levels.items():
            logging.getLogger(name).setLevel(level)
        logging.getLogger().setLevel(root_level)

    def test_switches_pipeline_loggers_to_debug(self):
        stage_logger = get_logger("debug-switch-test")
        snapshot = self._snapshot()
        try:
            set_debug_logging()
            assert stage_logger.level == logging.DEBUG
            assert logging.getLogger().level == logging.DEBUG
        finally:
            self._restore(snapshot)

    def test_debug_level_survives_later_get_logger(self):
        stage_logger = get_logger("debug-survives-test")
        snapshot = self._snapshot()
        try:
            set_debug_logging()
            assert get_logger("debug-survives-test").level == logging.DEBUG
            assert stage_logger.level == logging.DEBUG
        finally:
            self._restore(snapshot)

    def test_leaves_foreign_loggers_alone(self):
        foreign = logging.getLogger("someone-else")
        foreign.setLevel(logging.ERROR)
        snapshot = self._snapshot()
        try:
            set_debug_logging()
            assert foreign.level == logging.ERROR
        finally:
            self._restore(snapshot)


class TestDefaultLogger:
    """Tests for default logger instance."""

    def test_default_logger_exists(self):
        assert isinstance(logger, logging.Logger)
        assert logger.name == "photo-ingest"
        assert not logger.propagate
