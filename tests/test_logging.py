"""Tests for hookrelay structured logging."""

import logging

import structlog

from hookrelay.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


class TestConfigureLogging:
    """Tests for logging configuration."""

    def test_configure_with_defaults(self):
        """Should configure with INFO level and JSON format by default."""
        configure_logging()
        logger = get_logger("test")
        logger.info("test message")

    def test_configure_with_text_format(self):
        """Should accept text format for development."""
        configure_logging(level="INFO", format="text")
        logger = get_logger("test")
        logger.info("text format message")

    def test_configure_multiple_times(self):
        """Should handle multiple configuration calls."""
        configure_logging(level="INFO")
        configure_logging(level="DEBUG")
        logger = get_logger("test")
        logger.info("after reconfigure")

    def test_quiets_http_client_loggers(self):
        """httpx request logging should be raised to WARNING."""
        configure_logging(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        """An unknown level name should not raise."""
        configure_logging(level="NOPE")
        assert logging.getLogger("httpx").level == logging.WARNING


class TestContextBinding:
    """Tests for context variable binding."""

    def setup_method(self):
        """Clear context before each test."""
        clear_context()

    def teardown_method(self):
        """Clear context after each test."""
        clear_context()

    def test_bind_context(self):
        """Bound values should appear in the contextvars."""
        bind_context(delivery_id="dlv_abc", endpoint_id="whk_123")
        context = structlog.contextvars.get_contextvars()
        assert context == {"delivery_id": "dlv_abc", "endpoint_id": "whk_123"}

    def test_clear_context(self):
        """Should clear all bound context."""
        bind_context(delivery_id="dlv_abc")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_unbind_specific_context(self):
        """Should unbind specific context keys."""
        bind_context(delivery_id="dlv_abc", attempt=2)
        unbind_context("attempt")
        assert structlog.contextvars.get_contextvars() == {"delivery_id": "dlv_abc"}


class TestLoggerUsage:
    """Tests for logger usage patterns."""

    def test_log_with_kwargs(self):
        """Should accept keyword arguments for structured data."""
        configure_logging()
        logger = get_logger("test")
        logger.info("delivery attempted", delivery_id="dlv_1", status_code=200, duration_ms=42)

    def test_log_with_exception(self):
        """Should handle exception logging."""
        configure_logging()
        logger = get_logger("test")

        try:
            raise ValueError("test error")
        except ValueError:
            logger.exception("caught an error")

    def test_import_module_logger(self):
        """Should be able to import the pre-configured logger."""
        from hookrelay.logging import logger

        assert logger is not None
        logger.info("using module logger")
