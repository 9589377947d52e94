"""Tests for memorylane structured logging."""

import logging

import structlog
from structlog.testing import capture_logs

from memorylane.logging import (
    NOISY_LOGGERS,
    SERVICE_NAME,
    _add_service,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    log_context,
)


class TestConfigureLogging:
    """Tests for logging configuration."""

    def test_configure_with_defaults(self):
        """Should configure with INFO level and JSON format by default."""
        configure_logging()
        get_logger("test").info("test message")

        assert logging.getLogger().level == logging.INFO

    def test_configure_with_text_format(self):
        configure_logging(level="INFO", format="text")
        get_logger("test").info("text format message")

    def test_unknown_level_falls_back_to_info(self):
        configure_logging(level="CHATTY")

        assert logging.getLogger().level == logging.INFO

    def test_noisy_libraries_quieted(self):
        """HTTP and vector-store clients stay at WARNING outside DEBUG."""
        configure_logging(level="INFO")

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_noisy_libraries_follow_debug(self):
        configure_logging(level="DEBUG")

        assert logging.getLogger("httpx").level == logging.DEBUG
        configure_logging(level="INFO")

    def test_quieting_can_be_disabled(self):
        configure_logging(level="INFO", quiet_libraries=False)

        assert logging.getLogger("qdrant_client").level == logging.INFO
        configure_logging(level="INFO")


class TestGetLogger:
    """Tests for logger creation."""

    def test_loggers_are_callable(self):
        logger = get_logger("memorylane.scheduler")
        assert callable(getattr(logger, "info", None))
        assert callable(getattr(logger, "exception", None))

    def test_structured_fields_are_captured(self):
        """Keyword arguments should become structured event fields."""
        logger = get_logger("test")
        with capture_logs() as logs:
            logger.info("extraction_run_completed", created=3, merged=1)

        assert logs[0]["event"] == "extraction_run_completed"
        assert logs[0]["created"] == 3
        assert logs[0]["merged"] == 1
        assert logs[0]["log_level"] == "info"

    def test_service_processor(self):
        event = _add_service(None, "info", {"event": "x"})
        assert event["service"] == SERVICE_NAME

        explicit = _add_service(None, "info", {"event": "x", "service": "other"})
        assert explicit["service"] == "other"


class TestContextBinding:
    """Tests for context variable binding."""

    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_context(self):
        bind_context(run_id="run_123", file_path="/tmp/a.jsonl")
        context = structlog.contextvars.get_contextvars()
        assert context["run_id"] == "run_123"
        assert context["file_path"] == "/tmp/a.jsonl"

    def test_clear_context(self):
        bind_context(run_id="run_123")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_log_context_is_scoped(self):
        """Keys bound by the block disappear when it exits."""
        bind_context(component="scheduler")
        with log_context(run_id="run_123"):
            assert structlog.contextvars.get_contextvars() == {
                "component": "scheduler",
                "run_id": "run_123",
            }

        assert structlog.contextvars.get_contextvars() == {"component": "scheduler"}

    def test_log_context_restores_previous_value(self):
        bind_context(run_id="outer")
        with log_context(run_id="inner"):
            assert structlog.contextvars.get_contextvars()["run_id"] == "inner"

        assert structlog.contextvars.get_contextvars()["run_id"] == "outer"
