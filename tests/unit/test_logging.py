"""Unit tests for structured logging setup."""

import logging

import pytest
import structlog

from step_engine import __version__
from step_engine.config import Settings
from step_engine.logging.setup import QUIET_LOGGERS, service_context, setup_logging


@pytest.fixture()
def restore_logging():
    levels = {name: logging.getLogger(name).level for name in QUIET_LOGGERS}
    yield
    structlog.reset_defaults()
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


class TestServiceContext:
    """Test the identity processor."""

    def test_adds_service_fields(self):
        settings = Settings(_env_file=None, service_name="steps-test", environment="staging")
        processor = service_context(settings)

        event = processor(None, "info", {"event": "Chunk processed"})

        assert event == {
            "event": "Chunk processed",
            "service": "steps-test",
            "environment": "staging",
            "version": __version__,
        }

    def test_keeps_explicit_fields(self):
        processor = service_context(Settings(_env_file=None))

        event = processor(None, "info", {"event": "x", "service": "override"})

        assert event["service"] == "override"


class TestSetupLogging:
    """Test structlog configuration."""

    @pytest.mark.parametrize("log_format", ["json", "text"])
    def test_configures_renderer(self, restore_logging, log_format):
        settings = Settings(_env_file=None, log_format=log_format, log_level="DEBUG")

        logger = setup_logging(settings)

        renderer = structlog.get_config()["processors"][-1]
        expected = structlog.processors.JSONRenderer if log_format == "json" else structlog.dev.ConsoleRenderer
        assert isinstance(renderer, expected)
        assert logger is not None

    def test_quiets_client_libraries(self, restore_logging):
        setup_logging(Settings(_env_file=None, log_level="DEBUG"))

        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING
