"""Unit tests for configuration management."""

import os
from unittest.mock import patch

from step_engine.config import Settings


class TestSettingsDefault:
    """Test default configuration values."""

    def test_default_values(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.service_name == "collar-step-engine"
        assert settings.port == 8014
        assert settings.database_url is None
        assert settings.nominal_period_ms == 10.0
        assert settings.temperature_interval_ms == 1000
        assert settings.session_idle_seconds == 1800.0
        assert settings.kafka_enabled is False
        assert settings.kafka_output_topic == "device.health.steps.raw"
        assert settings.metrics_enabled is True


class TestSettingsEnvironmentVariables:
    """Test configuration from environment variables."""

    def test_prefixed_variables(self):
        env_vars = {
            "STEP_ENGINE_DATABASE_URL": "postgresql://loom@db/steps",
            "STEP_ENGINE_SESSION_IDLE_SECONDS": "120",
            "STEP_ENGINE_KAFKA_ENABLED": "true",
            "STEP_ENGINE_LOG_LEVEL": "DEBUG",
        }

        with patch.dict(os.environ, env_vars):
            settings = Settings(_env_file=None)

        assert settings.database_url == "postgresql://loom@db/steps"
        assert settings.session_idle_seconds == 120.0
        assert settings.kafka_enabled is True
        assert settings.log_level == "DEBUG"
