"""Global test configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from step_engine.config import Settings
from step_engine.engine import SessionStepEngine
from step_engine.main import app
from step_engine.storage import InMemoryStepStore


@pytest.fixture()
def test_settings():
    """Settings with no external services."""
    return Settings(
        database_url=None,
        kafka_enabled=False,
        session_idle_seconds=60.0,
        log_format="text",
    )


@pytest.fixture()
def store():
    """Fresh in-memory store."""
    return InMemoryStepStore()


@pytest.fixture()
def engine(store, test_settings):
    """Engine over the in-memory store."""
    return SessionStepEngine(store, test_settings)


@pytest.fixture()
def client():
    """Test client running the application lifespan."""
    with TestClient(app) as client:
        yield client
