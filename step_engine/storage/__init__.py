"""Storage collaborators for the step engine."""

from ..config import Settings
from .base import StepStore, next_session_id
from .memory import InMemoryStepStore
from .postgres import PostgresStepStore


def build_store(settings: Settings) -> StepStore:
    """PostgreSQL when a database URL is configured, otherwise in-memory."""
    if settings.database_url:
        return PostgresStepStore(settings)
    return InMemoryStepStore()


__all__ = [
    "InMemoryStepStore",
    "PostgresStepStore",
    "StepStore",
    "build_store",
    "next_session_id",
]
