"""API dependencies."""

from fastapi import Request

from ..engine import SessionStepEngine
from ..publisher import StepEventPublisher


async def get_engine(request: Request) -> SessionStepEngine:
    """Get the session step engine."""
    return request.app.state.engine


async def get_publisher(request: Request) -> StepEventPublisher | None:
    """Get the step event publisher, if Kafka output is enabled."""
    return getattr(request.app.state, "publisher", None)
