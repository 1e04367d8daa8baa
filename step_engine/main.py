"""Main FastAPI application for the collar step engine."""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from . import __version__, metrics
from .config import settings
from .engine import SessionStepEngine
from .logging import setup_logging
from .models import HealthCheck
from .publisher import StepEventPublisher
from .routers import chunks, params, sessions
from .storage import build_store

logger = structlog.get_logger(__name__)


async def _start_publisher(max_retries: int = 5, retry_delay: float = 5.0) -> StepEventPublisher:
    publisher = StepEventPublisher(settings)
    for attempt in range(max_retries):
        try:
            await publisher.start()
            return publisher
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(
                    f"Failed to connect to Kafka (attempt {attempt + 1}/{max_retries}), retrying in {retry_delay}s",
                    error=str(e),
                )
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to start Kafka producer after all retries", error=str(e))
                raise
    return publisher


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown."""
    setup_logging(settings)
    logger.info(
        "Starting step engine service",
        version=__version__,
        storage="postgres" if settings.database_url else "memory",
    )

    store = build_store(settings)
    await store.start()

    engine = SessionStepEngine(store, settings)
    await engine.start()

    app.state.store = store
    app.state.engine = engine
    app.state.publisher = await _start_publisher() if settings.kafka_enabled else None

    yield

    logger.info("Shutting down step engine service")

    try:
        await engine.stop()
        if app.state.publisher is not None:
            await app.state.publisher.stop()
        await store.stop()
    except Exception as e:
        logger.error("Error during shutdown", error=str(e))


app = FastAPI(
    title="Collar Step Engine",
    description="Step counting and temperature timelines from collar IMU chunks",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(chunks.router)
app.include_router(sessions.router)
app.include_router(params.router)


@app.get("/", status_code=status.HTTP_200_OK)
async def root() -> JSONResponse:
    """Root endpoint with basic service information."""
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "service": settings.service_name,
            "version": __version__,
            "endpoints": {
                "health": "/healthz",
                "readiness": "/readyz",
                "chunk_upload": "/chunks",
                "sessions": "/sessions",
                "session_summary": "/devices/{device_id}/sessions/{session_id}",
                "temperature": "/devices/{device_id}/temperature",
                "step_counter_params": "/step-counter-params",
                "metrics": "/metrics",
                "docs": "/docs",
            },
        },
    )


@app.get("/healthz", status_code=status.HTTP_200_OK)
async def health_check(request: Request) -> HealthCheck:
    """Liveness check."""
    engine: SessionStepEngine = request.app.state.engine
    return HealthCheck(
        status="healthy",
        version=__version__,
        details={"cached_sessions": engine.cached_session_count},
    )


@app.get("/readyz", status_code=status.HTTP_200_OK)
async def readiness_check(request: Request) -> HealthCheck:
    """Readiness check; reports the store and Kafka connections."""
    try:
        store_ready = await request.app.state.store.ping()
    except Exception as e:
        logger.warning("Store ping failed", error=str(e))
        store_ready = False

    publisher = request.app.state.publisher
    details = {"store_connected": store_ready}
    if publisher is not None:
        details["kafka_connected"] = publisher.is_connected
    ready = all(details.values())

    return HealthCheck(
        status="healthy" if ready else "unhealthy",
        version=__version__,
        details=details,
    )


@app.get("/metrics")
async def get_metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


@app.middleware("http")
async def add_metrics_middleware(request: Request, call_next):
    """Middleware to collect HTTP request metrics."""
    if not settings.metrics_enabled:
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    metrics.request_duration.labels(method=request.method, endpoint=endpoint).observe(duration)
    metrics.requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status_code=response.status_code,
    ).inc()

    return response


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": "error", "message": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "step_engine.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
