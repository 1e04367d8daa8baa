"""Session management and per-device read endpoints."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from ..api.deps import get_engine
from ..engine import SessionStepEngine
from ..errors import StorageError, UnknownSessionError
from ..models import SessionCreateRequest, SessionSummary

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["sessions"])


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(
    request: SessionCreateRequest,
    engine: SessionStepEngine = Depends(get_engine),
) -> JSONResponse:
    """Create a session for a device and make it the active one."""
    try:
        session_id = await engine.create_session(request.device_id)
    except StorageError as e:
        logger.error("Failed to create session", device_id=request.device_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create session",
        )

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={
            "status": "success",
            "device_id": request.device_id,
            "session_id": session_id,
        },
    )


@router.get("/devices/{device_id}/sessions/{session_id}")
async def get_session_summary(
    device_id: str,
    session_id: str,
    engine: SessionStepEngine = Depends(get_engine),
) -> SessionSummary:
    try:
        return await engine.session_summary(device_id, session_id)
    except UnknownSessionError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StorageError as e:
        logger.error(
            "Failed to load session summary",
            device_id=device_id,
            session_id=session_id,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load session summary",
        )


@router.get("/devices/{device_id}/temperature")
async def get_temperature_timeline(
    device_id: str,
    session_id: str | None = None,
    engine: SessionStepEngine = Depends(get_engine),
) -> JSONResponse:
    """Temperature readings for a device, optionally limited to one session."""
    try:
        readings = await engine.temperature_timeline(device_id, session_id)
    except UnknownSessionError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StorageError as e:
        logger.error("Failed to load temperature data", device_id=device_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load temperature data",
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "device_id": device_id,
            "session_id": session_id,
            "count": len(readings),
            "readings": [r.model_dump(mode="json") for r in readings],
        },
    )
