"""Step counter parameter endpoints."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from ..api.deps import get_engine
from ..engine import SessionStepEngine
from ..errors import MissingSessionError, StorageError, UnknownSessionError
from ..models import StepCounterParamsRequest, StepCounterParamsResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/step-counter-params", tags=["params"])


@router.post("", status_code=status.HTTP_200_OK)
async def update_step_counter_params(
    request: StepCounterParamsRequest,
    engine: SessionStepEngine = Depends(get_engine),
) -> StepCounterParamsResponse:
    """Merge a partial parameter update into a session's stored parameters.

    Only the fields present in the body change. The session's in-memory
    counter is rebuilt with the new parameters on its next chunk.
    """
    try:
        params = await engine.update_parameters(
            request.device_id,
            request.session_id,
            request.to_update(),
        )
    except UnknownSessionError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except StorageError as e:
        logger.error(
            "Failed to update step counter parameters",
            device_id=request.device_id,
            session_id=request.session_id,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update step counter parameters",
        )

    return StepCounterParamsResponse(
        device_id=request.device_id,
        session_id=request.session_id,
        params=params,
        status="stored",
    )


@router.get("/{device_id}")
async def get_step_counter_params(
    device_id: str,
    session_id: str | None = None,
    engine: SessionStepEngine = Depends(get_engine),
) -> StepCounterParamsResponse:
    """Stored parameters for a session, or the defaults when none are stored."""
    try:
        resolved, params, stored = await engine.get_parameters(device_id, session_id)
    except (MissingSessionError, UnknownSessionError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StorageError as e:
        logger.error("Failed to load step counter parameters", device_id=device_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load step counter parameters",
        )

    return StepCounterParamsResponse(
        device_id=device_id,
        session_id=resolved,
        params=params,
        status="stored" if stored else "defaults",
    )
