"""Chunk upload endpoint used by collar firmware."""

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from ..api.deps import get_engine, get_publisher
from ..engine import SessionStepEngine
from ..errors import DecodeError, MissingSessionError, StorageError
from ..models import ChunkEnvelope, ChunkResult
from ..publisher import StepEventPublisher

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["chunks"])


@router.put("/chunks", status_code=status.HTTP_200_OK)
async def upload_chunk(
    payload: dict[str, Any] = Body(...),
    engine: SessionStepEngine = Depends(get_engine),
    publisher: StepEventPublisher | None = Depends(get_publisher),
) -> ChunkResult:
    """Process one firmware chunk and return its step metrics.

    The body is the firmware envelope ``{"data": {"chunk_xxx": {...}},
    "new_session": false}``. Malformed envelopes and undecodable sample
    payloads are rejected with 400, as is a chunk for a device without an
    active session.
    """
    try:
        envelope = ChunkEnvelope.model_validate(payload)
    except ValidationError as e:
        logger.warning("Rejected malformed chunk envelope", error_count=e.error_count())
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Malformed chunk envelope: {e}",
        )

    chunk = envelope.first_chunk()

    try:
        result = await engine.process_chunk(chunk, new_session=envelope.new_session)
    except (DecodeError, MissingSessionError) as e:
        logger.warning(
            "Chunk rejected",
            device_id=chunk.device_id,
            chunk_key=chunk.chunk_key,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        logger.error(
            "Failed to process chunk",
            device_id=chunk.device_id,
            chunk_key=chunk.chunk_key,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process chunk",
        )

    if publisher is not None and publisher.is_connected:
        try:
            await publisher.publish(chunk.device_id, chunk.chunk_key or "", result)
        except Exception as e:
            # The chunk is already persisted; the event is best effort.
            logger.error(
                "Failed to publish step event",
                device_id=chunk.device_id,
                chunk_key=chunk.chunk_key,
                error=str(e),
            )

    return result
