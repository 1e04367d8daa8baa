"""Pydantic models for chunk ingestion and step reporting."""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .params import StepCounterParams, StepCounterParamsUpdate


class ChunkPayload(BaseModel):
    """One firmware chunk: base64 IMU samples plus optional temperatures."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(
        validation_alias=AliasChoices("device_id", "collar_id"),
        description="Device (collar) identifier",
    )
    imu_data: str | None = Field(default=None, description="Base64 packed 32-byte samples")
    temp_data: list[float] = Field(default_factory=list, description="Temperatures in °C, 1 Hz")
    temp_first_timestamp: str | None = Field(
        default=None,
        description="ISO 8601 time of the first temperature reading",
    )
    real_time: str | None = Field(
        default=None,
        description="ISO 8601 wall clock observed at start_sample",
    )
    start_sample: int | None = Field(default=None, description="Sample number at real_time")
    chunk_key: str | None = Field(default=None, description="Firmware chunk name")

    @field_validator("device_id")
    @classmethod
    def device_id_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("device_id must not be empty")
        return v

    @field_validator("temp_data", mode="before")
    @classmethod
    def temp_data_default(cls, v: Any) -> Any:
        return [] if v is None else v


class ChunkEnvelope(BaseModel):
    """Firmware upload format: ``{"data": {"chunk_00000000": {...}}}``."""

    data: dict[str, ChunkPayload] = Field(description="Chunks keyed by chunk name")
    new_session: bool = Field(default=False, description="Start a new session first")

    @field_validator("data")
    @classmethod
    def data_not_empty(cls, v: dict[str, ChunkPayload]) -> dict[str, ChunkPayload]:
        if not v:
            raise ValueError("data object must contain a chunk")
        return v

    def first_chunk(self) -> ChunkPayload:
        key, chunk = next(iter(self.data.items()))
        if chunk.chunk_key is None:
            chunk = chunk.model_copy(update={"chunk_key": key})
        return chunk


class ChunkResult(BaseModel):
    """Per-chunk output metric."""

    steps_in_chunk: int = Field(ge=0)
    cumulative_steps: int = Field(ge=0)
    running_steps: int = Field(default=0, ge=0)
    shake_removed: int = Field(default=0, ge=0)
    samples_processed: int = Field(ge=0)
    last_sample_number: int
    temp_avg_c: float | None = None
    session_id_used: str
    chunk_id: int | None = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ChunkRecord(BaseModel):
    """What gets persisted for each processed chunk."""

    device_id: str
    session_id: str
    chunk_key: str
    start_sample: int | None = None
    num_samples: int
    nominal_period_ms: float
    real_time: str | None = None
    temp_first_timestamp: str | None = None
    temp_data: list[float] = Field(default_factory=list)
    raw_imu_base64: str | None = None
    output_metric: ChunkResult


class SessionTotals(BaseModel):
    """Aggregates over a session's persisted chunk records."""

    cumulative_steps: int = 0
    last_sample_number: int = -1
    chunk_count: int = 0


class TemperatureChunk(BaseModel):
    temp_data: list[float] = Field(default_factory=list)
    temp_first_timestamp: str | None = None


class SessionSummary(BaseModel):
    """Step totals for a session, with live counters when it is cached."""

    device_id: str
    session_id: str
    cumulative_steps: int
    last_sample_number: int
    chunk_count: int
    cached: bool = False
    running_steps: int | None = None
    shake_removed: int | None = None


class SessionCreateRequest(BaseModel):
    device_id: str = Field(validation_alias=AliasChoices("device_id", "collar_id"))


class StepCounterParamsRequest(StepCounterParamsUpdate):
    """Parameter update addressed to a device session."""

    device_id: str = Field(validation_alias=AliasChoices("device_id", "collar_id"))
    session_id: str

    def to_update(self) -> StepCounterParamsUpdate:
        return StepCounterParamsUpdate.model_validate(
            self.model_dump(exclude={"device_id", "session_id"}, exclude_none=True)
        )


class StepCounterParamsResponse(BaseModel):
    device_id: str
    session_id: str
    params: StepCounterParams
    status: str = Field(description="'stored' or 'defaults'")


class StepCountEvent(BaseModel):
    """Step count event published for downstream consumers."""

    schema_version: str = Field(default="1.0.0")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    device_id: str
    session_id: str
    message_id: str = Field(default_factory=lambda: str(uuid4()))
    chunk_key: str
    step_count: int = Field(description="Steps detected in this chunk")
    cumulative_steps: int
    running_steps: int
    shake_removed: int
    samples_processed: int
    last_sample_number: int
    temp_avg_c: float | None = None


class HealthCheck(BaseModel):
    status: str
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    details: dict[str, Any] = Field(default_factory=dict)
