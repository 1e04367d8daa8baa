"""Wall-clock reconstruction for IMU samples and temperature readings."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .decoder import MotionSample

logger = structlog.get_logger(__name__)

DEFAULT_NOMINAL_PERIOD_MS = 10.0
DEFAULT_TEMPERATURE_INTERVAL_MS = 1000


class TimestampMapping(BaseModel):
    """Anchor between device sample numbers and wall-clock time."""

    model_config = ConfigDict(frozen=True)

    start_sample: int = Field(description="Sample number observed at reference time")
    reference_epoch_ms: int = Field(description="Wall clock at start_sample, epoch ms")
    nominal_period_ms: float = Field(
        default=DEFAULT_NOMINAL_PERIOD_MS,
        description="Milliseconds between consecutive sample numbers",
    )

    def timestamp_for(self, sample_number: int) -> int:
        elapsed = (sample_number - self.start_sample) * self.nominal_period_ms
        return self.reference_epoch_ms + round(elapsed)


@dataclass(frozen=True, slots=True)
class MappedSample:
    """A motion sample with its reconstructed timestamp."""

    sample: MotionSample
    timestamp_ms: int

    @property
    def sample_number(self) -> int:
        return self.sample.sample_number


class TemperatureReading(BaseModel):
    """One point of a temperature timeline."""

    temp_c: float
    timestamp: datetime


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO 8601 timestamp, treating naive values as UTC.

    Returns None instead of raising on missing or malformed input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value.strip())
        except (AttributeError, ValueError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def to_epoch_ms(value: datetime) -> int:
    return round(value.timestamp() * 1000)


def derive_mapping(
    real_time: str | datetime | None,
    start_sample: int | None,
    nominal_period_ms: float = DEFAULT_NOMINAL_PERIOD_MS,
) -> TimestampMapping | None:
    """Build a fresh mapping from a chunk's reference pair, if it has a valid one."""
    if start_sample is None:
        return None
    reference = parse_timestamp(real_time)
    if reference is None:
        if real_time is not None:
            logger.warning("Ignoring unparseable chunk reference time", real_time=str(real_time))
        return None
    return TimestampMapping(
        start_sample=start_sample,
        reference_epoch_ms=to_epoch_ms(reference),
        nominal_period_ms=nominal_period_ms,
    )


def resolve_mapping(
    fresh: TimestampMapping | None,
    persisted: TimestampMapping | None,
) -> TimestampMapping | None:
    return fresh or persisted


def map_samples(
    samples: Sequence[MotionSample],
    mapping: TimestampMapping | None,
) -> list[MappedSample]:
    """Assign timestamps; without a mapping the raw device clock is used."""
    if mapping is None:
        return [MappedSample(s, s.device_timestamp_ms) for s in samples]
    return [MappedSample(s, mapping.timestamp_for(s.sample_number)) for s in samples]


def average_temperature(temp_data: Sequence[float] | None) -> float | None:
    if not temp_data:
        return None
    return sum(temp_data) / len(temp_data)


def temperature_timeline(
    temp_data: Sequence[float] | None,
    temp_first_timestamp: str | datetime | None,
    interval_ms: int = DEFAULT_TEMPERATURE_INTERVAL_MS,
) -> list[TemperatureReading]:
    """Spread a chunk's temperature readings from its first timestamp.

    Chunks without a usable first timestamp contribute nothing.
    """
    first = parse_timestamp(temp_first_timestamp)
    if first is None or not temp_data:
        return []
    return [
        TemperatureReading(temp_c=value, timestamp=first + timedelta(milliseconds=i * interval_ms))
        for i, value in enumerate(temp_data)
    ]
