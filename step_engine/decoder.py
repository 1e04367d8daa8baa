"""Decoding of the collar's binary IMU payload.

Each sample is a 32-byte little-endian record written by the collar firmware::

    [u32 sample_number][u32 device_timestamp_ms]
    [f32 ax][f32 ay][f32 az][f32 gx][f32 gy][f32 gz]

The layout must stay byte-for-byte compatible with deployed firmware.
"""

import base64
import binascii
import struct
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from .errors import DecodeError

logger = structlog.get_logger(__name__)

SAMPLE_STRUCT = struct.Struct("<IIffffff")
BYTES_PER_SAMPLE = SAMPLE_STRUCT.size  # 32


@dataclass(frozen=True, slots=True)
class MotionSample:
    """A single decoded IMU reading."""

    sample_number: int
    device_timestamp_ms: int
    ax: float
    ay: float
    az: float
    gx: float
    gy: float
    gz: float


def decode_samples(buffer: bytes) -> list[MotionSample]:
    """Decode raw bytes into motion samples.

    A trailing partial record is discarded with a warning.
    """
    remainder = len(buffer) % BYTES_PER_SAMPLE
    if remainder:
        logger.warning(
            "IMU payload length not a multiple of sample size",
            length=len(buffer),
            bytes_per_sample=BYTES_PER_SAMPLE,
            discarded_bytes=remainder,
        )
        buffer = buffer[: len(buffer) - remainder]

    return [MotionSample(*fields) for fields in SAMPLE_STRUCT.iter_unpack(buffer)]


def decode_imu_payload(imu_data: str | bytes | None) -> list[MotionSample]:
    """Decode the base64 ``imu_data`` field of a chunk.

    Missing ``=`` padding is restored before the strict decode.

    Raises:
        DecodeError: If the payload is missing or is not valid base64.
    """
    if imu_data is None or imu_data == "" or imu_data == b"":
        raise DecodeError("chunk missing imu_data")

    if isinstance(imu_data, str):
        imu_data = imu_data.strip().encode("ascii", errors="replace")
    imu_data += b"=" * (-len(imu_data) % 4)

    try:
        buffer = base64.b64decode(imu_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"imu_data is not valid base64: {e}") from e

    return decode_samples(buffer)


def encode_samples(samples: Iterable[MotionSample]) -> bytes:
    """Pack samples into the firmware wire format."""
    return b"".join(
        SAMPLE_STRUCT.pack(
            s.sample_number,
            s.device_timestamp_ms,
            s.ax,
            s.ay,
            s.az,
            s.gx,
            s.gy,
            s.gz,
        )
        for s in samples
    )
