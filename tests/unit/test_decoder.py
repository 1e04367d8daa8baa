"""Unit tests for IMU payload decoding."""

import base64
import struct

import pytest

from step_engine.decoder import (
    BYTES_PER_SAMPLE,
    MotionSample,
    decode_imu_payload,
    decode_samples,
    encode_samples,
)
from step_engine.errors import DecodeError
from tests.test_helpers import make_samples


class TestDecodeSamples:
    """Test decoding of the 32-byte sample records."""

    def test_record_size(self):
        assert BYTES_PER_SAMPLE == 32

    def test_decodes_firmware_layout(self):
        """Test a record packed field by field the way the firmware writes it."""
        raw = struct.pack("<II", 42, 1234) + struct.pack("<6f", 0.5, -1.0, 9.75, 0.25, 0.0, -2.5)

        samples = decode_samples(raw)

        assert samples == [
            MotionSample(
                sample_number=42,
                device_timestamp_ms=1234,
                ax=0.5,
                ay=-1.0,
                az=9.75,
                gx=0.25,
                gy=0.0,
                gz=-2.5,
            ),
        ]

    def test_preserves_buffer_order(self):
        samples = make_samples([10.0, 11.0, 12.0], start=7)

        decoded = decode_samples(encode_samples(samples))

        assert [s.sample_number for s in decoded] == [7, 8, 9]
        assert [s.az for s in decoded] == [10.0, 11.0, 12.0]

    @pytest.mark.parametrize("remainder", [1, 16, 31])
    def test_trailing_partial_record_is_dropped(self, remainder):
        """Test a short trailing record is discarded without an error."""
        buffer = encode_samples(make_samples([10.0] * 3)) + b"\x00" * remainder

        samples = decode_samples(buffer)

        assert len(samples) == 3

    def test_empty_buffer(self):
        assert decode_samples(b"") == []


class TestDecodeImuPayload:
    """Test base64 transport decoding."""

    def test_valid_payload(self):
        samples = make_samples([10.0, 12.0])
        payload = base64.b64encode(encode_samples(samples)).decode()

        assert decode_imu_payload(payload) == samples

    def test_unpadded_payload(self):
        samples = make_samples([10.0])
        payload = base64.b64encode(encode_samples(samples)).decode()

        assert payload.endswith("=")
        assert decode_imu_payload(payload.rstrip("=")) == samples

    @pytest.mark.parametrize("payload", [None, ""])
    def test_missing_payload(self, payload):
        with pytest.raises(DecodeError, match="missing imu_data"):
            decode_imu_payload(payload)

    def test_invalid_base64(self):
        with pytest.raises(DecodeError, match="not valid base64"):
            decode_imu_payload("not*base64!")
