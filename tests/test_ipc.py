"""Tests for the worker request codec and response protocol."""

from __future__ import annotations

import io
import json
import struct

import numpy as np
import pytest

from holdtype.errors import ProtocolError
from holdtype.ipc import (
    HEADER_SIZE,
    MAX_SAMPLES,
    WorkerResponse,
    decode_header,
    decode_request,
    encode_samples,
    read_samples,
    write_response,
)


# ---------------------------------------------------------------
# Request codec
# ---------------------------------------------------------------

@pytest.mark.parametrize("count", [1, 3, 16000])
def test_encode_decode_round_trip(count: int) -> None:
    rng = np.random.default_rng(count)
    samples = rng.uniform(-1.0, 1.0, count).astype(np.float32)

    payload = encode_samples(samples)

    assert len(payload) == 4 + 4 * count
    np.testing.assert_array_equal(decode_request(payload), samples)


def test_round_trip_at_maximum_sample_count() -> None:
    samples = np.linspace(-1.0, 1.0, MAX_SAMPLES, dtype=np.float32)

    payload = encode_samples(samples)

    assert len(payload) == 4 + 4 * MAX_SAMPLES
    np.testing.assert_array_equal(read_samples(io.BytesIO(payload)), samples)


def test_encoding_is_little_endian_regardless_of_input_byte_order() -> None:
    samples = np.array([1.0, -2.5], dtype=">f4")

    payload = encode_samples(samples)

    assert payload[:4] == b"\x02\x00\x00\x00"
    assert payload[4:8] == struct.pack("<f", 1.0)
    assert payload[8:12] == struct.pack("<f", -2.5)


def test_encode_accepts_plain_sequences() -> None:
    payload = encode_samples([0.5, 0.25])

    np.testing.assert_array_equal(decode_request(payload), np.array([0.5, 0.25], dtype=np.float32))


def test_encode_rejects_oversized_buffer() -> None:
    with pytest.raises(ProtocolError, match="too large"):
        encode_samples(np.zeros(MAX_SAMPLES + 1, dtype=np.float32))


def test_decode_header_rejects_zero_count() -> None:
    with pytest.raises(ProtocolError, match="Empty audio buffer"):
        decode_header(struct.pack("<I", 0))


def test_decode_header_rejects_count_above_ceiling() -> None:
    with pytest.raises(ProtocolError, match="Sample count too large"):
        decode_header(struct.pack("<I", MAX_SAMPLES + 1))


def test_decode_request_rejects_length_mismatch() -> None:
    payload = encode_samples(np.ones(4, dtype=np.float32))

    with pytest.raises(ProtocolError, match="Expected 16 bytes"):
        decode_request(payload[:-2])


def test_read_samples_truncated_header() -> None:
    with pytest.raises(ProtocolError, match="sample count"):
        read_samples(io.BytesIO(b"\x01\x00"))


def test_read_samples_truncated_payload() -> None:
    payload = encode_samples(np.ones(10, dtype=np.float32))

    with pytest.raises(ProtocolError, match="unexpected end of stream"):
        read_samples(io.BytesIO(payload[:20]))


def test_read_samples_does_not_read_past_oversized_header() -> None:
    stream = io.BytesIO(struct.pack("<I", MAX_SAMPLES + 1) + b"\x00" * 64)

    with pytest.raises(ProtocolError):
        read_samples(stream)

    assert stream.tell() == HEADER_SIZE


class _TrickleStream:
    """Returns at most 3 bytes per read, like a slow pipe."""

    def __init__(self, data: bytes) -> None:
        self._buf = io.BytesIO(data)

    def read(self, size: int) -> bytes:
        return self._buf.read(min(size, 3))


def test_read_samples_handles_short_reads() -> None:
    samples = np.arange(5, dtype=np.float32)

    result = read_samples(_TrickleStream(encode_samples(samples)))

    np.testing.assert_array_equal(result, samples)


# ---------------------------------------------------------------
# Worker response
# ---------------------------------------------------------------

def test_success_response_serialization() -> None:
    line = WorkerResponse.success("Hello world").to_json()

    assert json.loads(line) == {"ok": True, "text": "Hello world"}
    assert "\n" not in line


def test_error_response_serialization() -> None:
    line = WorkerResponse.failure("Something went wrong").to_json()

    assert json.loads(line) == {"ok": False, "error": "Something went wrong"}


def test_error_response_always_has_message() -> None:
    response = WorkerResponse.failure("")

    assert response.error
    assert json.loads(response.to_json())["error"]


@pytest.mark.parametrize(
    "response",
    [
        WorkerResponse.success("hello world"),
        WorkerResponse.success(""),
        WorkerResponse.success("héllo\nwörld ✓"),
        WorkerResponse.failure("model not found"),
    ],
)
def test_response_round_trip(response: WorkerResponse) -> None:
    assert WorkerResponse.from_json(response.to_json()) == response


def test_success_without_text_cannot_be_serialized() -> None:
    with pytest.raises(ProtocolError, match="no text"):
        WorkerResponse(ok=True).to_json()


def test_parse_success_and_error_lines() -> None:
    success = WorkerResponse.from_json('{"ok": true, "text": "Hello world"}')
    assert success.ok is True
    assert success.text == "Hello world"

    error = WorkerResponse.from_json('{"ok": false, "error": "Model not found"}')
    assert error.ok is False
    assert error.error == "Model not found"


def test_parse_success_without_text_keeps_text_absent() -> None:
    response = WorkerResponse.from_json('{"ok": true}')

    assert response.ok is True
    assert response.text is None


@pytest.mark.parametrize(
    "line",
    ["", "not json", "[1, 2]", '{"text": "hi"}', '{"ok": "yes"}', '{"ok": true, "text": 5}'],
)
def test_parse_rejects_malformed_lines(line: str) -> None:
    with pytest.raises(ProtocolError):
        WorkerResponse.from_json(line)


def test_write_response_writes_one_line() -> None:
    out = io.StringIO()

    write_response(out, WorkerResponse.success("hi"))

    assert out.getvalue() == '{"ok": true, "text": "hi"}\n'
