"""
Transcription worker IPC protocol

Binary audio request on the worker's stdin, one JSON response line on
its stdout:

    stdin:  [u32 sample_count (LE)][sample_count x f32 samples (LE)]
    stdout: {"ok": true, "text": "..."} or {"ok": false, "error": "..."}

End of the request is signalled by closing stdin.
"""

import json
import logging
import struct
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional, Sequence, Union

import numpy as np

from holdtype.errors import ProtocolError

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000

# Request framing: 4-byte sample count (little-endian) + float32 payload
HEADER_SIZE = 4
SAMPLE_SIZE = 4
MAX_SAMPLES = SAMPLE_RATE * 60 * 10  # 10 minutes, ~38MB

_HEADER = struct.Struct("<I")
_SAMPLE_DTYPE = np.dtype("<f4")


def encode_samples(samples: Union[np.ndarray, Sequence[float]]) -> bytes:
    """
    Encode audio samples as a worker request payload

    Args:
        samples: Mono float samples at 16 kHz

    Returns:
        Header followed by the little-endian float32 samples

    Raises:
        ProtocolError: If there are more samples than the worker accepts
    """
    audio = np.asarray(samples, dtype=np.float32).reshape(-1)
    if len(audio) > MAX_SAMPLES:
        raise ProtocolError(f"Sample count too large: {len(audio)} (max {MAX_SAMPLES})")
    return _HEADER.pack(len(audio)) + audio.astype(_SAMPLE_DTYPE, copy=False).tobytes()


def decode_header(header: bytes) -> int:
    """
    Decode the sample count and check it against the protocol limits

    Args:
        header: Exactly HEADER_SIZE bytes

    Returns:
        Number of samples that follow the header

    Raises:
        ProtocolError: If the count is zero or above MAX_SAMPLES
    """
    if len(header) != HEADER_SIZE:
        raise ProtocolError(f"Invalid header size: {len(header)} bytes")

    sample_count = _HEADER.unpack(header)[0]

    if sample_count > MAX_SAMPLES:
        raise ProtocolError(f"Sample count too large: {sample_count} (max {MAX_SAMPLES})")
    if sample_count == 0:
        raise ProtocolError("Empty audio buffer")

    return sample_count


def decode_samples(payload: bytes) -> np.ndarray:
    """Decode little-endian float32 bytes into a native float32 array"""
    if len(payload) % SAMPLE_SIZE:
        raise ProtocolError(f"Sample payload is not a multiple of {SAMPLE_SIZE} bytes")
    return np.frombuffer(payload, dtype=_SAMPLE_DTYPE).astype(np.float32)


def decode_request(payload: bytes) -> np.ndarray:
    """
    Decode a complete request payload held in memory

    Args:
        payload: Header plus samples, as produced by encode_samples

    Returns:
        Decoded samples
    """
    sample_count = decode_header(payload[:HEADER_SIZE])
    body = payload[HEADER_SIZE:]
    expected = sample_count * SAMPLE_SIZE
    if len(body) != expected:
        raise ProtocolError(f"Expected {expected} bytes of samples, got {len(body)}")
    return decode_samples(body)


def read_samples(stream: BinaryIO) -> np.ndarray:
    """
    Read one request from a binary stream

    The header is validated before the sample payload is read, so an
    oversized or empty request never allocates a sample buffer.

    Args:
        stream: Readable binary stream (the worker's stdin)

    Returns:
        Decoded samples

    Raises:
        ProtocolError: On truncated input or an invalid sample count
    """
    header = _read_exact(stream, HEADER_SIZE, "sample count")
    sample_count = decode_header(header)
    payload = _read_exact(stream, sample_count * SAMPLE_SIZE, "audio samples")
    return decode_samples(payload)


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    """
    Read exactly size bytes from a stream

    Args:
        stream: Readable binary stream
        size: Number of bytes to read
        what: Description used in error messages

    Returns:
        Received bytes

    Raises:
        ProtocolError: If the stream ends or fails before size bytes arrive
    """
    chunks = []
    received = 0
    while received < size:
        try:
            chunk = stream.read(size - received)
        except OSError as e:
            raise ProtocolError(f"Failed to read {what}: {e}") from e
        if not chunk:
            raise ProtocolError(
                f"Failed to read {what}: unexpected end of stream ({received} of {size} bytes)"
            )
        chunks.append(chunk)
        received += len(chunk)
    return b"".join(chunks)


@dataclass(frozen=True)
class WorkerResponse:
    """Result of one worker run: text on success, an error message otherwise"""
    ok: bool
    text: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, text: str) -> "WorkerResponse":
        """Create a success response"""
        return cls(ok=True, text=text)

    @classmethod
    def failure(cls, message: str) -> "WorkerResponse":
        """Create an error response"""
        return cls(ok=False, error=message or "Unknown worker error")

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            if self.text is None:
                raise ProtocolError("Success response has no text")
            return {"ok": True, "text": self.text}
        return {"ok": False, "error": self.error or "Unknown worker error"}

    def to_json(self) -> str:
        """Serialize as a single line of JSON"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, line: str) -> "WorkerResponse":
        """
        Parse a response line

        Args:
            line: One line of worker stdout

        Returns:
            Parsed response. Fields missing from the line are None.

        Raises:
            ProtocolError: If the line is not a valid response object
        """
        try:
            data = json.loads(line)
        except ValueError as e:
            raise ProtocolError(f"Failed to parse worker response: {e} (output: {line!r})") from e

        if not isinstance(data, dict) or not isinstance(data.get("ok"), bool):
            raise ProtocolError(f"Worker response has no boolean 'ok' field (output: {line!r})")

        text = data.get("text")
        error = data.get("error")
        if text is not None and not isinstance(text, str):
            raise ProtocolError("Worker response 'text' is not a string")
        if error is not None and not isinstance(error, str):
            raise ProtocolError("Worker response 'error' is not a string")

        return cls(ok=data["ok"], text=text, error=error)


def write_response(stream, response: WorkerResponse) -> None:
    """
    Write a response line to a text stream and flush it

    Args:
        stream: Writable text stream (the worker's stdout)
        response: Response to send
    """
    stream.write(response.to_json() + "\n")
    stream.flush()
