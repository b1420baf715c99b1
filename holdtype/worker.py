"""
Transcription worker process

Entry point of `holdtype transcribe-worker`. Reads one audio request from
stdin, loads the model, transcribes, writes one JSON response line to
stdout and exits. Every failure is reported as an error response; log
messages go to stderr only.
"""

import logging
from typing import BinaryIO, Callable, TextIO

from holdtype.config import WhisperConfig
from holdtype.errors import ProtocolError
from holdtype.ipc import SAMPLE_RATE, WorkerResponse, read_samples, write_response
from holdtype.transcriber import Transcriber, WhisperTranscriber

logger = logging.getLogger(__name__)

TranscriberFactory = Callable[[WhisperConfig], Transcriber]


def run_worker(
    config: WhisperConfig,
    stdin: BinaryIO,
    stdout: TextIO,
    transcriber_factory: TranscriberFactory = WhisperTranscriber,
) -> int:
    """
    Run one transcription request

    Args:
        config: Whisper model settings
        stdin: Binary stream carrying the request
        stdout: Text stream receiving the response line
        transcriber_factory: Builds the in-process transcriber

    Returns:
        Exit code (always 0 once a response has been written)
    """
    try:
        samples = read_samples(stdin)
    except ProtocolError as e:
        logger.error(f"Bad request: {e}")
        write_response(stdout, WorkerResponse.failure(str(e)))
        return 0

    logger.info(f"Received {len(samples)} samples ({len(samples) / SAMPLE_RATE:.2f}s)")

    try:
        transcriber = transcriber_factory(config)
    except Exception as e:
        logger.error(f"Model load failed: {e}")
        write_response(stdout, WorkerResponse.failure(str(e)))
        return 0

    logger.info("Starting transcription...")
    try:
        text = transcriber.transcribe(samples)
    except Exception as e:
        logger.error(f"Transcription failed: {e}")
        write_response(stdout, WorkerResponse.failure(str(e)))
        return 0
    finally:
        transcriber.close()

    logger.info(f"Transcription complete: {len(text)} chars")
    write_response(stdout, WorkerResponse.success(text))
    return 0
