"""
Subprocess-based transcription for GPU isolation

Spawns a fresh `holdtype transcribe-worker` process for each transcription.
The worker loads the model, transcribes, writes one response line and exits,
so all GPU memory is released between utterances. Model loading happens
once per transcription in exchange.
"""

import logging
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np

from holdtype.config import WhisperConfig
from holdtype.errors import ProtocolError, TranscribeError
from holdtype.ipc import SAMPLE_RATE, WorkerResponse, encode_samples

logger = logging.getLogger(__name__)

WORKER_COMMAND = (sys.executable, "-m", "holdtype.cli", "transcribe-worker")


class SubprocessTranscriber:
    """
    Transcriber that runs each call in its own worker process

    Protocol per call:
    - write the binary request to the worker's stdin, then close it
    - read stdout to EOF and parse the last line as the JSON response
    - reap the worker; stderr is logged when it exited non-zero
    """

    def __init__(
        self,
        config: WhisperConfig,
        config_path: Optional[Path] = None,
        worker_command: Sequence[str] = WORKER_COMMAND,
    ):
        """
        Initialize subprocess transcriber

        Args:
            config: Whisper settings passed to the worker on its command line
            config_path: Config file the worker should load, if any
            worker_command: Command that starts a worker, without arguments
        """
        self.config = config
        self.config_path = config_path
        self._worker_command = list(worker_command)
        self._active: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()

    def build_command(self) -> List[str]:
        """Build the worker command line"""
        cmd = list(self._worker_command)

        if self.config_path is not None:
            cmd += ["--config", str(self.config_path)]

        cmd += ["--model", self.config.model]
        cmd += ["--language", self.config.language]
        if self.config.translate:
            cmd.append("--translate")
        if self.config.threads is not None:
            cmd += ["--threads", str(self.config.threads)]

        return cmd

    def transcribe(self, samples: np.ndarray) -> str:
        """
        Transcribe audio in a fresh worker process

        Args:
            samples: Mono float32 audio at 16 kHz

        Returns:
            Transcribed text

        Raises:
            TranscribeError: On empty input, spawn or pipe failure,
                             malformed response, or a worker-reported error
        """
        if len(samples) == 0:
            raise TranscribeError("Empty audio buffer")

        payload = encode_samples(samples)
        logger.debug(
            f"Spawning worker for {len(samples) / SAMPLE_RATE:.2f}s of audio ({len(samples)} samples)"
        )

        start = time.monotonic()
        proc = self._spawn_worker()
        try:
            # communicate() writes the whole payload, closes stdin (EOF marks
            # the end of the request) and drains stdout and stderr together
            stdout, stderr = proc.communicate(payload)
        except OSError as e:
            proc.kill()
            proc.wait()
            raise TranscribeError(f"Failed to communicate with transcribe-worker: {e}") from e
        finally:
            with self._lock:
                self._active = None

        err_output = stderr.decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            if err_output:
                logger.warning(f"Worker stderr: {err_output}")
            logger.debug(f"Worker exited with status {proc.returncode}")
        elif err_output:
            logger.debug(f"Worker stderr: {err_output}")

        response = parse_worker_output(stdout)

        logger.debug(f"Subprocess transcription completed in {time.monotonic() - start:.2f}s")

        if response.ok:
            if response.text is None:
                raise ProtocolError("Worker returned ok but no text")
            return response.text
        raise TranscribeError(response.error or "Unknown worker error")

    def close(self) -> None:
        """Kill the worker of an in-flight call, if any"""
        with self._lock:
            proc = self._active
        if proc is not None and proc.poll() is None:
            logger.info("Killing in-flight transcribe-worker")
            proc.kill()

    def _spawn_worker(self) -> subprocess.Popen:
        cmd = self.build_command()
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise TranscribeError(f"Failed to spawn transcribe-worker: {e}") from e

        with self._lock:
            self._active = proc
        return proc


def parse_worker_output(output: bytes) -> WorkerResponse:
    """
    Parse the worker's stdout

    Only the last line is the response; earlier lines are ignored.

    Args:
        output: Everything the worker wrote to stdout

    Returns:
        Parsed response

    Raises:
        ProtocolError: If there is no output or the last line is not a response
    """
    lines = output.decode("utf-8", errors="replace").splitlines()
    if not lines:
        raise ProtocolError("Worker produced no output")
    return WorkerResponse.from_json(lines[-1])
