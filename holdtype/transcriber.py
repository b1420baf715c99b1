"""
Speech-to-text backends

The daemon talks to a Transcriber. Two variants exist:
- WhisperTranscriber keeps a faster-whisper model loaded in this process
- SubprocessTranscriber runs every transcription in a fresh worker process,
  so GPU memory is released when the worker exits
"""

import logging
import time
from pathlib import Path
from typing import Optional, Protocol

import numpy as np

from holdtype.config import WhisperConfig
from holdtype.errors import TranscribeError
from holdtype.ipc import SAMPLE_RATE

logger = logging.getLogger(__name__)


class Transcriber(Protocol):
    def transcribe(self, samples: np.ndarray) -> str: ...

    def close(self) -> None: ...


class WhisperTranscriber:
    """
    In-process transcriber using faster-whisper

    The model is loaded once at construction and kept in memory for the
    lifetime of the object.
    """

    def __init__(self, config: WhisperConfig):
        """
        Load the Whisper model

        Args:
            config: Whisper model settings

        Raises:
            TranscribeError: If faster-whisper is missing or the model fails to load
        """
        self.config = config

        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise TranscribeError(f"faster-whisper is not installed: {e}") from e

        logger.info(f"Loading Whisper model: {config.model}")
        start = time.monotonic()
        try:
            self._model = WhisperModel(
                config.model,
                device=config.device,
                compute_type=config.compute_type,
                cpu_threads=config.threads or 0,
            )
        except Exception as e:
            raise TranscribeError(f"Failed to load model {config.model!r}: {e}") from e
        logger.info(f"Whisper model loaded: {config.model} ({time.monotonic() - start:.2f}s)")

    def transcribe(self, samples: np.ndarray) -> str:
        """
        Transcribe audio with the loaded model

        Args:
            samples: Mono float32 audio at 16 kHz

        Returns:
            Transcribed text, stripped of surrounding whitespace
        """
        if len(samples) == 0:
            raise TranscribeError("Empty audio buffer")

        logger.debug(f"Transcribing {len(samples) / SAMPLE_RATE:.2f}s of audio")
        language = None if self.config.language == "auto" else self.config.language

        try:
            segments, info = self._model.transcribe(
                np.asarray(samples, dtype=np.float32),
                language=language,
                task="translate" if self.config.translate else "transcribe",
                beam_size=self.config.beam_size,
            )
            text_parts = [segment.text.strip() for segment in segments]
        except Exception as e:
            raise TranscribeError(f"Inference failed: {e}") from e

        if language is None:
            logger.debug(f"Detected language: {info.language}")

        return " ".join(part for part in text_parts if part).strip()

    def close(self) -> None:
        self._model = None


def create_transcriber(config: WhisperConfig, config_path: Optional[Path] = None) -> Transcriber:
    """
    Create the transcriber selected by configuration

    Args:
        config: Whisper model settings
        config_path: Config file forwarded to worker processes

    Returns:
        SubprocessTranscriber when gpu_isolation is enabled, WhisperTranscriber otherwise
    """
    if config.gpu_isolation:
        from holdtype.subprocess_transcriber import SubprocessTranscriber

        logger.info("GPU isolation enabled: transcribing in a worker process per utterance")
        return SubprocessTranscriber(config, config_path=config_path)

    return WhisperTranscriber(config)
