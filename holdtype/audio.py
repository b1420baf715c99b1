"""
Microphone capture

One SoundDeviceCapture is created per utterance: start() opens a 16 kHz mono
float32 input stream, stop() closes it and hands back everything recorded.
"""

import logging
import threading
from typing import Any, List, Optional, Protocol, Union

import numpy as np

from holdtype.config import AudioConfig
from holdtype.errors import AudioCaptureError
from holdtype.ipc import SAMPLE_RATE

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class AudioCapture(Protocol):
    def start(self) -> None: ...

    def stop(self) -> np.ndarray: ...


class SoundDeviceCapture:
    """Records from the configured input device until stopped"""

    def __init__(self, config: AudioConfig, blocksize: int = 1600):
        self.config = config
        self.blocksize = blocksize
        self._stream: Any = None
        self._chunks: List[np.ndarray] = []
        self._lock = threading.Lock()
        self._running = False

    def start(self) -> None:
        """
        Open the input stream and start recording

        Raises:
            AudioCaptureError: If sounddevice is missing or the device cannot be opened
        """
        if self._running:
            return
        if sd is None:
            raise AudioCaptureError("sounddevice is not installed")

        device = resolve_device(self.config.device)
        logger.debug(f"Opening audio input (device: {self.config.device})")
        with self._lock:
            self._chunks = []
        self._running = True
        try:
            self._stream = sd.InputStream(
                device=device,
                channels=1,
                samplerate=SAMPLE_RATE,
                dtype="float32",
                blocksize=self.blocksize,
                callback=self._on_audio,
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as e:
            self._running = False
            self._stream = None
            raise AudioCaptureError(f"Failed to open audio device {self.config.device!r}: {e}") from e

    def stop(self) -> np.ndarray:
        """
        Stop recording

        Returns:
            All samples recorded since start(); empty if not recording

        Raises:
            AudioCaptureError: If the stream fails to close
        """
        if not self._running:
            return np.zeros(0, dtype=np.float32)

        self._running = False
        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError as e:
            raise AudioCaptureError(f"Failed to stop audio stream: {e}") from e
        finally:
            with self._lock:
                chunks, self._chunks = self._chunks, []

        if not chunks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(chunks).astype(np.float32, copy=False)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug(f"Audio status: {status}")
        if not self._running:
            return
        with self._lock:
            self._chunks.append(np.array(indata[:, 0], dtype=np.float32))


def resolve_device(name: str) -> Optional[Union[int, str]]:
    """Map the configured device name to a sounddevice device argument"""
    if not name or name == "default":
        return None
    if name.isdigit():
        return int(name)
    return name


def create_capture(config: AudioConfig) -> AudioCapture:
    """Create a fresh capture for one utterance"""
    return SoundDeviceCapture(config)
