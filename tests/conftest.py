"""Shared fakes for daemon and transcriber tests. No audio device, model or display is needed."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Callable

import numpy as np
import pytest

from holdtype.config import AudioConfig, Config, NotificationConfig, OutputConfig
from holdtype.errors import AudioCaptureError, OutputError, TranscribeError
from holdtype.hotkey import HotkeyEvent
from holdtype.ipc import SAMPLE_RATE


def seconds_of_audio(seconds: float) -> np.ndarray:
    return np.zeros(int(SAMPLE_RATE * seconds), dtype=np.float32)


class FakeCapture:
    def __init__(self, samples: np.ndarray | None = None, fail_start: bool = False) -> None:
        self.samples = samples if samples is not None else seconds_of_audio(2.0)
        self.fail_start = fail_start
        self.started = False
        self.stop_calls = 0

    def start(self) -> None:
        if self.fail_start:
            raise AudioCaptureError("no microphone")
        self.started = True

    def stop(self) -> np.ndarray:
        self.stop_calls += 1
        if self.stop_calls > 1:
            return np.zeros(0, dtype=np.float32)
        return self.samples


class FakeCaptureFactory:
    def __init__(self, **capture_kwargs) -> None:  # noqa: ANN003
        self.capture_kwargs = capture_kwargs
        self.created: list[FakeCapture] = []

    def __call__(self, config: AudioConfig) -> FakeCapture:
        capture = FakeCapture(**self.capture_kwargs)
        self.created.append(capture)
        return capture


class FakeTranscriber:
    def __init__(self, text: str = "hello world", error: str | None = None, delay_s: float = 0.0) -> None:
        self.text = text
        self.error = error
        self.delay_s = delay_s
        self.calls: list[int] = []
        self.closed = False

    def transcribe(self, samples: np.ndarray) -> str:
        self.calls.append(len(samples))
        if self.delay_s:
            time.sleep(self.delay_s)
        if self.error is not None:
            raise TranscribeError(self.error)
        return self.text

    def close(self) -> None:
        self.closed = True


class FakeHotkeyListener:
    def __init__(self) -> None:
        self.queue: asyncio.Queue[HotkeyEvent] | None = None
        self.started = False
        self.stopped = False

    def start(self, loop: asyncio.AbstractEventLoop) -> asyncio.Queue[HotkeyEvent]:
        self.started = True
        self.queue = asyncio.Queue()
        return self.queue

    def stop(self) -> None:
        self.stopped = True

    def press(self) -> None:
        assert self.queue is not None
        self.queue.put_nowait(HotkeyEvent.PRESSED)

    def release(self) -> None:
        assert self.queue is not None
        self.queue.put_nowait(HotkeyEvent.RELEASED)


class FakeOutput:
    name = "fake"

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.texts: list[str] = []

    def output(self, text: str) -> None:
        if self.fail:
            raise OutputError("no target window")
        self.texts.append(text)


async def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "run" / "state"


@pytest.fixture
def config(state_path: Path) -> Config:
    return Config(
        output=OutputConfig(notification=NotificationConfig(on_transcription=False)),
        state_file=str(state_path),
    )
