"""
Daemon session state and the external state file
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Optional, Union

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Idle:
    name: ClassVar[str] = "idle"
    reported: ClassVar[bool] = True


@dataclass(frozen=True)
class Recording:
    started_at: float
    name: ClassVar[str] = "recording"
    reported: ClassVar[bool] = True

    def duration(self, now: float) -> float:
        return max(0.0, now - self.started_at)


@dataclass(frozen=True)
class Transcribing:
    audio: np.ndarray = field(repr=False, compare=False)
    name: ClassVar[str] = "transcribing"
    reported: ClassVar[bool] = True


@dataclass(frozen=True)
class Outputting:
    # Momentary; never written to the state file
    text: str
    name: ClassVar[str] = "outputting"
    reported: ClassVar[bool] = False


State = Union[Idle, Recording, Transcribing, Outputting]


class StateFile:
    """
    Plain-text file mirroring the daemon state for status bars (Waybar, polybar)

    Write and remove failures are logged and never raised.
    """

    def __init__(self, path: Optional[Path]):
        """
        Args:
            path: File to write, or None to disable the state file
        """
        self.path = path

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def write(self, state_name: str) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Failed to create state file directory: {e}")
            return
        try:
            self.path.write_text(state_name)
        except OSError as e:
            logger.warning(f"Failed to write state file: {e}")
        else:
            logger.debug(f"State file updated: {state_name}")

    def read(self) -> Optional[str]:
        """Read the current state, or None if the file does not exist"""
        if self.path is None or not self.path.exists():
            return None
        try:
            return self.path.read_text().strip()
        except OSError as e:
            logger.warning(f"Failed to read state file: {e}")
            return None

    def remove(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            self.path.unlink()
        except OSError as e:
            logger.warning(f"Failed to remove state file: {e}")
