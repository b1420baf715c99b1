"""
Configuration management for holdtype
"""

import logging
import os
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from holdtype.errors import ConfigError

logger = logging.getLogger(__name__)

HOTKEY_MODES = ("push_to_talk", "toggle")
OUTPUT_MODES = ("type", "clipboard", "paste")


@dataclass
class HotkeyConfig:
    """Hotkey configuration"""
    key: str = "scroll_lock"
    modifiers: List[str] = field(default_factory=list)
    mode: str = "push_to_talk"

    def __post_init__(self) -> None:
        if self.mode not in HOTKEY_MODES:
            raise ConfigError(
                f"hotkey.mode must be one of {', '.join(HOTKEY_MODES)} (got {self.mode!r})"
            )


@dataclass
class AudioConfig:
    """Audio configuration"""
    device: str = "default"
    max_duration_secs: float = 60.0

    def __post_init__(self) -> None:
        if self.max_duration_secs <= 0:
            raise ConfigError("audio.max_duration_secs must be positive")


@dataclass
class WhisperConfig:
    """Transcription model configuration"""
    model: str = "base.en"
    language: str = "en"
    translate: bool = False
    threads: Optional[int] = None
    device: str = "auto"
    compute_type: str = "default"
    beam_size: int = 5
    gpu_isolation: bool = False


@dataclass
class NotificationConfig:
    """Desktop notification toggles"""
    on_recording_start: bool = False
    on_recording_stop: bool = False
    on_transcription: bool = True


@dataclass
class PostProcessConfig:
    """External text post-processing command"""
    command: Optional[str] = None
    timeout_ms: int = 30000


@dataclass
class OutputConfig:
    """Output configuration"""
    mode: str = "type"
    fallback_to_clipboard: bool = True
    type_delay_ms: int = 0
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    post_process: PostProcessConfig = field(default_factory=PostProcessConfig)

    def __post_init__(self) -> None:
        if self.mode not in OUTPUT_MODES:
            raise ConfigError(
                f"output.mode must be one of {', '.join(OUTPUT_MODES)} (got {self.mode!r})"
            )
        if isinstance(self.notification, dict):
            self.notification = NotificationConfig(**self.notification)
        if isinstance(self.post_process, dict):
            self.post_process = PostProcessConfig(**self.post_process)


@dataclass
class Config:
    """Main configuration container"""
    hotkey: HotkeyConfig = field(default_factory=HotkeyConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    whisper: WhisperConfig = field(default_factory=WhisperConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    state_file: Optional[str] = None
    config_path: Optional[Path] = None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """
        Load configuration from YAML file

        Args:
            config_path: Path to config file. If None, uses config.yml in the
                        user config directory and falls back to defaults
                        when that file does not exist.

        Returns:
            Config object

        Raises:
            SystemExit: If an explicit config file is missing or the file is invalid
        """
        if config_path is not None:
            resolved_path = Path(config_path).expanduser()
            if not resolved_path.exists():
                logger.error(f"Config file not found: {resolved_path}")
                logger.error("Please copy config.example.yml and customize it.")
                sys.exit(1)
        else:
            resolved_path = default_config_path()
            if not resolved_path.exists():
                logger.info(f"No config file at {resolved_path}, using defaults")
                return cls()

        config_data = _load_yaml(resolved_path)
        try:
            config = cls.from_dict(config_data, config_path=resolved_path)
        except (ConfigError, TypeError, ValueError) as e:
            logger.error(f"Invalid config file {resolved_path}: {e}")
            sys.exit(1)

        logger.info(f"Loaded config from {resolved_path}")
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config_path: Optional[Path] = None) -> "Config":
        """Build a Config from parsed YAML data"""
        unknown = set(data) - {"hotkey", "audio", "whisper", "output", "state_file"}
        if unknown:
            raise ConfigError(f"unknown config sections: {', '.join(sorted(unknown))}")

        state_file = data.get("state_file")
        return cls(
            hotkey=HotkeyConfig(**(data.get("hotkey") or {})),
            audio=AudioConfig(**(data.get("audio") or {})),
            whisper=WhisperConfig(**(data.get("whisper") or {})),
            output=OutputConfig(**(data.get("output") or {})),
            state_file=str(state_file) if state_file is not None else None,
            config_path=config_path,
        )

    def resolve_state_file(self) -> Optional[Path]:
        """
        Get the absolute path to the state file

        Returns:
            Path to write state into, or None when the state file is disabled
        """
        value = self.state_file
        if value is None or value.strip().lower() in ("", "disabled", "none"):
            return None
        if value.strip().lower() == "auto":
            runtime_dir = os.environ.get("XDG_RUNTIME_DIR") or tempfile.gettempdir()
            return Path(runtime_dir) / "holdtype" / "state"
        return Path(value).expanduser()


def default_config_path() -> Path:
    """Get the default config file location"""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "holdtype" / "config.yml"


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return as dict"""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except Exception as e:
        logger.error(f"Error loading config file {path}: {e}")
        sys.exit(1)
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.error(f"Config file {path} must contain a mapping at the top level")
        sys.exit(1)
    return data
