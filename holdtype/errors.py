"""
Exception hierarchy for holdtype
"""


class HoldtypeError(Exception):
    """Base class for all holdtype errors"""


class ConfigError(HoldtypeError):
    """Invalid or unreadable configuration"""


class HotkeyError(HoldtypeError):
    """Hotkey listener could not be set up"""


class AudioCaptureError(HoldtypeError):
    """Microphone capture could not be started or stopped"""


class TranscribeError(HoldtypeError):
    """Speech could not be turned into text"""


class ProtocolError(TranscribeError):
    """Malformed data on the worker's stdin/stdout protocol"""


class OutputError(HoldtypeError):
    """Text could not be delivered"""
