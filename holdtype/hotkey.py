"""Global hotkey listener based on pynput."""

import asyncio
import enum
import logging
import threading
from typing import Iterable, List, Optional, Protocol, Set

from holdtype.errors import HotkeyError

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)

# evdev-style names (as printed by evtest) to pynput Key names
KEY_ALIASES = {
    "scrolllock": "scroll_lock",
    "capslock": "caps_lock",
    "numlock": "num_lock",
    "rightalt": "alt_r",
    "leftalt": "alt_l",
    "rightctrl": "ctrl_r",
    "leftctrl": "ctrl_l",
    "rightshift": "shift_r",
    "leftshift": "shift_l",
    "rightmeta": "cmd_r",
    "leftmeta": "cmd_l",
    "sysrq": "print_screen",
    "compose": "menu",
}

MODIFIER_GROUPS = {
    "ctrl": {"ctrl", "ctrl_l", "ctrl_r"},
    "alt": {"alt", "alt_l", "alt_r", "alt_gr"},
    "shift": {"shift", "shift_l", "shift_r"},
    "super": {"cmd", "cmd_l", "cmd_r"},
}

MODIFIER_ALIASES = {
    "control": "ctrl",
    "leftctrl": "ctrl",
    "rightctrl": "ctrl",
    "leftalt": "alt",
    "rightalt": "alt",
    "leftshift": "shift",
    "rightshift": "shift",
    "meta": "super",
    "cmd": "super",
    "leftmeta": "super",
    "rightmeta": "super",
}


class HotkeyEvent(enum.Enum):
    PRESSED = "pressed"
    RELEASED = "released"


class HotkeyListener(Protocol):
    def start(self, loop: asyncio.AbstractEventLoop) -> "asyncio.Queue[HotkeyEvent]": ...

    def stop(self) -> None: ...


def normalize_key_name(name: str) -> str:
    """Normalize a configured key name to pynput naming"""
    cleaned = name.strip()
    if len(cleaned) == 1:
        return cleaned.lower()
    cleaned = cleaned.lower()
    if cleaned.startswith("key."):
        cleaned = cleaned[len("key."):]
    return KEY_ALIASES.get(cleaned, cleaned)


def normalize_modifier(name: str) -> str:
    cleaned = name.strip().lower()
    cleaned = MODIFIER_ALIASES.get(cleaned, cleaned)
    if cleaned not in MODIFIER_GROUPS:
        raise HotkeyError(
            f"Unknown modifier {name!r} (expected one of {', '.join(sorted(MODIFIER_GROUPS))})"
        )
    return cleaned


class PynputHotkeyListener:
    """
    Push-to-talk key listener

    pynput calls back on its own thread; events are handed to the asyncio
    loop with call_soon_threadsafe. Auto-repeat is collapsed so each hold
    produces one PRESSED and one RELEASED.
    """

    def __init__(self, key: str = "scroll_lock", modifiers: Iterable[str] = ()):
        self.key_name = normalize_key_name(key)
        self.modifiers: List[str] = [normalize_modifier(m) for m in modifiers]
        self._listener: Optional[object] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional["asyncio.Queue[HotkeyEvent]"] = None
        self._pressed = False
        self._held: Set[str] = set()
        self._lock = threading.Lock()

    def start(self, loop: asyncio.AbstractEventLoop) -> "asyncio.Queue[HotkeyEvent]":
        """
        Start listening

        Args:
            loop: Event loop that consumes the events

        Returns:
            Queue receiving HotkeyEvent values

        Raises:
            HotkeyError: If pynput is unavailable or the key is unknown
        """
        if keyboard is None:
            raise HotkeyError("pynput is not installed or no input backend is available")
        if len(self.key_name) > 1 and not hasattr(keyboard.Key, self.key_name):
            raise HotkeyError(f"Unknown hotkey: {self.key_name!r}")

        self._loop = loop
        self._queue = asyncio.Queue()

        try:
            self._listener = keyboard.Listener(
                on_press=lambda key: self.handle_press(_key_name(key)),
                on_release=lambda key: self.handle_release(_key_name(key)),
            )
            self._listener.start()
        except Exception as e:
            raise HotkeyError(f"Failed to start hotkey listener: {e}") from e

        logger.debug(f"Hotkey listener started (key: {self.key_name}, modifiers: {self.modifiers})")
        return self._queue

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
            logger.debug("Hotkey listener stopped")

    def handle_press(self, name: Optional[str]) -> None:
        if name is None:
            return
        with self._lock:
            self._held.add(name)
            if name != self.key_name or self._pressed:
                return
            if not self._modifiers_held():
                return
            self._pressed = True
        self._emit(HotkeyEvent.PRESSED)

    def handle_release(self, name: Optional[str]) -> None:
        if name is None:
            return
        with self._lock:
            self._held.discard(name)
            if name != self.key_name or not self._pressed:
                return
            self._pressed = False
        self._emit(HotkeyEvent.RELEASED)

    def _modifiers_held(self) -> bool:
        return all(MODIFIER_GROUPS[m] & self._held for m in self.modifiers)

    def _emit(self, event: HotkeyEvent) -> None:
        if self._loop is None or self._queue is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            # Loop already closed during shutdown
            pass


def _key_name(key: object) -> Optional[str]:
    name = getattr(key, "name", None)
    if isinstance(name, str):
        return name
    char = getattr(key, "char", None)
    if isinstance(char, str):
        return char.lower()
    return None


def create_listener(key: str, modifiers: Iterable[str] = ()) -> HotkeyListener:
    return PynputHotkeyListener(key=key, modifiers=modifiers)
