"""Text output backends and the output chain."""

import logging
import subprocess
import time
from typing import List, Optional, Protocol, Sequence

from holdtype.config import OutputConfig, PostProcessConfig
from holdtype.errors import OutputError

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore

logger = logging.getLogger(__name__)


class TextOutput(Protocol):
    name: str

    def output(self, text: str) -> None: ...


class TypeOutput:
    """Types text at the cursor by simulating key presses"""

    name = "type"

    def __init__(self, delay_ms: int = 0) -> None:
        self._delay_s = max(0, delay_ms) / 1000.0

    def output(self, text: str) -> None:
        if Controller is None:
            raise OutputError("pynput is not installed")
        try:
            keyboard = Controller()
            if not self._delay_s:
                keyboard.type(text)
                return
            for char in text:
                keyboard.type(char)
                time.sleep(self._delay_s)
        except Exception as exc:
            raise OutputError(f"typing failed: {exc}") from exc


class ClipboardOutput:
    """Copies text to the clipboard"""

    name = "clipboard"

    def output(self, text: str) -> None:
        if pyperclip is None:
            raise OutputError("pyperclip is not installed")
        try:
            pyperclip.copy(text)
        except Exception as exc:
            raise OutputError(f"clipboard copy failed: {exc}") from exc


class PasteOutput:
    """Copies text to the clipboard, then presses Ctrl+V"""

    name = "paste"

    def __init__(self, settle_delay_s: float = 0.05) -> None:
        self._settle_delay_s = settle_delay_s

    def output(self, text: str) -> None:
        if pyperclip is None or Controller is None or Key is None:
            raise OutputError("clipboard/keyboard dependency missing")
        try:
            pyperclip.copy(text)
            time.sleep(self._settle_delay_s)
            keyboard = Controller()
            keyboard.press(Key.ctrl)
            keyboard.press("v")
            keyboard.release("v")
            keyboard.release(Key.ctrl)
        except Exception as exc:
            raise OutputError(f"paste failed: {exc}") from exc


def create_output_chain(config: OutputConfig) -> List[TextOutput]:
    """Build the ordered list of outputs for the configured mode"""
    chain: List[TextOutput] = []
    if config.mode == "type":
        chain.append(TypeOutput(delay_ms=config.type_delay_ms))
    elif config.mode == "paste":
        chain.append(PasteOutput())

    if config.mode == "clipboard" or config.fallback_to_clipboard:
        chain.append(ClipboardOutput())
    return chain


def output_with_fallback(chain: Sequence[TextOutput], text: str) -> str:
    """
    Deliver text through the first output that succeeds

    Returns:
        Name of the output that delivered the text

    Raises:
        OutputError: If every output failed
    """
    for output in chain:
        try:
            output.output(text)
        except OutputError as exc:
            logger.warning(f"Output '{output.name}' failed: {exc}")
            continue
        logger.debug(f"Text delivered via '{output.name}'")
        return output.name
    raise OutputError("all output methods failed")


class PostProcessor:
    """Pipes text through an external command (stdin in, stdout out)"""

    def __init__(self, command: str, timeout_ms: int = 30000) -> None:
        self.command = command
        self.timeout_s = timeout_ms / 1000.0

    def process(self, text: str) -> str:
        """
        Run the command on text

        Returns:
            Command output, or the original text if the command fails,
            times out, or prints nothing
        """
        try:
            result = subprocess.run(
                self.command,
                shell=True,
                input=text,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"Post-process command timed out after {self.timeout_s:.1f}s, using original text")
            return text
        except OSError as exc:
            logger.warning(f"Post-process command failed to start: {exc}")
            return text

        if result.returncode != 0:
            logger.warning(
                f"Post-process command exited with {result.returncode}: {result.stderr.strip()}"
            )
            return text

        processed = result.stdout.strip()
        if not processed:
            logger.warning("Post-process command returned empty output, using original text")
            return text
        return processed


def create_post_processor(config: PostProcessConfig) -> Optional[PostProcessor]:
    if not config.command:
        return None
    return PostProcessor(config.command, timeout_ms=config.timeout_ms)
