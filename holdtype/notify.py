"""Desktop notifications via notify-send."""

import logging
import subprocess

logger = logging.getLogger(__name__)

APP_NAME = "holdtype"


def send_notification(title: str, body: str) -> None:
    """Show a desktop notification without waiting for it"""
    try:
        subprocess.Popen(
            ["notify-send", f"--app-name={APP_NAME}", "--expire-time=2000", title, body],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as e:
        logger.debug(f"Notification failed: {e}")
