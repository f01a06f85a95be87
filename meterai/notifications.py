"""Desktop notification delivery.

Delivery is best effort: a missing notifier binary, a timeout or a non-zero
exit status is logged and reported as ``False``.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys

logger = logging.getLogger("meterai.notifications")

APP_NAME = "MeterAI"


class Notifier:
    def send(self, title: str, body: str) -> bool:
        raise NotImplementedError


class DesktopNotifier(Notifier):
    """Send notifications through ``notify-send`` (Linux) or ``osascript`` (macOS)."""

    def __init__(self, timeout: float = 10.0, platform: str | None = None) -> None:
        self._timeout = timeout
        self._platform = platform or sys.platform

    def _command(self, title: str, body: str) -> list[str] | None:
        if self._platform == "darwin":
            if not shutil.which("osascript"):
                return None
            script = f"display notification {_quote(body)} with title {_quote(title)}"
            return ["osascript", "-e", script]
        if not shutil.which("notify-send"):
            return None
        return ["notify-send", "-a", APP_NAME, "-t", "5000", title, body]

    def send(self, title: str, body: str) -> bool:
        args = self._command(title, body)
        if args is None:
            logger.info("No notifier available", extra={"event": "notify_unavailable", "title": title})
            return False

        logger.debug("Sending notification", extra={"event": "notify_send", "title": title})
        try:
            result = subprocess.run(
                args, check=False, capture_output=True, text=True, timeout=self._timeout
            )
        except subprocess.TimeoutExpired:
            logger.warning("Notifier timed out", extra={"event": "notify_timeout"})
            return False
        except OSError:
            logger.warning("Notifier failed to start", extra={"event": "notify_error"}, exc_info=True)
            return False

        if result.returncode != 0:
            logger.warning(result.stderr.strip() or "Notifier failed", extra={"event": "notify_error"})
            return False
        return True


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


__all__ = ["DesktopNotifier", "Notifier"]
