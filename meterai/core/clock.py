"""Time helpers shared by the quota ledger and the token vault."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], float]


def system_clock() -> float:
    """Return the current Unix time in seconds."""
    return time.time()


def utc_iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def local_time_label(timestamp: float) -> str:
    """Format a timestamp as a local ``HH:MM`` label for usage history."""
    return datetime.fromtimestamp(timestamp).strftime("%H:%M")


def utc_iso_or_none(timestamp: float | None) -> str | None:
    """Like :func:`utc_iso`, but ``None`` for missing or unrepresentable timestamps."""
    if timestamp is None:
        return None
    try:
        return utc_iso(timestamp)
    except (OverflowError, OSError, ValueError):
        return None
