"""Per-provider quota state machine.

Transitions mutate a :class:`ProviderRecord` in place and return the desktop
notifications they produced; callers deliver them once the shared lock is
released. Reset windows are evaluated lazily: a provider whose reset time has
passed keeps its stale counters until the next ``apply_usage`` call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from meterai.core.clock import local_time_label

from .models import HISTORY_LIMIT, HistoryEntry, ProviderRecord


@dataclass(frozen=True)
class Notification:
    title: str
    body: str


def percent_of(used: int, limit: int) -> int:
    return used * 100 // limit


def next_reset_time(record: ProviderRecord, now: float) -> int:
    return int(now) + record.config.reset_interval_hours * 3600


def archive_and_reset(record: ProviderRecord, now: float) -> None:
    """Push the current window into history and start a fresh window at ``now``."""
    usage = record.usage
    usage.history.insert(
        0, HistoryEntry(time_label=local_time_label(now), used=usage.used, limit=usage.limit)
    )
    del usage.history[HISTORY_LIMIT:]
    usage.used = 0
    usage.percent = 0
    usage.reset_time = next_reset_time(record, now)
    record.notified_thresholds.clear()


def window_expired(record: ProviderRecord, now: float) -> bool:
    return now >= record.usage.reset_time


def threshold_notification(record: ProviderRecord, threshold: int) -> Notification:
    name = record.config.display_name
    usage = record.usage
    if threshold >= 100:
        return Notification(
            title=f"{name} limit reached",
            body="You have used 100% of your quota. It resets in a few hours.",
        )
    return Notification(
        title=f"{threshold}% of {name} quota used",
        body=f"You have used {usage.used} of {usage.limit} requests.",
    )


def reset_notification(record: ProviderRecord) -> Notification:
    name = record.config.display_name
    return Notification(
        title=f"{name} quota reset",
        body=f"Your quota of {record.config.limit} requests is available again.",
    )


def check_thresholds(record: ProviderRecord) -> list[Notification]:
    """Fire every configured threshold reached and not yet notified this window."""
    fired: list[Notification] = []
    percent = record.usage.percent
    for threshold in record.config.alert_thresholds:
        if percent >= threshold and threshold not in record.notified_thresholds:
            record.notified_thresholds.add(threshold)
            fired.append(threshold_notification(record, threshold))
    return fired


def apply_usage(record: ProviderRecord, count: int, now: float) -> list[Notification]:
    """Record ``count`` requests, resetting first if the window has elapsed."""
    if count < 0:
        raise ValueError("count must not be negative")

    notifications: list[Notification] = []
    if window_expired(record, now):
        archive_and_reset(record, now)
        notifications.append(reset_notification(record))

    usage = record.usage
    usage.used = min(usage.used + count, usage.limit)
    usage.percent = percent_of(usage.used, usage.limit)
    notifications.extend(check_thresholds(record))
    return notifications


def apply_config(
    record: ProviderRecord,
    *,
    limit: int,
    alert_thresholds: Sequence[int],
    reset_interval_hours: int,
    enabled: bool,
) -> None:
    if limit <= 0:
        raise ValueError("limit must be positive")
    if reset_interval_hours <= 0:
        raise ValueError("reset_interval_hours must be positive")

    config = record.config
    config.limit = limit
    config.alert_thresholds = list(alert_thresholds)
    config.reset_interval_hours = reset_interval_hours
    config.enabled = enabled

    usage = record.usage
    usage.limit = limit
    usage.used = min(usage.used, limit)
    usage.percent = percent_of(usage.used, limit)


__all__ = [
    "Notification",
    "apply_config",
    "apply_usage",
    "archive_and_reset",
    "check_thresholds",
    "percent_of",
]
