"""Provider configuration, usage state and the aggregate persisted document."""

from __future__ import annotations

from typing import Dict, List, Set

from pydantic import BaseModel, Field

from meterai.core.config import ProviderKind

HISTORY_LIMIT = 6


class ProviderConfig(BaseModel):
    provider_id: str
    provider_kind: ProviderKind = ProviderKind.MANUAL
    display_name: str
    enabled: bool = True
    api_key: str | None = Field(default=None, exclude=True, repr=False)
    has_api_key: bool = False
    limit: int = Field(default=100, gt=0)
    alert_thresholds: List[int] = Field(default_factory=lambda: [70, 90, 100])
    reset_interval_hours: int = Field(default=4, gt=0)


class HistoryEntry(BaseModel):
    time_label: str
    used: int
    limit: int


class UsageState(BaseModel):
    used: int = Field(default=0, ge=0)
    limit: int = Field(default=100, gt=0)
    percent: int = Field(default=0, ge=0, le=100)
    reset_time: int
    history: List[HistoryEntry] = Field(default_factory=list)


class ProviderRecord(BaseModel):
    config: ProviderConfig
    usage: UsageState
    notified_thresholds: Set[int] = Field(default_factory=set)


class AppSettings(BaseModel):
    custom_credentials_path: str | None = None


class AppState(BaseModel):
    providers: Dict[str, ProviderRecord] = Field(default_factory=dict)
    active_provider_id: str
    settings: AppSettings = Field(default_factory=AppSettings)


class ProviderSummary(BaseModel):
    """Read model combining a provider's config with its usage counters."""

    provider_id: str
    provider_kind: ProviderKind
    display_name: str
    enabled: bool
    has_api_key: bool
    api_key_preview: str | None = None
    limit: int
    alert_thresholds: List[int]
    reset_interval_hours: int
    used: int
    percent: int
    active: bool


__all__ = [
    "AppSettings",
    "AppState",
    "HISTORY_LIMIT",
    "HistoryEntry",
    "ProviderConfig",
    "ProviderRecord",
    "ProviderSummary",
    "UsageState",
]
