"""Application configuration loading utilities."""

from __future__ import annotations

import os
import pathlib
import sys
from enum import Enum
from functools import lru_cache
from typing import List

import yaml
from pydantic import BaseModel, Field, model_validator

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = BASE_DIR.parent / "config" / "providers.yaml"
APP_DIR_NAME = "meterai"


class ProviderKind(str, Enum):
    MANUAL = "manual"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class ProviderDefaults(BaseModel):
    id: str
    kind: ProviderKind = ProviderKind.MANUAL
    name: str
    enabled: bool = True
    limit: int = Field(default=100, gt=0)
    alert_thresholds: List[int] = Field(default_factory=lambda: [70, 90, 100])
    reset_interval_hours: int = Field(default=4, gt=0)


def _builtin_providers() -> List[ProviderDefaults]:
    return [
        ProviderDefaults(
            id="claude-pro-max",
            kind=ProviderKind.ANTHROPIC,
            name="Claude Pro/Max",
            reset_interval_hours=5,
        ),
        ProviderDefaults(
            id="openai-api",
            kind=ProviderKind.OPENAI,
            name="OpenAI API",
            enabled=False,
            reset_interval_hours=24 * 30,
        ),
        ProviderDefaults(id="manual", name="Manual counter", enabled=False),
    ]


class AppConfig(BaseModel):
    providers: List[ProviderDefaults] = Field(default_factory=_builtin_providers)
    active_provider: str | None = None
    http_timeout_seconds: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def _check_active_provider(self) -> "AppConfig":
        if not self.providers:
            raise ValueError("At least one provider must be configured")
        ids = [provider.id for provider in self.providers]
        if len(set(ids)) != len(ids):
            raise ValueError("Provider ids must be unique")
        if self.active_provider is None:
            self.active_provider = ids[0]
        elif self.active_provider not in ids:
            raise ValueError(f"Active provider {self.active_provider!r} is not configured")
        return self


@lru_cache(maxsize=1)
def load_config(path: pathlib.Path | None = None) -> AppConfig:
    """Load the provider catalogue from YAML, falling back to built-in defaults."""
    env_path = os.getenv("METERAI_CONFIG")
    config_path = path or (pathlib.Path(env_path) if env_path else DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        return AppConfig()
    raw = yaml.safe_load(config_path.read_text()) or {}
    return AppConfig(**raw)


def default_data_dir() -> pathlib.Path:
    """Return the per-user data directory for the current platform."""
    configured = os.getenv("METERAI_DATA_DIR")
    if configured:
        return pathlib.Path(configured).expanduser()

    home = pathlib.Path.home()
    if sys.platform == "win32":
        base = pathlib.Path(os.getenv("LOCALAPPDATA") or home / "AppData" / "Local")
    elif sys.platform == "darwin":
        base = home / "Library" / "Application Support"
    else:
        base = pathlib.Path(os.getenv("XDG_DATA_HOME") or home / ".local" / "share")
    return base / APP_DIR_NAME
