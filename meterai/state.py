"""Shared State Guard: the single lock-protected aggregate of providers and settings.

Every mutating operation follows the same sequence: acquire the lock, mutate
the aggregate in memory, persist the whole document (best effort), release the
lock, then deliver notifications and events to collaborators.
"""

from __future__ import annotations

import logging
import pathlib
import threading
from typing import Sequence

from meterai.core.clock import Clock, system_clock
from meterai.core.config import AppConfig, ProviderDefaults
from meterai.core.exceptions import ProviderNotFoundError, SecretStoreError
from meterai.credentials.vault import mask
from meterai.events import USAGE_UPDATED, EventBus
from meterai.notifications import Notifier
from meterai.quota import ledger
from meterai.quota.ledger import Notification
from meterai.quota.models import (
    AppSettings,
    AppState,
    ProviderConfig,
    ProviderRecord,
    ProviderSummary,
    UsageState,
)
from meterai.storage.json_store import best_effort_write, read_json
from meterai.storage.secrets import SecretStore, provider_key

logger = logging.getLogger("meterai.state")


def _new_record(defaults: ProviderDefaults, now: float) -> ProviderRecord:
    config = ProviderConfig(
        provider_id=defaults.id,
        provider_kind=defaults.kind,
        display_name=defaults.name,
        enabled=defaults.enabled,
        limit=defaults.limit,
        alert_thresholds=list(defaults.alert_thresholds),
        reset_interval_hours=defaults.reset_interval_hours,
    )
    usage = UsageState(
        limit=defaults.limit,
        reset_time=int(now) + defaults.reset_interval_hours * 3600,
    )
    return ProviderRecord(config=config, usage=usage)


class StateGuard:
    def __init__(
        self,
        state_path: pathlib.Path,
        secrets: SecretStore,
        config: AppConfig,
        notifier: Notifier,
        events: EventBus,
        clock: Clock = system_clock,
    ) -> None:
        self.state_path = state_path
        self._secrets = secrets
        self._config = config
        self._notifier = notifier
        self._events = events
        self._clock = clock
        self._lock = threading.RLock()
        self._state = self._load()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    # -- loading and persistence ----------------------------------------------

    def _load(self) -> AppState:
        now = self._clock()
        state: AppState | None = None
        raw = read_json(self.state_path)
        if isinstance(raw, dict):
            try:
                state = AppState.model_validate(raw)
            except ValueError:
                logger.warning(
                    "Discarding malformed state document",
                    extra={"event": "state_invalid", "path": str(self.state_path)},
                )

        if state is None:
            state = AppState(active_provider_id=self._config.active_provider or "")

        for defaults in self._config.providers:
            if defaults.id not in state.providers:
                state.providers[defaults.id] = _new_record(defaults, now)
        if state.active_provider_id not in state.providers:
            state.active_provider_id = self._config.active_provider or next(iter(state.providers))

        for provider_id, record in state.providers.items():
            if not record.config.has_api_key:
                continue
            try:
                record.config.api_key = self._secrets.get_secret(provider_key(provider_id))
            except SecretStoreError:
                logger.warning(
                    "API key not retrievable",
                    extra={"event": "api_key_missing", "provider_id": provider_id},
                )
        return state

    def _persist(self) -> bool:
        return best_effort_write(self.state_path, self._state.model_dump(mode="json"))

    def _record(self, provider_id: str | None) -> ProviderRecord:
        key = provider_id or self._state.active_provider_id
        record = self._state.providers.get(key)
        if record is None:
            raise ProviderNotFoundError(key)
        return record

    # -- delivery (always outside the lock) ------------------------------------

    def _deliver(self, notifications: Sequence[Notification]) -> None:
        for notification in notifications:
            self._notifier.send(notification.title, notification.body)

    def _emit_usage(self, provider_id: str, usage: UsageState) -> None:
        self._events.emit(USAGE_UPDATED, {"provider_id": provider_id, **usage.model_dump(mode="json")})

    # -- reads ----------------------------------------------------------------

    @property
    def active_provider_id(self) -> str:
        with self._lock:
            return self._state.active_provider_id

    def snapshot(self) -> AppState:
        with self._lock:
            return self._state.model_copy(deep=True)

    def get_usage(self, provider_id: str | None = None) -> UsageState:
        with self._lock:
            return self._record(provider_id).usage.model_copy(deep=True)

    def get_provider(self, provider_id: str) -> ProviderConfig:
        with self._lock:
            return self._record(provider_id).config.model_copy(deep=True)

    def get_settings(self) -> AppSettings:
        with self._lock:
            return self._state.settings.model_copy()

    def custom_credentials_path(self) -> str | None:
        with self._lock:
            return self._state.settings.custom_credentials_path

    def get_api_key(self, provider_id: str) -> str | None:
        with self._lock:
            return self._record(provider_id).config.api_key

    def list_providers(self) -> list[ProviderSummary]:
        with self._lock:
            active = self._state.active_provider_id
            return [
                ProviderSummary(
                    provider_id=provider_id,
                    provider_kind=record.config.provider_kind,
                    display_name=record.config.display_name,
                    enabled=record.config.enabled,
                    has_api_key=record.config.has_api_key,
                    api_key_preview=mask(record.config.api_key) if record.config.api_key else None,
                    limit=record.config.limit,
                    alert_thresholds=list(record.config.alert_thresholds),
                    reset_interval_hours=record.config.reset_interval_hours,
                    used=record.usage.used,
                    percent=record.usage.percent,
                    active=provider_id == active,
                )
                for provider_id, record in self._state.providers.items()
            ]

    # -- quota operations -------------------------------------------------------

    def record_usage(self, count: int = 1, provider_id: str | None = None) -> UsageState:
        """Add ``count`` requests to a provider (the active one by default)."""
        with self._lock:
            record = self._record(provider_id)
            notifications = ledger.apply_usage(record, count, self._clock())
            self._persist()
            usage = record.usage.model_copy(deep=True)
            target = record.config.provider_id

        logger.info(
            "Usage recorded",
            extra={"event": "usage_recorded", "provider_id": target, "count": count, "used": usage.used},
        )
        self._deliver(notifications)
        self._emit_usage(target, usage)
        return usage

    def manual_reset(self, provider_id: str | None = None) -> UsageState:
        """Archive the current window and start a new one, whether or not it elapsed."""
        with self._lock:
            record = self._record(provider_id)
            ledger.archive_and_reset(record, self._clock())
            self._persist()
            usage = record.usage.model_copy(deep=True)
            target = record.config.provider_id

        logger.info("Usage reset manually", extra={"event": "usage_reset", "provider_id": target})
        self._emit_usage(target, usage)
        return usage

    def configure(
        self,
        provider_id: str,
        *,
        limit: int,
        alert_thresholds: Sequence[int],
        reset_interval_hours: int,
        enabled: bool,
        api_key: str | None = None,
    ) -> ProviderConfig:
        if limit <= 0 or reset_interval_hours <= 0:
            raise ValueError("limit and reset_interval_hours must be positive")

        with self._lock:
            record = self._record(provider_id)
            if api_key:
                self._secrets.set_secret(provider_key(provider_id), api_key)
                record.config.api_key = api_key
                record.config.has_api_key = True
            ledger.apply_config(
                record,
                limit=limit,
                alert_thresholds=alert_thresholds,
                reset_interval_hours=reset_interval_hours,
                enabled=enabled,
            )
            self._persist()
            config = record.config.model_copy(deep=True)
            usage = record.usage.model_copy(deep=True)
            is_active = provider_id == self._state.active_provider_id

        logger.info("Provider configured", extra={"event": "provider_configured", "provider_id": provider_id})
        if is_active:
            self._emit_usage(provider_id, usage)
        return config

    def switch_active(self, provider_id: str) -> UsageState:
        with self._lock:
            record = self._record(provider_id)
            self._state.active_provider_id = provider_id
            self._persist()
            usage = record.usage.model_copy(deep=True)

        logger.info("Active provider switched", extra={"event": "provider_switched", "provider_id": provider_id})
        self._emit_usage(provider_id, usage)
        return usage

    # -- secrets and settings ----------------------------------------------------

    def set_api_key(self, provider_id: str, api_key: str) -> None:
        if not api_key:
            raise ValueError("api_key must not be empty")
        with self._lock:
            record = self._record(provider_id)
            self._secrets.set_secret(provider_key(provider_id), api_key)
            record.config.api_key = api_key
            record.config.has_api_key = True
            self._persist()
        logger.info("API key saved", extra={"event": "api_key_saved", "provider_id": provider_id})

    def remove_api_key(self, provider_id: str) -> None:
        with self._lock:
            record = self._record(provider_id)
            self._secrets.delete_secret(provider_key(provider_id))
            record.config.api_key = None
            record.config.has_api_key = False
            self._persist()
        logger.info("API key removed", extra={"event": "api_key_removed", "provider_id": provider_id})

    def set_custom_credentials_path(self, path: str | None) -> AppSettings:
        with self._lock:
            self._state.settings.custom_credentials_path = path or None
            self._persist()
            return self._state.settings.model_copy()


__all__ = ["StateGuard"]
