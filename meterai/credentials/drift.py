"""Detect when the source OAuth token diverges from the vault copy.

Every ``check`` appends one observation to a bounded change log, whether or
not anything changed. ``copy_to_internal`` and ``import_token`` only log
transitions (a new fingerprint).
"""

from __future__ import annotations

import json
import logging
import pathlib
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, Field

from meterai.core.clock import Clock, system_clock, utc_iso, utc_iso_or_none
from meterai.core.exceptions import CredentialNotFoundError, TokenImportError
from meterai.storage.json_store import best_effort_write, read_json

from .resolver import NO_SOURCE_LABEL, CredentialResolver
from .scanner import ResolvedCredential, extract_credential
from .vault import TokenVault, VaultEntry, fingerprint, mask

logger = logging.getLogger("meterai.drift")

CHANGE_LOG_LIMIT = 100
EXPORT_VERSION = 1
IMPORT_SOURCE_LABEL = "import"


class ChangeLogEntry(BaseModel):
    timestamp: str
    changed: bool
    old_fingerprint: str | None = None
    new_fingerprint: str | None = None
    source: str


class ChangeLog(BaseModel):
    entries: List[ChangeLogEntry] = Field(default_factory=list)
    last_check: str | None = None

    def append(self, entry: ChangeLogEntry) -> None:
        self.entries.append(entry)
        overflow = len(self.entries) - CHANGE_LOG_LIMIT
        if overflow > 0:
            del self.entries[:overflow]


class TokenStatus(BaseModel):
    has_internal_token: bool
    token_preview: str | None = None
    token_fingerprint: str | None = None
    copied_at: str | None = None
    expires_at: str | None = None
    source: str
    source_differs: bool
    source_fingerprint: str | None = None


class DetectionStatus(BaseModel):
    detected: bool
    source: str
    custom_path: str | None = None


class DriftDetector:
    """Token custody operations over the resolver, the vault and the change log."""

    def __init__(
        self,
        resolver: CredentialResolver,
        vault: TokenVault,
        history_path: pathlib.Path,
        custom_path: Callable[[], str | None],
        lock: threading.RLock | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._resolver = resolver
        self._vault = vault
        self.history_path = history_path
        self._custom_path = custom_path
        self._lock = lock or threading.RLock()
        self._clock = clock

    # -- change log ---------------------------------------------------------

    def history(self) -> ChangeLog:
        raw = read_json(self.history_path)
        if isinstance(raw, dict):
            try:
                return ChangeLog.model_validate(raw)
            except ValueError:
                logger.warning("Ignoring malformed change log", extra={"event": "change_log_invalid"})
        return ChangeLog()

    def _append(self, entry: ChangeLogEntry, *, observed: bool) -> None:
        log = self.history()
        log.append(entry)
        if observed:
            log.last_check = entry.timestamp
        best_effort_write(self.history_path, log.model_dump(mode="json"))

    # -- detection ------------------------------------------------------------

    def _resolve(self) -> ResolvedCredential | None:
        return self._resolver.resolve(self._custom_path())

    def has_source_token(self) -> bool:
        return self._resolve() is not None

    def detection_status(self) -> DetectionStatus:
        custom_path = self._custom_path()
        resolved = self._resolver.resolve(custom_path)
        return DetectionStatus(
            detected=resolved is not None,
            source=resolved.source_label if resolved else NO_SOURCE_LABEL,
            custom_path=custom_path,
        )

    def check(self) -> ChangeLogEntry:
        """Compare the vault fingerprint with the current source and log the observation."""
        with self._lock:
            resolved = self._resolve()
            metadata = self._vault.load_metadata()
            source_fp = fingerprint(resolved.token) if resolved else None
            vault_fp = metadata.token_fingerprint if metadata else None
            changed = source_fp is not None and source_fp != vault_fp

            entry = ChangeLogEntry(
                timestamp=utc_iso(self._clock()),
                changed=changed,
                old_fingerprint=vault_fp,
                new_fingerprint=source_fp,
                source=resolved.source_label if resolved else NO_SOURCE_LABEL,
            )
            self._append(entry, observed=True)

        if changed:
            logger.info(
                "Source token differs from vault",
                extra={"event": "token_drift", "old": vault_fp, "new": source_fp},
            )
        return entry

    # -- custody --------------------------------------------------------------

    def copy_to_internal(self) -> VaultEntry:
        """Store the currently resolvable source token in the vault."""
        with self._lock:
            resolved = self._resolve()
            if resolved is None:
                raise CredentialNotFoundError()
            return self._store(
                resolved.token,
                resolved.refresh_token,
                resolved.source_label,
                resolved.expires_at,
            )

    def _store(
        self,
        token: str,
        refresh_token: str | None,
        source_label: str,
        expires_at: float | None,
    ) -> VaultEntry:
        previous = self._vault.load_metadata()
        entry = self._vault.store(token, refresh_token, source_label, expires_at)
        old_fp = previous.token_fingerprint if previous else None
        if old_fp != entry.token_fingerprint:
            self._append(
                ChangeLogEntry(
                    timestamp=entry.copied_at,
                    changed=True,
                    old_fingerprint=old_fp,
                    new_fingerprint=entry.token_fingerprint,
                    source=source_label,
                ),
                observed=False,
            )
        return entry

    def clear(self) -> None:
        with self._lock:
            self._vault.clear()

    def export_token(self) -> str:
        """Serialise the vault token so it can be imported on another machine."""
        with self._lock:
            entry = self._vault.load()
        if entry is None or not entry.has_token:
            raise CredentialNotFoundError("No internal token to export")
        return json.dumps(
            {
                "version": EXPORT_VERSION,
                "access_token": entry.token,
                "refresh_token": entry.refresh_token,
                "expires_at": entry.expires_at,
                "token_fingerprint": entry.token_fingerprint,
                "exported_at": utc_iso(self._clock()),
            }
        )

    def import_token(self, data: str) -> VaultEntry:
        """Store a token from an export document or a raw credential file body."""
        token, refresh_token, expires_at = _parse_import(data)
        with self._lock:
            return self._store(token, refresh_token, IMPORT_SOURCE_LABEL, expires_at)

    def status(self) -> TokenStatus:
        with self._lock:
            entry = self._vault.load()
            resolved = self._resolve()

        source_fp = fingerprint(resolved.token) if resolved else None
        vault_fp = entry.token_fingerprint if entry else None
        if entry is not None and entry.source_path:
            source = entry.source_path
        else:
            source = resolved.source_label if resolved else NO_SOURCE_LABEL
        return TokenStatus(
            has_internal_token=entry is not None,
            token_preview=mask(entry.token) if entry and entry.has_token else None,
            token_fingerprint=vault_fp,
            copied_at=entry.copied_at if entry else None,
            expires_at=entry.expires_at if entry else None,
            source=source,
            source_differs=source_fp is not None and source_fp != vault_fp,
            source_fingerprint=source_fp,
        )


def _parse_expiry(value: Any) -> float | None:
    seconds: float | None = None
    if isinstance(value, str) and value:
        # fromisoformat only accepts a trailing "Z" from Python 3.11 on.
        text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
        try:
            seconds = datetime.fromisoformat(text).timestamp()
        except (ValueError, OverflowError, OSError):
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000.0 if value > 1e12 else float(value)
    if utc_iso_or_none(seconds) is None:
        return None
    return seconds


def _parse_import(data: str) -> tuple[str, str | None, float | None]:
    try:
        document = json.loads(data)
    except json.JSONDecodeError as exc:
        raise TokenImportError("Import data is not valid JSON") from exc
    if not isinstance(document, dict):
        raise TokenImportError("Import data must be a JSON object")

    if "access_token" in document:
        token = document.get("access_token")
        if not isinstance(token, str) or not token.strip():
            raise TokenImportError("Import data contains no token")
        token = token.strip()
        expected = document.get("token_fingerprint")
        if expected and expected != fingerprint(token):
            raise TokenImportError("Token fingerprint does not match exported token")
        refresh_token = document.get("refresh_token")
        return (
            token,
            refresh_token if isinstance(refresh_token, str) and refresh_token else None,
            _parse_expiry(document.get("expires_at")),
        )

    extracted = extract_credential(document)
    if extracted is None:
        raise TokenImportError("Import data contains no token")
    return extracted.token, extracted.refresh_token, extracted.expires_at


__all__ = [
    "CHANGE_LOG_LIMIT",
    "ChangeLog",
    "ChangeLogEntry",
    "DetectionStatus",
    "DriftDetector",
    "TokenStatus",
]
