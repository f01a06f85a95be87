"""Private copy of the OAuth token: secrets in the secret store, metadata on disk."""

from __future__ import annotations

import hashlib
import logging
import pathlib

from pydantic import BaseModel, Field

from meterai.core.clock import Clock, system_clock, utc_iso, utc_iso_or_none
from meterai.core.exceptions import SecretStoreError
from meterai.storage.json_store import best_effort_remove, best_effort_write, read_json
from meterai.storage.secrets import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, SecretStore

logger = logging.getLogger("meterai.vault")

FINGERPRINT_LENGTH = 16
MASK_VISIBLE_PREFIX = 15
MASK_VISIBLE_SUFFIX = 4
MASK_MIN_LENGTH = 20


def fingerprint(token: str) -> str:
    """Return the truncated SHA-256 of ``token`` used for comparisons and display."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def mask(token: str) -> str:
    """Return a display-safe preview of ``token``."""
    if len(token) <= MASK_MIN_LENGTH:
        return "*" * len(token)
    return f"{token[:MASK_VISIBLE_PREFIX]}...{token[-MASK_VISIBLE_SUFFIX:]}"


class VaultMetadata(BaseModel):
    token_fingerprint: str
    copied_at: str
    expires_at: str | None = None
    source_path: str | None = None


class VaultEntry(VaultMetadata):
    token: str = Field(default="", exclude=True)
    refresh_token: str | None = Field(default=None, exclude=True)

    @property
    def has_token(self) -> bool:
        """Whether the secret itself could be retrieved, not just the metadata."""
        return bool(self.token)


class TokenVault:
    """Persist one OAuth token (plus optional refresh token) and its metadata."""

    def __init__(
        self,
        secrets: SecretStore,
        metadata_path: pathlib.Path,
        clock: Clock = system_clock,
    ) -> None:
        self._secrets = secrets
        self.metadata_path = metadata_path
        self._clock = clock

    def store(
        self,
        token: str,
        refresh_token: str | None,
        source_label: str | None,
        expires_at: float | None = None,
    ) -> VaultEntry:
        """Overwrite the vault with ``token``; secrets first, metadata only on success."""
        entry = VaultEntry(
            token=token,
            refresh_token=refresh_token,
            token_fingerprint=fingerprint(token),
            copied_at=utc_iso(self._clock()),
            expires_at=utc_iso_or_none(expires_at),
            source_path=source_label,
        )

        self._secrets.set_secret(ACCESS_TOKEN_KEY, token)
        try:
            if refresh_token:
                self._secrets.set_secret(REFRESH_TOKEN_KEY, refresh_token)
            else:
                self._secrets.delete_secret(REFRESH_TOKEN_KEY)
        except SecretStoreError:
            # The access token already changed; drop metadata that now describes a stale token.
            best_effort_remove(self.metadata_path)
            raise

        if not best_effort_write(self.metadata_path, entry.model_dump(mode="json")):
            best_effort_remove(self.metadata_path)
        logger.info(
            "Token stored in vault",
            extra={
                "event": "vault_store",
                "fingerprint": entry.token_fingerprint,
                "source": source_label,
            },
        )
        return entry

    def load_metadata(self) -> VaultMetadata | None:
        raw = read_json(self.metadata_path)
        if not isinstance(raw, dict):
            return None
        try:
            return VaultMetadata.model_validate(raw)
        except ValueError:
            logger.warning("Ignoring malformed vault metadata", extra={"event": "vault_metadata_invalid"})
            return None

    def load(self) -> VaultEntry | None:
        """Return the vault entry; ``token`` is empty when the secret is not retrievable."""
        metadata = self.load_metadata()
        if metadata is None:
            return None

        token = ""
        refresh_token = None
        try:
            token = self._secrets.get_secret(ACCESS_TOKEN_KEY) or ""
            refresh_token = self._secrets.get_secret(REFRESH_TOKEN_KEY)
        except SecretStoreError:
            logger.warning("Vault secret not retrievable", extra={"event": "vault_secret_missing"})
        return VaultEntry(token=token, refresh_token=refresh_token, **metadata.model_dump())

    def clear(self) -> None:
        """Delete both secrets and the metadata document; no-op when already empty."""
        self._secrets.delete_secret(ACCESS_TOKEN_KEY)
        self._secrets.delete_secret(REFRESH_TOKEN_KEY)
        best_effort_remove(self.metadata_path)
        logger.info("Vault cleared", extra={"event": "vault_clear"})


__all__ = ["TokenVault", "VaultEntry", "VaultMetadata", "fingerprint", "mask"]
