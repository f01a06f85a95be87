"""Credential source discovery and parsing.

Two credential file shapes are understood:

* the nested shape written by current CLI releases::

      {"claudeAiOauth": {"accessToken": ..., "refreshToken": ...,
                         "expiresAt": ..., "subscriptionType": ...}}

* the legacy flat shape::

      {"accessToken": ..., "refreshToken": ..., "expiresAt": ...}

The nested shape wins when a document carries both.
"""

from __future__ import annotations

import json
import logging
import os
import pathlib
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from meterai.core.clock import utc_iso_or_none

logger = logging.getLogger("meterai.credentials")

NESTED_KEY = "claudeAiOauth"
TOKEN_ENV_VAR = "CLAUDE_CODE_OAUTH_TOKEN"
CREDENTIALS_FILE = ".credentials.json"
LEGACY_CREDENTIALS_FILE = "credentials.json"
EXTENSION_ID = "anthropic.claude-code"


class SchemaVariant(str, Enum):
    NESTED = "nested"
    FLAT = "flat"


class Provenance(str, Enum):
    CUSTOM_PATH = "custom"
    ENV_VAR = "env"
    AUTO_PATH = "auto"


@dataclass(frozen=True)
class ExtractedCredential:
    token: str
    variant: SchemaVariant
    refresh_token: str | None = None
    expires_at: float | None = None
    subscription_type: str | None = None


@dataclass(frozen=True)
class CredentialCandidate:
    provenance: Provenance
    path: pathlib.Path | None = None
    env_var: str | None = None


@dataclass(frozen=True)
class ResolvedCredential:
    token: str
    provenance: Provenance
    path: pathlib.Path | None = None
    env_var: str | None = None
    subscription_type: str | None = None
    refresh_token: str | None = None
    expires_at: float | None = None

    @property
    def source_label(self) -> str:
        if self.provenance is Provenance.ENV_VAR:
            return f"env:{self.env_var}"
        return f"{self.provenance.value}:{self.path}"


def _as_str(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _as_expiry(value: Any) -> float | None:
    """Normalise an ``expiresAt`` value (epoch ms or seconds) to epoch seconds."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    seconds = value / 1000.0 if value > 1e12 else float(value)
    if utc_iso_or_none(seconds) is None:
        return None
    return seconds


def _extract_variant(block: Any, variant: SchemaVariant) -> ExtractedCredential | None:
    if not isinstance(block, Mapping):
        return None
    token = _as_str(block.get("accessToken"))
    if not token:
        return None
    return ExtractedCredential(
        token=token,
        variant=variant,
        refresh_token=_as_str(block.get("refreshToken")),
        expires_at=_as_expiry(block.get("expiresAt")),
        subscription_type=_as_str(block.get("subscriptionType")),
    )


def extract_credential(document: Any) -> ExtractedCredential | None:
    """Pull a token out of a decoded credential document, nested shape first."""
    if not isinstance(document, Mapping):
        return None
    return _extract_variant(document.get(NESTED_KEY), SchemaVariant.NESTED) or _extract_variant(
        document, SchemaVariant.FLAT
    )


def candidate_paths(
    platform: str | None = None,
    home: pathlib.Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[pathlib.Path]:
    """Return the auto-detect credential locations in lookup order."""
    platform = platform or sys.platform
    home = home or pathlib.Path.home()
    environ = os.environ if environ is None else environ

    claude_dir = home / ".claude"
    paths = [claude_dir / CREDENTIALS_FILE, claude_dir / LEGACY_CREDENTIALS_FILE]

    if platform == "win32":
        appdata = pathlib.Path(environ.get("APPDATA") or home / "AppData" / "Roaming")
        local_appdata = pathlib.Path(environ.get("LOCALAPPDATA") or home / "AppData" / "Local")
        paths.append(appdata / "Code" / "User" / "globalStorage" / EXTENSION_ID / CREDENTIALS_FILE)
        paths.append(local_appdata / "Claude" / CREDENTIALS_FILE)
        paths.append(appdata / "Claude" / CREDENTIALS_FILE)
    elif platform == "darwin":
        paths.append(home / "Library" / "Application Support" / "Claude" / CREDENTIALS_FILE)
        paths.append(home / ".config" / "claude" / CREDENTIALS_FILE)
    else:
        config_home = pathlib.Path(environ.get("XDG_CONFIG_HOME") or home / ".config")
        paths.append(config_home / "claude" / CREDENTIALS_FILE)
    return paths


def read_candidate(candidate: CredentialCandidate) -> ResolvedCredential | None:
    """Read one candidate source; misses (absent, unparsable, empty) return ``None``."""
    if candidate.env_var is not None:
        token = _as_str(os.environ.get(candidate.env_var))
        if not token:
            return None
        return ResolvedCredential(
            token=token, provenance=candidate.provenance, env_var=candidate.env_var
        )

    path = candidate.path
    if path is None:
        return None
    try:
        if not path.is_file():
            return None
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        logger.debug("Skipping unreadable credential file", extra={"path": str(path)})
        return None

    extracted = extract_credential(document)
    if extracted is None:
        return None
    return ResolvedCredential(
        token=extracted.token,
        provenance=candidate.provenance,
        path=path,
        subscription_type=extracted.subscription_type,
        refresh_token=extracted.refresh_token,
        expires_at=extracted.expires_at,
    )


__all__ = [
    "CredentialCandidate",
    "ExtractedCredential",
    "Provenance",
    "ResolvedCredential",
    "SchemaVariant",
    "TOKEN_ENV_VAR",
    "candidate_paths",
    "extract_credential",
    "read_candidate",
]
