"""Pick the effective OAuth token among the competing credential sources."""

from __future__ import annotations

import logging
import pathlib
from collections.abc import Iterable, Iterator, Sequence

from .scanner import (
    TOKEN_ENV_VAR,
    CredentialCandidate,
    Provenance,
    ResolvedCredential,
    candidate_paths,
    read_candidate,
)

logger = logging.getLogger("meterai.credentials")

NO_SOURCE_LABEL = "none"


class CredentialResolver:
    """Resolve a token with precedence custom path, environment variable, auto-detected paths."""

    def __init__(
        self,
        auto_paths: Sequence[pathlib.Path] | None = None,
        env_var: str = TOKEN_ENV_VAR,
    ) -> None:
        self._auto_paths = list(auto_paths) if auto_paths is not None else None
        self.env_var = env_var

    def auto_paths(self) -> list[pathlib.Path]:
        if self._auto_paths is not None:
            return list(self._auto_paths)
        return candidate_paths()

    def candidates(self, custom_path: str | None = None) -> Iterator[CredentialCandidate]:
        if custom_path:
            yield CredentialCandidate(
                Provenance.CUSTOM_PATH, path=pathlib.Path(custom_path).expanduser()
            )
        yield CredentialCandidate(Provenance.ENV_VAR, env_var=self.env_var)
        for path in self.auto_paths():
            yield CredentialCandidate(Provenance.AUTO_PATH, path=path)

    def resolve(self, custom_path: str | None = None) -> ResolvedCredential | None:
        """Return the first credential any source yields, or ``None``."""
        return _first_hit(self.candidates(custom_path))

    def resolved_source_label(self, custom_path: str | None = None) -> str:
        """Describe which source tier produced the token (diagnostics only)."""
        resolved = self.resolve(custom_path)
        if resolved is None:
            return NO_SOURCE_LABEL
        return resolved.source_label


def _first_hit(candidates: Iterable[CredentialCandidate]) -> ResolvedCredential | None:
    for candidate in candidates:
        resolved = read_candidate(candidate)
        if resolved is not None:
            logger.debug(
                "Credential source resolved",
                extra={"event": "credential_resolved", "provenance": resolved.provenance.value},
            )
            return resolved
    return None


__all__ = ["CredentialResolver", "NO_SOURCE_LABEL"]
