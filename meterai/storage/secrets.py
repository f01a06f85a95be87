"""Secret store for API keys and OAuth tokens."""

from __future__ import annotations

import logging
import pathlib
from typing import cast

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from meterai.core.exceptions import SecretStoreError

from .database import Base, create_sqlite_engine, make_session_factory, session_scope
from .models import StoredSecret

logger = logging.getLogger("meterai.secrets")

SECRET_NAMESPACE = "meterai"
ACCESS_TOKEN_KEY = "oauth:access_token"
REFRESH_TOKEN_KEY = "oauth:refresh_token"


def provider_key(provider_id: str) -> str:
    """Return the secret key holding a provider's own API key."""
    return f"provider:{provider_id}"


class SecretStore:
    """Store, retrieve and delete secrets by ``(namespace, key)``."""

    namespace: str = SECRET_NAMESPACE

    def set_secret(self, key: str, value: str) -> None:
        raise NotImplementedError

    def get_secret(self, key: str) -> str | None:
        raise NotImplementedError

    def delete_secret(self, key: str) -> bool:
        raise NotImplementedError


class SqlSecretStore(SecretStore):
    """Secret store persisted in a local SQLite database."""

    def __init__(self, path: pathlib.Path | None = None, namespace: str = SECRET_NAMESPACE) -> None:
        self.namespace = namespace
        self._engine = create_sqlite_engine(path)
        self._sessions = make_session_factory(self._engine)
        Base.metadata.create_all(bind=self._engine)

    def set_secret(self, key: str, value: str) -> None:
        """Insert or update the secret stored under ``key``."""
        try:
            with session_scope(self._sessions) as session:
                existing = session.scalar(self._select(key))
                if existing:
                    session.execute(
                        update(StoredSecret)
                        .where(StoredSecret.id == existing.id)
                        .values(value=value)
                    )
                else:
                    session.add(StoredSecret(namespace=self.namespace, key=key, value=value))
        except SQLAlchemyError as exc:
            logger.error("Failed to write secret", extra={"event": "secret_write_error", "key": key})
            raise SecretStoreError(key, "Failed to write secret") from exc

    def get_secret(self, key: str) -> str | None:
        """Return the secret stored under ``key``, if any."""
        try:
            with session_scope(self._sessions) as session:
                result = session.scalar(
                    select(StoredSecret.value)
                    .where(StoredSecret.namespace == self.namespace)
                    .where(StoredSecret.key == key)
                )
                return cast(str | None, result)
        except SQLAlchemyError as exc:
            logger.error("Failed to read secret", extra={"event": "secret_read_error", "key": key})
            raise SecretStoreError(key, "Failed to read secret") from exc

    def delete_secret(self, key: str) -> bool:
        """Delete the secret under ``key``; return whether anything was removed."""
        try:
            with session_scope(self._sessions) as session:
                result = session.execute(
                    delete(StoredSecret)
                    .where(StoredSecret.namespace == self.namespace)
                    .where(StoredSecret.key == key)
                )
                return bool(result.rowcount)
        except SQLAlchemyError as exc:
            logger.error("Failed to delete secret", extra={"event": "secret_delete_error", "key": key})
            raise SecretStoreError(key, "Failed to delete secret") from exc

    def dispose(self) -> None:
        self._engine.dispose()

    def _select(self, key: str):
        return (
            select(StoredSecret)
            .where(StoredSecret.namespace == self.namespace)
            .where(StoredSecret.key == key)
        )


__all__ = [
    "ACCESS_TOKEN_KEY",
    "REFRESH_TOKEN_KEY",
    "SecretStore",
    "SqlSecretStore",
    "provider_key",
]
