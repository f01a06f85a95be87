"""Custom exception types."""

from __future__ import annotations


class MeterError(Exception):
    """Base class for errors raised by the tracker core."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CredentialNotFoundError(MeterError):
    """Raised when no credential source yields a usable token."""

    def __init__(self, message: str = "No credential source found") -> None:
        super().__init__(message)


class SecretStoreError(MeterError):
    """Raised when the secret store cannot read, write or delete a secret."""

    def __init__(self, key: str, message: str = "Secret store operation failed") -> None:
        super().__init__(message)
        self.key = key


class ConfigurationError(MeterError):
    """Raised when an operation references configuration that does not exist."""


class ProviderNotFoundError(ConfigurationError):
    """Raised when a provider id is not part of the aggregate state."""

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"Provider not found: {provider_id}")
        self.provider_id = provider_id


class TokenImportError(MeterError):
    """Raised when an exported token document cannot be imported."""


class RemoteApiError(MeterError):
    """Raised inside remote usage clients on network or HTTP failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
