from __future__ import annotations

import hashlib
import json

import pytest
from conftest import FailingSecretStore

from meterai.core.exceptions import SecretStoreError
from meterai.credentials.vault import TokenVault, fingerprint, mask
from meterai.storage.secrets import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY

LONG_TOKEN = "sk-ant-REDACTED"


@pytest.fixture
def vault(tmp_path, secret_store, clock) -> TokenVault:
    return TokenVault(secret_store, tmp_path / "token_meta.json", clock)


def test_mask_redacts_short_tokens():
    assert mask("short") == "*****"
    assert mask("x" * 20) == "*" * 20


def test_mask_long_token_shows_prefix_and_suffix():
    masked = mask(LONG_TOKEN)

    assert masked == "sk-ant-oauth-01...cdef"
    assert "23456789ab" not in masked


def test_fingerprint_is_truncated_sha256():
    digest = hashlib.sha256(LONG_TOKEN.encode()).hexdigest()

    assert fingerprint(LONG_TOKEN) == digest[:16]
    assert len(fingerprint(LONG_TOKEN)) == 16


def test_store_and_load_round_trip(vault, secret_store):
    entry = vault.store(LONG_TOKEN, "refresh-1", "auto:/home/demo/.claude/.credentials.json", 1_800_000_000)

    loaded = vault.load()

    assert loaded is not None
    assert loaded.token == LONG_TOKEN
    assert loaded.refresh_token == "refresh-1"
    assert loaded.token_fingerprint == entry.token_fingerprint == fingerprint(LONG_TOKEN)
    assert loaded.source_path == "auto:/home/demo/.claude/.credentials.json"
    assert loaded.expires_at is not None
    assert secret_store.get_secret(ACCESS_TOKEN_KEY) == LONG_TOKEN


def test_metadata_file_never_contains_secrets(vault):
    vault.store(LONG_TOKEN, "refresh-secret", "custom:/tmp/creds.json")

    document = json.loads(vault.metadata_path.read_text())

    assert set(document) == {"token_fingerprint", "copied_at", "expires_at", "source_path"}
    assert LONG_TOKEN not in vault.metadata_path.read_text()
    assert "refresh-secret" not in vault.metadata_path.read_text()


def test_store_overwrites_previous_entry(vault, secret_store):
    vault.store("first-token-value-abcdefgh", "refresh", "auto:a")
    vault.store("second-token-value-abcdefgh", None, "auto:b")

    loaded = vault.load()

    assert loaded is not None
    assert loaded.token == "second-token-value-abcdefgh"
    assert loaded.refresh_token is None
    assert secret_store.get_secret(REFRESH_TOKEN_KEY) is None


def test_secret_write_failure_leaves_no_metadata(tmp_path, secret_store, clock):
    vault = TokenVault(FailingSecretStore(secret_store), tmp_path / "token_meta.json", clock)

    with pytest.raises(SecretStoreError):
        vault.store(LONG_TOKEN, None, "auto:x")

    assert not vault.metadata_path.exists()
    assert vault.load() is None


def test_refresh_write_failure_drops_stale_metadata(tmp_path, secret_store, clock):
    good = TokenVault(secret_store, tmp_path / "token_meta.json", clock)
    good.store("old-token-value-abcdefghij", None, "auto:x")
    flaky = TokenVault(
        FailingSecretStore(secret_store, fail_keys={REFRESH_TOKEN_KEY}),
        tmp_path / "token_meta.json",
        clock,
    )

    with pytest.raises(SecretStoreError):
        flaky.store("new-token-value-abcdefghij", "refresh", "auto:y")

    assert not flaky.metadata_path.exists()


def test_metadata_without_secret_reports_empty_token(vault, secret_store):
    vault.store(LONG_TOKEN, None, "auto:x")
    secret_store.delete_secret(ACCESS_TOKEN_KEY)

    loaded = vault.load()

    assert loaded is not None
    assert loaded.token == ""
    assert loaded.has_token is False
    assert loaded.token_fingerprint == fingerprint(LONG_TOKEN)


def test_clear_is_idempotent(vault, secret_store):
    vault.store(LONG_TOKEN, "refresh", "auto:x")

    vault.clear()
    vault.clear()

    assert vault.load() is None
    assert secret_store.get_secret(ACCESS_TOKEN_KEY) is None
    assert secret_store.get_secret(REFRESH_TOKEN_KEY) is None


def test_unrepresentable_expiry_is_dropped_before_secrets_change(vault, secret_store):
    vault.store("old-token-value-abcdefghij", None, "auto:x")

    entry = vault.store(LONG_TOKEN, None, "auto:y", 1e20)

    metadata = vault.load_metadata()
    assert entry.expires_at is None
    assert metadata is not None
    assert metadata.expires_at is None
    assert metadata.token_fingerprint == fingerprint(secret_store.get_secret(ACCESS_TOKEN_KEY))
