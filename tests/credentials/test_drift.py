from __future__ import annotations

import json

import pytest

from meterai.core.exceptions import CredentialNotFoundError, TokenImportError
from meterai.credentials.drift import CHANGE_LOG_LIMIT, DriftDetector
from meterai.credentials.resolver import CredentialResolver
from meterai.credentials.scanner import TOKEN_ENV_VAR
from meterai.credentials.vault import TokenVault, fingerprint

FIRST_TOKEN = "sk-ant-REDACTED"
SECOND_TOKEN = "sk-ant-REDACTED"


@pytest.fixture
def source_file(tmp_path, monkeypatch):
    monkeypatch.delenv(TOKEN_ENV_VAR, raising=False)
    path = tmp_path / ".credentials.json"
    _write_source(path, FIRST_TOKEN)
    return path


def _write_source(path, token: str) -> None:
    path.write_text(
        json.dumps({"claudeAiOauth": {"accessToken": token, "refreshToken": f"refresh-{token}"}})
    )


@pytest.fixture
def detector(tmp_path, source_file, secret_store, clock) -> DriftDetector:
    vault = TokenVault(secret_store, tmp_path / "token_meta.json", clock)
    return DriftDetector(
        CredentialResolver(auto_paths=[source_file]),
        vault,
        tmp_path / "token_history.json",
        custom_path=lambda: None,
        clock=clock,
    )


def test_check_with_empty_vault_reports_change(detector):
    entry = detector.check()

    assert entry.changed is True
    assert entry.old_fingerprint is None
    assert entry.new_fingerprint == fingerprint(FIRST_TOKEN)


def test_copy_then_check_reports_no_change(detector):
    detector.copy_to_internal()

    entry = detector.check()

    assert entry.changed is False
    assert entry.old_fingerprint == entry.new_fingerprint == fingerprint(FIRST_TOKEN)


def test_source_rotation_is_detected(detector, source_file):
    detector.copy_to_internal()
    _write_source(source_file, SECOND_TOKEN)

    entry = detector.check()

    assert entry.changed is True
    assert entry.old_fingerprint == fingerprint(FIRST_TOKEN)
    assert entry.new_fingerprint == fingerprint(SECOND_TOKEN)


def test_missing_source_is_not_a_change(detector, source_file):
    detector.copy_to_internal()
    source_file.unlink()

    entry = detector.check()

    assert entry.changed is False
    assert entry.new_fingerprint is None
    assert entry.source == "none"


def test_every_check_is_logged_and_updates_last_check(detector, clock):
    detector.check()
    clock.advance(60)
    detector.check()

    history = detector.history()

    assert len(history.entries) == 2
    assert history.last_check == history.entries[-1].timestamp


def test_change_log_is_capped_fifo(detector, clock):
    for _ in range(CHANGE_LOG_LIMIT + 5):
        clock.advance(1)
        detector.check()

    history = detector.history()

    assert len(history.entries) == CHANGE_LOG_LIMIT
    assert history.entries[-1].timestamp == history.last_check
    timestamps = [entry.timestamp for entry in history.entries]
    assert timestamps == sorted(timestamps)


def test_copy_logs_only_transitions(detector, source_file):
    detector.copy_to_internal()
    detector.copy_to_internal()
    _write_source(source_file, SECOND_TOKEN)
    detector.copy_to_internal()

    entries = detector.history().entries

    assert [entry.changed for entry in entries] == [True, True]
    assert entries[0].old_fingerprint is None
    assert entries[1].old_fingerprint == fingerprint(FIRST_TOKEN)
    assert entries[1].new_fingerprint == fingerprint(SECOND_TOKEN)
    assert detector.history().last_check is None


def test_copy_refreshes_metadata_when_unchanged(detector, clock):
    first = detector.copy_to_internal()
    clock.advance(120)

    second = detector.copy_to_internal()

    assert second.token_fingerprint == first.token_fingerprint
    assert second.copied_at > first.copied_at


def test_copy_without_source_fails(detector, source_file):
    source_file.unlink()

    with pytest.raises(CredentialNotFoundError):
        detector.copy_to_internal()


def test_export_import_round_trip(detector, tmp_path, secret_store, clock):
    detector.copy_to_internal()
    exported = detector.export_token()
    detector.clear()

    entry = detector.import_token(exported)

    assert entry.token == FIRST_TOKEN
    assert entry.refresh_token == f"refresh-{FIRST_TOKEN}"
    assert entry.source_path == "import"


def test_import_accepts_credential_file_body(detector):
    entry = detector.import_token(json.dumps({"accessToken": SECOND_TOKEN}))

    assert entry.token_fingerprint == fingerprint(SECOND_TOKEN)


def test_import_rejects_bad_documents(detector):
    with pytest.raises(TokenImportError):
        detector.import_token("not json")
    with pytest.raises(TokenImportError):
        detector.import_token(json.dumps({"access_token": ""}))
    with pytest.raises(TokenImportError):
        detector.import_token(
            json.dumps({"access_token": FIRST_TOKEN, "token_fingerprint": "0000000000000000"})
        )


def test_export_without_vault_fails(detector):
    with pytest.raises(CredentialNotFoundError):
        detector.export_token()


def test_status_reports_source_difference(detector, source_file):
    status = detector.status()
    assert status.has_internal_token is False
    assert status.source_differs is True

    detector.copy_to_internal()
    status = detector.status()
    assert status.has_internal_token is True
    assert status.source_differs is False
    assert status.token_preview == "sk-ant-oauth-fi...6789"

    _write_source(source_file, SECOND_TOKEN)
    assert detector.status().source_differs is True


def test_detection_status(detector, source_file):
    status = detector.detection_status()

    assert status.detected is True
    assert status.source == f"auto:{source_file}"
    assert status.custom_path is None


def test_copy_with_out_of_range_expiry_keeps_vault_consistent(detector, source_file):
    detector.copy_to_internal()
    source_file.write_text(
        json.dumps({"claudeAiOauth": {"accessToken": SECOND_TOKEN, "expiresAt": 1e20}})
    )

    entry = detector.copy_to_internal()

    assert entry.expires_at is None
    assert entry.token_fingerprint == fingerprint(SECOND_TOKEN)
    assert detector.check().changed is False


def test_import_accepts_utc_z_suffix(detector):
    entry = detector.import_token(
        json.dumps({"access_token": FIRST_TOKEN, "expires_at": "2030-01-01T00:00:00Z"})
    )

    assert entry.expires_at == "2030-01-01T00:00:00+00:00"


def test_import_drops_out_of_range_expiry(detector):
    entry = detector.import_token(json.dumps({"access_token": FIRST_TOKEN, "expires_at": 1e20}))

    assert entry.expires_at is None
    assert entry.token_fingerprint == fingerprint(FIRST_TOKEN)
