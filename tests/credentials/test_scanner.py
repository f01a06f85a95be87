from __future__ import annotations

import json
import pathlib

from meterai.credentials.scanner import (
    TOKEN_ENV_VAR,
    CredentialCandidate,
    Provenance,
    SchemaVariant,
    candidate_paths,
    extract_credential,
    read_candidate,
)

EXPIRES_AT_MS = 1_760_000_000_000


def test_extract_nested_schema():
    extracted = extract_credential(
        {
            "claudeAiOauth": {
                "accessToken": "nested-token",
                "refreshToken": "nested-refresh",
                "expiresAt": EXPIRES_AT_MS,
                "subscriptionType": "max",
            }
        }
    )

    assert extracted is not None
    assert extracted.variant is SchemaVariant.NESTED
    assert extracted.token == "nested-token"
    assert extracted.refresh_token == "nested-refresh"
    assert extracted.expires_at == EXPIRES_AT_MS / 1000
    assert extracted.subscription_type == "max"


def test_extract_flat_schema():
    extracted = extract_credential({"accessToken": "flat-token", "refreshToken": "r"})

    assert extracted is not None
    assert extracted.variant is SchemaVariant.FLAT
    assert extracted.token == "flat-token"
    assert extracted.subscription_type is None


def test_nested_schema_wins_over_flat():
    extracted = extract_credential(
        {"accessToken": "flat-token", "claudeAiOauth": {"accessToken": "nested-token"}}
    )

    assert extracted is not None
    assert extracted.token == "nested-token"


def test_empty_nested_token_falls_back_to_flat():
    extracted = extract_credential(
        {"accessToken": "flat-token", "claudeAiOauth": {"accessToken": ""}}
    )

    assert extracted is not None
    assert extracted.variant is SchemaVariant.FLAT


def test_extract_rejects_missing_or_blank_tokens():
    assert extract_credential({}) is None
    assert extract_credential({"accessToken": "   "}) is None
    assert extract_credential({"claudeAiOauth": {"refreshToken": "only"}}) is None
    assert extract_credential(["not", "a", "mapping"]) is None


def test_read_candidate_misses_are_silent(tmp_path):
    missing = CredentialCandidate(Provenance.AUTO_PATH, path=tmp_path / "absent.json")
    assert read_candidate(missing) is None

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    assert read_candidate(CredentialCandidate(Provenance.AUTO_PATH, path=broken)) is None

    empty = tmp_path / "empty.json"
    empty.write_text(json.dumps({"claudeAiOauth": {"accessToken": ""}}))
    assert read_candidate(CredentialCandidate(Provenance.AUTO_PATH, path=empty)) is None


def test_read_candidate_from_file(tmp_path):
    path = tmp_path / ".credentials.json"
    path.write_text(json.dumps({"claudeAiOauth": {"accessToken": "tok", "subscriptionType": "pro"}}))

    resolved = read_candidate(CredentialCandidate(Provenance.CUSTOM_PATH, path=path))

    assert resolved is not None
    assert resolved.token == "tok"
    assert resolved.subscription_type == "pro"
    assert resolved.source_label == f"custom:{path}"


def test_read_candidate_from_environment(monkeypatch):
    monkeypatch.setenv(TOKEN_ENV_VAR, "  env-token  ")

    resolved = read_candidate(CredentialCandidate(Provenance.ENV_VAR, env_var=TOKEN_ENV_VAR))

    assert resolved is not None
    assert resolved.token == "env-token"
    assert resolved.source_label == f"env:{TOKEN_ENV_VAR}"


def test_candidate_paths_linux_order():
    home = pathlib.Path("/home/demo")

    paths = candidate_paths(platform="linux", home=home, environ={})

    assert paths == [
        home / ".claude" / ".credentials.json",
        home / ".claude" / "credentials.json",
        home / ".config" / "claude" / ".credentials.json",
    ]


def test_candidate_paths_windows_include_extension_storage():
    home = pathlib.Path("C:/Users/demo")
    environ = {"APPDATA": "C:/Users/demo/AppData/Roaming", "LOCALAPPDATA": "C:/Users/demo/AppData/Local"}

    paths = candidate_paths(platform="win32", home=home, environ=environ)

    assert paths[:2] == [
        home / ".claude" / ".credentials.json",
        home / ".claude" / "credentials.json",
    ]
    assert paths[2] == (
        pathlib.Path(environ["APPDATA"])
        / "Code"
        / "User"
        / "globalStorage"
        / "anthropic.claude-code"
        / ".credentials.json"
    )
    assert pathlib.Path(environ["LOCALAPPDATA"]) / "Claude" / ".credentials.json" in paths


def test_candidate_paths_macos_application_support():
    home = pathlib.Path("/Users/demo")

    paths = candidate_paths(platform="darwin", home=home, environ={})

    assert paths[2] == home / "Library" / "Application Support" / "Claude" / ".credentials.json"


def test_extract_drops_unrepresentable_expiry():
    extracted = extract_credential({"accessToken": "tok", "expiresAt": 1e20})

    assert extracted is not None
    assert extracted.expires_at is None


def test_read_candidate_with_overlong_path_is_a_miss(tmp_path):
    overlong = tmp_path / ("x" * 300)

    assert read_candidate(CredentialCandidate(Provenance.CUSTOM_PATH, path=overlong)) is None
