from __future__ import annotations

import pytest
from pydantic import ValidationError

from meterai.core.config import AppConfig, ProviderDefaults, default_data_dir, load_config


@pytest.fixture(autouse=True)
def clear_config_cache():
    load_config.cache_clear()
    yield
    load_config.cache_clear()


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "providers.yaml"
    path.write_text(
        """
providers:
  - id: demo
    kind: openai
    name: Demo
    limit: 25
    alert_thresholds: [50]
"""
    )

    config = load_config(path)

    assert config.active_provider == "demo"
    assert config.providers[0].limit == 25
    assert config.providers[0].reset_interval_hours == 4


def test_missing_file_uses_builtin_catalogue(tmp_path):
    config = load_config(tmp_path / "absent.yaml")

    assert config.active_provider == "claude-pro-max"
    assert [p.alert_thresholds for p in config.providers][0] == [70, 90, 100]


def test_duplicate_ids_are_rejected():
    with pytest.raises(ValidationError):
        AppConfig(providers=[ProviderDefaults(id="a", name="A"), ProviderDefaults(id="a", name="B")])


def test_unknown_active_provider_is_rejected():
    with pytest.raises(ValidationError):
        AppConfig(providers=[ProviderDefaults(id="a", name="A")], active_provider="b")


def test_data_dir_override(monkeypatch, tmp_path):
    monkeypatch.setenv("METERAI_DATA_DIR", str(tmp_path / "data"))

    assert default_data_dir() == tmp_path / "data"
