import os
from pathlib import Path

import pytest

from msamiati.application import config as config_module
from msamiati.application.config import AppConfig, resolve_config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point config discovery at a temp dir and clear MSAMIATI_* env vars."""
    toml = tmp_path / "config.toml"
    monkeypatch.setattr(config_module, "CONFIG_FILES", [toml])
    for name in list(os.environ):
        if name.startswith("MSAMIATI_"):
            monkeypatch.delenv(name)
    return toml


def test_defaults():
    config = resolve_config()
    assert config.words_per_day == 40
    assert config.sync_page_size == 1000
    assert config.save_debounce_seconds == 0.3
    assert config.encrypt_state is True
    assert config.catalog_url is None
    assert not config.catalog_configured
    assert config.data_dir == Path.home() / ".local/share/msamiati"


def test_toml_file_is_read(isolated_config):
    isolated_config.write_text('catalog_url = "https://db.example.test/"\nwords_per_day = 25\n')
    config = resolve_config()
    assert config.catalog_url == "https://db.example.test"
    assert config.words_per_day == 25
    assert config.catalog_configured


def test_env_overrides_file(isolated_config, monkeypatch):
    isolated_config.write_text("words_per_day = 25\n")
    monkeypatch.setenv("MSAMIATI_WORDS_PER_DAY", "30")
    assert resolve_config().words_per_day == 30


def test_cli_overrides_env(monkeypatch, tmp_path):
    monkeypatch.setenv("MSAMIATI_WORDS_PER_DAY", "30")
    config = resolve_config({"words_per_day": 10, "catalog_url": None, "data_dir": tmp_path})
    assert config.words_per_day == 10
    assert config.data_dir == tmp_path


def test_paths_expand_user(monkeypatch):
    monkeypatch.setenv("MSAMIATI_DATA_DIR", "~/vocab")
    assert resolve_config().data_dir == Path("~/vocab").expanduser()


def test_invalid_values_rejected():
    from pydantic import ValidationError

    with pytest.raises(ValidationError):
        AppConfig(words_per_day=0)
