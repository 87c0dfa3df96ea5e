"""Tests for CLI commands run end-to-end against a temporary data directory."""

import asyncio
import json
import time
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import make_row
from msamiati.application import config as config_module
from msamiati.domain.constants import CACHE_DB_FILENAME
from msamiati.domain.errors import CatalogError
from msamiati.domain.interfaces import RemoteCatalog
from msamiati.infrastructure.offline_cache import OfflineCache
from msamiati.interface.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    data = tmp_path / "data"
    monkeypatch.setattr(config_module, "CONFIG_FILES", [])
    monkeypatch.setenv("MSAMIATI_DATA_DIR", str(data))
    monkeypatch.setenv("MSAMIATI_SAVE_DEBOUNCE_SECONDS", "0")
    monkeypatch.delenv("MSAMIATI_CATALOG_URL", raising=False)
    monkeypatch.delenv("MSAMIATI_CATALOG_KEY", raising=False)
    return data


def _seed_cache(data_dir, rows):
    async def seed():
        async with OfflineCache(data_dir / CACHE_DB_FILENAME) as cache:
            await cache.bulk_replace("sw", None, rows)

    asyncio.run(seed())


class StaticCatalog(RemoteCatalog):
    def __init__(self, rows, fail=False):
        self.rows = rows
        self.fail = fail

    async def count(self, mode, category=None):
        return len(self.rows)

    async def fetch_page(self, mode, category, offset, limit):
        if self.fail:
            raise CatalogError("offline")
        return [r for r in self.rows if r["mode"] == mode][offset : offset + limit]

    async def is_responsive(self):
        return not self.fail


# --- Help ---


def test_cli_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "Swahili/Korean vocabulary trainer" in result.stdout
    for command in ("sync", "day", "review", "cache", "config"):
        assert command in result.stdout


# --- Study data ---


def test_status_on_first_launch(data_dir):
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "Decks: 9" in result.stdout
    assert "Words: 0 (0 due)" in result.stdout
    assert "running offline only" in result.stdout
    assert (data_dir / "state" / "msamiati.state").exists()


def test_add_then_stats():
    result = runner.invoke(app, ["add", "maji", "물", "--en", "water", "--tag", "noun"])
    assert result.exit_code == 0, result.output
    assert "Added 'maji' to 내 단어장." in result.stdout

    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 0, result.output
    assert "내 단어장: 1 words, 1 due" in result.stdout


def test_add_creates_missing_deck():
    result = runner.invoke(app, ["add", "safari", "여행", "--deck", "My trip"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["stats"])
    assert "My trip: 1 words, 1 due" in result.stdout


def test_review_session():
    runner.invoke(app, ["add", "maji", "물"])

    result = runner.invoke(app, ["review"], input="\ngood\n")
    assert result.exit_code == 0, result.output
    assert "Reviewed 1 words." in result.stdout

    result = runner.invoke(app, ["stats"])
    assert "내 단어장: 1 words, 0 due" in result.stdout
    assert "Reviews: 1 (again=0, hard=0, good=1)" in result.stdout


def test_review_with_nothing_due():
    result = runner.invoke(app, ["review"])
    assert result.exit_code == 0
    assert "Nothing due" in result.stdout


def test_review_unknown_deck():
    result = runner.invoke(app, ["review", "--deck", "nope"])
    assert result.exit_code == 1


def test_words_come_due_as_time_passes():
    runner.invoke(app, ["add", "maji", "물"])
    result = runner.invoke(app, ["review"], input="\nagain\n")
    assert "Reviewed 1 words." in result.stdout

    result = runner.invoke(app, ["review"])
    assert "Nothing due" in result.stdout

    two_days_later = time.time() + 2 * 86_400
    with patch("time.time", return_value=two_days_later):
        result = runner.invoke(app, ["status"])
        assert "Words: 1 (1 due)" in result.stdout

        result = runner.invoke(app, ["stats"])
        assert "내 단어장: 1 words, 1 due" in result.stdout

        result = runner.invoke(app, ["review"], input="\ngood\n")
        assert result.exit_code == 0, result.output
        assert "Reviewed 1 words." in result.stdout


@pytest.mark.parametrize("deck", ["모든 단어", "여행"])
def test_add_refuses_cloud_decks(deck):
    result = runner.invoke(app, ["add", "safari", "여행", "--deck", deck])
    assert result.exit_code == 2
    assert "cloud catalog" in result.stdout

    result = runner.invoke(app, ["status"])
    assert "Words: 0 (0 due)" in result.stdout


def test_add_rejects_blank_deck():
    result = runner.invoke(app, ["add", "safari", "여행", "--deck", "  "])
    assert result.exit_code == 2
    assert "must not be blank" in result.stdout


def test_reset_force():
    runner.invoke(app, ["add", "maji", "물"])
    result = runner.invoke(app, ["reset", "--force"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["status"])
    assert "Words: 0 (0 due)" in result.stdout
    assert "Reviews logged: 0" in result.stdout


def test_reset_aborts_without_confirmation():
    runner.invoke(app, ["add", "maji", "물"])
    result = runner.invoke(app, ["reset"], input="n\n")
    assert result.exit_code == 1

    result = runner.invoke(app, ["status"])
    assert "Words: 1" in result.stdout


# --- Catalog ---


def test_day_reads_cache_offline(data_dir):
    _seed_cache(data_dir, [make_row(n) for n in range(85)])
    result = runner.invoke(app, ["day", "sw", "3", "--offline"])
    assert result.exit_code == 0, result.output
    assert "Day 3/3 (5 words, from cache)" in result.stdout
    assert "neno84" in result.stdout


def test_day_json(data_dir):
    _seed_cache(data_dir, [make_row(n) for n in range(3)])
    result = runner.invoke(app, ["day", "sw", "1", "--json"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["source"] == "cache"
    assert payload["day_count"] == 1
    assert [r["id"] for r in payload["records"]] == ["sw-0000", "sw-0001", "sw-0002"]


def test_day_rejects_bad_mode():
    result = runner.invoke(app, ["day", "en", "1"])
    assert result.exit_code == 2


def test_sync_requires_catalog_url():
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 1
    assert "No catalog_url configured" in result.stdout


def test_sync_category_requires_mode():
    result = runner.invoke(app, ["sync", "--category", "여행"])
    assert result.exit_code == 2


@patch("msamiati.application.factory.build_remote_catalog")
def test_sync_downloads_into_cache(mock_build, monkeypatch):
    monkeypatch.setenv("MSAMIATI_CATALOG_URL", "https://catalog.example.test")
    mock_build.return_value = StaticCatalog(
        [make_row(n, mode="sw") for n in range(4)] + [make_row(n, mode="ko") for n in range(2)]
    )

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 0, result.output
    assert "sw/all: stored 4 of 4 words" in result.stdout
    assert "ko/all: stored 2 of 2 words" in result.stdout


@patch("msamiati.application.factory.build_remote_catalog")
def test_sync_failure_exits_nonzero(mock_build, monkeypatch):
    monkeypatch.setenv("MSAMIATI_CATALOG_URL", "https://catalog.example.test")
    mock_build.return_value = StaticCatalog([], fail=True)

    result = runner.invoke(app, ["sync", "--mode", "sw"])

    assert result.exit_code == 1
    assert "sync failed (offline)" in result.stdout


# --- Cache ---


def test_cache_verify_and_clear(data_dir):
    _seed_cache(data_dir, [make_row(n) for n in range(3)])

    result = runner.invoke(app, ["cache", "verify"])
    assert result.exit_code == 0, result.output
    assert "Offline cache OK." in result.stdout

    result = runner.invoke(app, ["cache", "clear", "--force"])
    assert result.exit_code == 0
    result = runner.invoke(app, ["status"])
    assert "Offline cache: 0 words" in result.stdout


# --- Config / server ---


def test_config_show_masks_key(monkeypatch):
    monkeypatch.setenv("MSAMIATI_CATALOG_KEY", "secret-anon-key")
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["catalog_key"] == "***"
    assert data["words_per_day"] == 40


@patch("uvicorn.run")
def test_serve_command(mock_run):
    result = runner.invoke(app, ["serve", "--port", "9000"])
    assert result.exit_code == 0
    mock_run.assert_called_with("msamiati.server:app", host="127.0.0.1", port=9000, reload=False)
