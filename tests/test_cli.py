"""Tests for CLI module."""

import asyncio
import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from rich.console import Console

from sheet_catalog.application.catalog import CatalogRepository
from sheet_catalog.cli import cli
from sheet_catalog.domain.ports import Tables
from sheet_catalog.domain.value_objects import Category, Identity, Instrument, NewVariant
from sheet_catalog.infrastructure.repositories import (
    InMemoryBlobStore,
    InMemoryRelationalStore,
)
from sheet_catalog.models.config import CatalogConfig

ROOT = "admin@lege.music"


@pytest.fixture
def store():
    return InMemoryRelationalStore()


@pytest.fixture
def catalog(store):
    return CatalogRepository(store, InMemoryBlobStore(), root_admin_email=ROOT)


@pytest.fixture
def invoke(catalog, monkeypatch):
    monkeypatch.setattr("sheet_catalog.cli.console", Console(width=200))
    runner = CliRunner()

    def _invoke(*args, input=None, config=None):
        obj = {"config": config or CatalogConfig.default(), "catalog_factory": lambda config: catalog}
        return runner.invoke(cli, list(args), obj=obj, input=input)

    return _invoke


def seed(catalog, *songs):
    async def _seed():
        ids = []
        for name, category, count in songs:
            url = (await catalog.upload_sheet("s.pdf", b"%PDF")).value()
            song = (await catalog.create_song(name, [category], Instrument.PIANO, [NewVariant("C", url)])).value()
            for _ in range(count):
                await catalog.increment_search(song.id)
            ids.append(song.id)
        return ids

    return asyncio.run(_seed())


class TestSongsCommand:
    """Test the library listing."""

    def test_lists_songs(self, catalog, invoke):
        seed(catalog, ("Grace", Category.WORSHIP, 0), ("Night", Category.CHRISTMAS, 0))

        result = invoke("songs")

        assert result.exit_code == 0
        assert "Grace" in result.output
        assert "Night" in result.output
        assert "2 total" in result.output

    def test_filters_by_query_and_category(self, catalog, invoke):
        seed(catalog, ("Grace", Category.WORSHIP, 0), ("Night", Category.CHRISTMAS, 0))

        result = invoke("songs", "--query", "gra", "--category", "Worship")

        assert "Grace" in result.output
        assert "Night" not in result.output

    def test_rejects_unknown_category(self, invoke):
        result = invoke("songs", "--category", "Jazz")
        assert result.exit_code != 0

    def test_backend_failure(self, store, invoke):
        store.fail("select", Tables.SONGS, "connection reset")
        result = invoke("songs")
        assert result.exit_code == 1
        assert "connection reset" in result.output


class TestSuggestCommand:
    """Test search-box suggestions."""

    def test_limited_by_config(self, catalog, invoke):
        seed(catalog, ("Grace", Category.WORSHIP, 0), ("Amazing Grace", Category.WORSHIP, 0),
             ("Night", Category.CHRISTMAS, 0))
        config = CatalogConfig.default()
        config.library.suggestion_limit = 1

        result = invoke("suggest", "grace", config=config)

        assert result.exit_code == 0
        assert len([line for line in result.output.splitlines() if "Grace (C)" in line]) == 1
        assert "Night" not in result.output

    def test_limit_option_overrides_config(self, catalog, invoke):
        seed(catalog, ("Grace", Category.WORSHIP, 0), ("Amazing Grace", Category.WORSHIP, 0))

        result = invoke("suggest", "GRACE", "--limit", "5")

        assert "Amazing Grace" in result.output
        assert result.output.count("Grace") == 2

    def test_no_match(self, catalog, invoke):
        seed(catalog, ("Grace", Category.WORSHIP, 0))
        result = invoke("suggest", "   ")
        assert result.exit_code == 0
        assert "No songs match" in result.output


class TestTopCommand:
    """Test the analytics view."""

    def test_ranks_by_search_count(self, catalog, invoke):
        seed(catalog, ("Grace", Category.WORSHIP, 2), ("Night", Category.CHRISTMAS, 5))

        result = invoke("top")

        assert result.exit_code == 0
        assert result.output.index("Night") < result.output.index("Grace")
        assert "7 searches overall" in result.output


class TestDeleteCommand:
    """Test song deletion from the command line."""

    def test_delete_with_confirmation(self, catalog, store, invoke):
        (song_id,) = seed(catalog, ("Grace", Category.WORSHIP, 0))

        result = invoke("delete", song_id, input="y\n")

        assert result.exit_code == 0
        assert "Deleted song" in result.output
        assert store.rows(Tables.SONGS) == []

    def test_delete_cancelled(self, catalog, store, invoke):
        (song_id,) = seed(catalog, ("Grace", Category.WORSHIP, 0))

        result = invoke("delete", song_id, input="n\n")

        assert "Cancelled" in result.output
        assert len(store.rows(Tables.SONGS)) == 1

    def test_delete_missing_song(self, invoke):
        result = invoke("delete", "missing", "--yes")
        assert result.exit_code == 1
        assert "Song was not deleted" in result.output


class TestAdminCommands:
    """Test admin grant management."""

    def test_grant_and_revoke(self, catalog, invoke):
        asyncio.run(catalog.ensure_profile(Identity(id="u1", email="leader@example.com")))

        assert invoke("grant", "leader@example.com").exit_code == 0
        listing = invoke("admins")
        assert "leader@example.com" in listing.output
        assert ROOT in listing.output

        revoked = invoke("revoke", "leader@example.com")
        assert "Revoked" in revoked.output
        assert "was not an admin" in invoke("revoke", "leader@example.com").output

    def test_grant_unregistered(self, invoke):
        result = invoke("grant", "stranger@example.com")
        assert result.exit_code == 1
        assert "No registered account" in result.output

    def test_revoke_root_refused(self, invoke):
        result = invoke("revoke", ROOT)
        assert result.exit_code == 1
        assert "root admin" in result.output


class TestConfigLoading:
    """Test configuration sources."""

    def test_missing_credentials_reported(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SHEET_CATALOG_URL", raising=False)
        monkeypatch.delenv("SHEET_CATALOG_ANON_KEY", raising=False)
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"backend": {"bucket": "sheets"}}))

        result = CliRunner().invoke(cli, ["--config", str(config_path), "admins"], obj={})

        assert result.exit_code == 1
        assert "Backend configuration missing" in result.output

    def test_environment_reaches_backend(self, monkeypatch):
        monkeypatch.setenv("SHEET_CATALOG_URL", "https://p.supabase.co")
        monkeypatch.setenv("SHEET_CATALOG_ANON_KEY", "anon")

        with patch("sheet_catalog.cli.create_supabase_backend") as create:
            create.side_effect = RuntimeError("stop")
            CliRunner().invoke(cli, ["admins"], obj={})

        config = create.call_args[0][0]
        assert config.url == "https://p.supabase.co"
        assert config.anon_key == "anon"
