"""Tests for song deletion and stored-file cleanup."""

import pytest

from sheet_catalog.application.deletion import (
    NOT_DELETED_MESSAGE,
    NOT_FOUND_MESSAGE,
    PERMISSION_DENIED_MESSAGE,
    storage_object_name,
)
from sheet_catalog.domain.ports import Tables
from sheet_catalog.domain.result import NotFoundError
from sheet_catalog.domain.value_objects import Category, Instrument, NewVariant
from sheet_catalog.events import SongDeleted

BUCKET = "music-sheets"


async def seed_song(catalog, blobs, keys=("C", "G")):
    variants = []
    for key in keys:
        url = (await catalog.upload_sheet(f"{key}.pdf", b"%PDF")).value()
        variants.append(NewVariant(key, url))
    song = (await catalog.create_song("Amazing Grace", [Category.WORSHIP], Instrument.BAND, variants)).value()
    return song


class TestStorageObjectName:
    """Test deriving object names from stored URLs."""

    @pytest.mark.parametrize("url,expected", [
        (f"https://x.supabase.co/storage/v1/object/public/{BUCKET}/1700000000000-abc.pdf", "1700000000000-abc.pdf"),
        (f"https://x.supabase.co/storage/v1/object/public/{BUCKET}/1700-abc.pdf?download=1", "1700-abc.pdf"),
        (f"https://x.supabase.co/storage/v1/object/public/{BUCKET}/Grace%20in%20G.pdf", "Grace in G.pdf"),
        (f"https://x/{BUCKET}/nested/dir/file.pdf", "nested/dir/file.pdf"),
        ("https://cdn.example.com/files/other.pdf?v=2", "other.pdf"),
        ("malformed-url", "malformed-url"),
    ])
    def test_names(self, url, expected):
        assert storage_object_name(url, BUCKET) == expected

    @pytest.mark.parametrize("url", ["", "https://cdn.example.com/files/", f"https://x/{BUCKET}/?a=1"])
    def test_no_usable_name(self, url):
        assert storage_object_name(url, BUCKET) is None


class TestDeleteSong:
    """Test the deletion sequence."""

    @pytest.mark.asyncio
    async def test_success_removes_everything(self, catalog, store, blobs, bus, session):
        song = await seed_song(catalog, blobs)
        await catalog.toggle_favorite(song.id, session)
        assert len(blobs.objects) == 2

        result = await catalog.delete_song(song.id)

        assert result.success is True
        assert result.error is None
        assert result.storage_warning is None
        assert store.rows(Tables.SONGS) == []
        assert store.rows(Tables.VARIANTS) == []
        assert store.rows(Tables.FAVORITES) == []
        assert blobs.objects == {}
        assert sorted(result.removed_files) == sorted(blobs.removed)
        assert [e.song_id for e in bus.get_events(event_type=SongDeleted)] == [song.id]
        assert isinstance((await catalog.get_song(song.id)).error(), NotFoundError)

    @pytest.mark.asyncio
    async def test_step_outcomes_are_recorded(self, catalog, blobs):
        song = await seed_song(catalog, blobs)
        result = await catalog.delete_song(song.id)

        assert [s.name for s in result.steps] == [
            "fetch_variants", "derive_object_names", "remove_files",
            "delete_favorites", "delete_variants", "delete_song",
        ]
        assert [s.name for s in result.steps if s.required] == ["delete_song"]
        assert result.failed_steps == []

    @pytest.mark.asyncio
    async def test_storage_failure_is_only_a_warning(self, catalog, store, blobs, bus):
        song = await seed_song(catalog, blobs)
        blobs.fail("remove", message="bucket unavailable")

        result = await catalog.delete_song(song.id)

        assert result.success is True
        assert "bucket unavailable" in result.storage_warning
        assert store.rows(Tables.SONGS) == []
        assert store.rows(Tables.VARIANTS) == []
        assert len(blobs.objects) == 2
        assert result.step("remove_files").ok is False
        assert bus.get_events(event_type=SongDeleted)[0].storage_warning == result.storage_warning

    @pytest.mark.asyncio
    async def test_zero_rows_removed_is_failure(self, catalog, store, blobs, bus):
        song = await seed_song(catalog, blobs)
        store.deny_deletes.add(Tables.SONGS)

        result = await catalog.delete_song(song.id)

        assert result.success is False
        assert result.error == PERMISSION_DENIED_MESSAGE
        assert len(store.rows(Tables.SONGS)) == 1
        assert result.step("delete_song").ok is False
        assert bus.get_events(event_type=SongDeleted) == []

    @pytest.mark.asyncio
    async def test_unknown_song_is_failure(self, catalog):
        result = await catalog.delete_song("missing")
        assert result.success is False
        assert result.error == NOT_FOUND_MESSAGE

    @pytest.mark.asyncio
    async def test_zero_rows_without_recheck(self, catalog, store, blobs):
        song = await seed_song(catalog, blobs)
        store.deny_deletes.add(Tables.SONGS)
        store.fail("select", Tables.SONGS)

        result = await catalog.delete_song(song.id)

        assert result.success is False
        assert result.error == NOT_DELETED_MESSAGE

    @pytest.mark.asyncio
    async def test_song_delete_error(self, catalog, store, blobs):
        song = await seed_song(catalog, blobs)
        store.fail("delete", Tables.SONGS, "permission denied for table songs")

        result = await catalog.delete_song(song.id)

        assert result.success is False
        assert "permission denied" in result.error

    @pytest.mark.asyncio
    async def test_variant_lookup_failure_still_deletes(self, catalog, store, blobs):
        song = await seed_song(catalog, blobs)
        store.fail("select", Tables.VARIANTS)

        result = await catalog.delete_song(song.id)

        assert result.success is True
        assert result.step("fetch_variants").ok is False
        assert result.removed_files == []
        assert store.rows(Tables.SONGS) == []

    @pytest.mark.asyncio
    async def test_dependent_row_failure_does_not_block(self, catalog, store, blobs):
        song = await seed_song(catalog, blobs)
        store.fail("delete", Tables.FAVORITES)

        result = await catalog.delete_song(song.id)

        assert result.success is True
        assert [s.name for s in result.failed_steps] == ["delete_favorites"]

    @pytest.mark.asyncio
    async def test_malformed_url_falls_back_to_last_segment(self, catalog, store, blobs):
        song = (await catalog.create_song(
            "Test", [Category.OTHERS], Instrument.PIANO, [NewVariant("C", "malformed-url")]
        )).value()

        result = await catalog.delete_song(song.id)

        assert result.success is True
        assert result.storage_warning is None
        assert store.rows(Tables.SONGS) == []
        assert store.rows(Tables.VARIANTS) == []

    @pytest.mark.asyncio
    async def test_other_songs_untouched(self, catalog, store, blobs):
        keep = await seed_song(catalog, blobs, keys=("D",))
        drop = await seed_song(catalog, blobs, keys=("E",))

        await catalog.delete_song(drop.id)

        assert [r["id"] for r in store.rows(Tables.SONGS)] == [keep.id]
        assert [r["song_id"] for r in store.rows(Tables.VARIANTS)] == [keep.id]
        assert len(blobs.objects) == 1
