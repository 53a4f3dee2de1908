"""Tests for the blob store and the playlist store"""

import json

import pytest

from errors import StorageError
from helpers import demo_playlist
from models import Playlist
from store import PlaylistStore, SqliteBlobStore
from tests.conftest import MemoryBlobStore, make_track


@pytest.fixture
async def sqlite_store(tmp_path):
	blob = SqliteBlobStore(tmp_path / "db" / "database.db")
	await blob.open()
	yield blob
	await blob.close()


class TestSqliteBlobStore:
	async def test_missing_key(self, sqlite_store):
		assert await sqlite_store.get("nothing") is None

	async def test_put_overwrites(self, sqlite_store):
		await sqlite_store.put("k", "one")
		await sqlite_store.put("k", "two")

		assert await sqlite_store.get("k") == "two"

	async def test_closed_store_raises(self, tmp_path):
		blob = SqliteBlobStore(tmp_path / "database.db")

		with pytest.raises(StorageError):
			await blob.get("k")

	async def test_survives_reopen(self, tmp_path):
		path = tmp_path / "database.db"
		first = PlaylistStore(SqliteBlobStore(path))
		await first.backend.open()
		await first.save(Playlist(tracks=[make_track("A", 10), make_track("B", 11)], current_index=1))
		await first.backend.close()

		second = PlaylistStore(SqliteBlobStore(path))
		await second.backend.open()
		playlist = await second.load()
		await second.backend.close()

		assert [t.title for t in playlist.tracks] == ["A", "B"]
		assert playlist.current_index == 1


class TestPlaylistStore:
	async def test_load_empty(self, store):
		playlist = await store.load()

		assert len(playlist) == 0
		assert playlist.current_index == 0

	async def test_load_failure_yields_empty(self, backend, store):
		backend.fail = True

		assert len(await store.load()) == 0

	async def test_load_corrupt_record_yields_empty(self, backend, store):
		backend.data["music_cache_data"] = "{not json"

		assert len(await store.load()) == 0

	async def test_load_clamps_bad_index(self, backend, store):
		backend.data["music_cache_data"] = json.dumps({
			"musicFiles": [{"title": "A"}],
			"currentIndex": 4,
			"lastUpdated": "2024-01-01T00:00:00Z",
		})

		assert (await store.load()).current_index == 0

	async def test_save_writes_record_layout(self, backend, store):
		await store.save(Playlist(tracks=[make_track("A", 10)]))

		record = json.loads(backend.data["music_cache_data"])
		assert set(record) >= {"musicFiles", "currentIndex", "lastUpdated"}
		assert record["musicFiles"][0]["originMessageId"] == 10
		assert record["musicFiles"][0]["sourceRef"] == "file-10"

	async def test_save_failure_keeps_memory_copy(self, backend, store):
		backend.fail = True
		playlist = Playlist(tracks=[make_track("A", 10)])

		assert await store.save(playlist) is False
		assert store.get() is playlist

	async def test_demo_playlist_never_written(self, backend, store):
		assert await store.save(demo_playlist()) is False
		assert backend.data == {}

	async def test_seed_file_with_legacy_keys(self, tmp_path):
		seed = tmp_path / "music_cache.json"
		seed.write_text(json.dumps({
			"musicFiles": [{
				"title": "Old",
				"url": "https://files.example/old.mp3",
				"duration": "3:00",
				"fileId": "old-file",
				"messageId": 33,
				"uploadDate": "2024-05-01T10:00:00.000Z",
			}],
			"currentIndex": 0,
		}))
		store = PlaylistStore(MemoryBlobStore(), seed_path=seed)

		track = (await store.load()).tracks[0]

		assert track.source_ref == "old-file"
		assert track.origin_message_id == 33
		assert track.discovered_at == "2024-05-01T10:00:00.000Z"

	async def test_stored_record_wins_over_seed(self, tmp_path, backend):
		seed = tmp_path / "music_cache.json"
		seed.write_text(json.dumps({"musicFiles": [{"title": "Seed"}]}))
		store = PlaylistStore(backend, seed_path=seed)
		await store.save(Playlist(tracks=[make_track("Stored", 1)]))

		assert [t.title for t in (await store.load()).tracks] == ["Stored"]

	async def test_stored_empty_playlist_wins_over_seed(self, tmp_path, backend):
		seed = tmp_path / "music_cache.json"
		seed.write_text(json.dumps({"musicFiles": [{"title": "Deleted long ago"}]}))
		store = PlaylistStore(backend, seed_path=seed)
		await store.save(Playlist(tracks=[]))

		assert len(await store.load()) == 0

	async def test_seed_used_when_stored_record_unreadable(self, tmp_path, backend):
		seed = tmp_path / "music_cache.json"
		seed.write_text(json.dumps({"musicFiles": [{"title": "Seed"}]}))
		store = PlaylistStore(backend, seed_path=seed)
		backend.data[store.key] = "{not json"

		assert [t.title for t in (await store.load()).tracks] == ["Seed"]
