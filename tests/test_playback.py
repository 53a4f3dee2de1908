"""Tests for the playback controller"""

import json
import random

import pytest

from errors import IndexOutOfRangeError, InvalidPositionError
from playback import PlaybackController
from tests.conftest import make_track, with_tracks


def three_tracks(store, index=0):
	return with_tracks(store, make_track("A", 1), make_track("B", 2), make_track("C", 3), index=index)


class TestNavigation:
	async def test_previous_wraps_to_last(self, store):
		three_tracks(store, index=0)

		assert await PlaybackController(store).previous() == 2
		assert store.get().current_index == 2

	async def test_next_wraps_to_first(self, store):
		three_tracks(store, index=2)

		assert await PlaybackController(store).next() == 0

	async def test_track_change_resets_position(self, store):
		three_tracks(store)
		controller = PlaybackController(store)
		await controller.record_position(30)

		await controller.next()

		assert controller.position() == 0

	async def test_empty_playlist_is_a_no_op(self, store, backend):
		controller = PlaybackController(store)

		assert await controller.next() is None
		assert await controller.previous() is None
		assert store.get().current_index == 0
		assert backend.writes == 0

	async def test_index_stays_in_bounds(self, store):
		three_tracks(store)
		controller = PlaybackController(store)
		rng = random.Random(7)

		for _ in range(200):
			action = rng.choice(["next", "previous", "select"])
			if action == "next":
				await controller.next()
			elif action == "previous":
				await controller.previous()
			else:
				try:
					await controller.select_index(rng.randint(-2, 4))
				except IndexOutOfRangeError:
					pass
			assert 0 <= store.get().current_index < 3

	async def test_moves_are_persisted(self, store, backend):
		three_tracks(store)

		await PlaybackController(store).next()

		record = json.loads(backend.data["music_cache_data"])
		assert record["currentIndex"] == 1
		assert len(record["musicFiles"]) == 3
		assert record["lastUpdated"]


class TestSelect:
	async def test_select_valid_index(self, store):
		three_tracks(store)

		assert await PlaybackController(store).select_index(1) == 1
		assert store.get().current_index == 1

	async def test_select_out_of_range(self, store):
		three_tracks(store, index=1)

		with pytest.raises(IndexOutOfRangeError) as exc_info:
			await PlaybackController(store).select_index(5)

		assert exc_info.value.max_index == 2
		assert store.get().current_index == 1

	async def test_select_negative(self, store):
		three_tracks(store)

		with pytest.raises(IndexOutOfRangeError):
			await PlaybackController(store).select_index(-1)


class TestPosition:
	@pytest.mark.parametrize("value", [-1, "x", None, True, float("nan"), float("inf")])
	async def test_rejects_invalid_positions(self, store, value):
		three_tracks(store, index=1)
		controller = PlaybackController(store)

		with pytest.raises(InvalidPositionError):
			await controller.record_position(value)

		assert controller.position() == 0
		assert store.get().current_index == 1

	async def test_records_position(self, store):
		three_tracks(store, index=1)
		controller = PlaybackController(store)

		assert await controller.record_position(42.5) == 42.5
		assert controller.position() == 42.5
		assert store.get().current_index == 1


class TestCurrent:
	async def test_empty(self, store):
		assert await PlaybackController(store).current() == (None, 0, 0)

	async def test_returns_track_index_and_total(self, store):
		three_tracks(store, index=2)

		track, index, total = await PlaybackController(store).current()

		assert (track.title, index, total) == ("C", 2, 3)

	async def test_resolves_missing_url(self, store, gateway, backend):
		with_tracks(store, make_track("A", 1, url=""))

		track, _, _ = await PlaybackController(store, gateway).current()

		assert track.url == "https://files.example/file-1.mp3"
		assert store.get().tracks[0].url == track.url
		assert backend.writes == 1

	async def test_resolves_expired_url(self, store, gateway):
		stale = make_track("A", 1)
		stale.url_resolved_at = "2000-01-01T00:00:00+00:00"
		with_tracks(store, stale)

		track, _, _ = await PlaybackController(store, gateway, url_ttl=60).current()

		assert track.url == "https://files.example/file-1.mp3"
		assert gateway.resolved == ["file-1"]

	async def test_fresh_url_left_alone(self, store, gateway, backend):
		three_tracks(store)

		await PlaybackController(store, gateway).current()

		assert gateway.resolved == []
		assert backend.writes == 0

	async def test_track_without_source_is_not_resolved(self, store, gateway):
		with_tracks(store, make_track("Demo", url="https://example.com/demo.mp3"))

		track, _, _ = await PlaybackController(store, gateway).current()

		assert track.url == "https://example.com/demo.mp3"
		assert gateway.resolved == []
