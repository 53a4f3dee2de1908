import logging
import math

from errors import IndexOutOfRangeError, InvalidPositionError
from helpers import ensure_fresh_url
from models import Track
from store import PlaylistStore

logger = logging.getLogger(__name__)


class PlaybackController:
	"""Cursor operations over the playlist. Every change is written through before returning."""

	def __init__(self, store: PlaylistStore, gateway=None, url_ttl: int = 3300):
		self.store = store
		self.gateway = gateway
		self.url_ttl = url_ttl

	async def _move_to(self, index: int) -> int:
		playlist = self.store.get()
		playlist.current_index = index
		playlist.current_position = 0
		await self.store.save()
		return index

	async def next(self) -> int | None:
		"""Advances with wrap-around. Returns None when there is nothing to play."""
		playlist = self.store.get()
		if not len(playlist):
			return None
		return await self._move_to((playlist.current_index + 1) % len(playlist))

	async def previous(self) -> int | None:
		playlist = self.store.get()
		if not len(playlist):
			return None
		return await self._move_to((playlist.current_index - 1) % len(playlist))

	async def select_index(self, index) -> int:
		playlist = self.store.get()
		if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(playlist):
			raise IndexOutOfRangeError(index, len(playlist) - 1)
		return await self._move_to(index)

	async def record_position(self, seconds) -> float:
		if (
			isinstance(seconds, bool)
			or not isinstance(seconds, (int, float))
			or not math.isfinite(seconds)
			or seconds < 0
		):
			raise InvalidPositionError(seconds)
		playlist = self.store.get()
		playlist.current_position = seconds
		await self.store.save()
		logger.debug(f"Position synced: {int(seconds // 60)}:{int(seconds % 60):02d}")
		return seconds

	def position(self) -> float:
		return self.store.get().current_position

	async def current(self) -> tuple[Track | None, int, int]:
		"""
		Current track, its index and the playlist length.
		An expired or missing URL is re-resolved from the track's source reference and saved.
		"""
		playlist = self.store.get()
		track = playlist.current_track()
		if track is None:
			return None, 0, 0
		index = playlist.current_index

		fresh = await ensure_fresh_url(track, self.gateway, self.url_ttl)
		if fresh is not track:
			playlist = self.store.get()
			# Patch only if the slot still holds the same track after the await
			if index < len(playlist) and playlist.tracks[index] is track:
				playlist.tracks[index] = fresh
				await self.store.save()
		return fresh, index, len(playlist)
