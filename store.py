import json
import logging
import os
from pathlib import Path

import aiosqlite

from errors import StorageError
from models import Playlist, utc_now

logger = logging.getLogger(__name__)

STORAGE_KEY = "music_cache_data"


class SqliteBlobStore:
	"""Key-value blob store kept in a single SQLite table."""

	def __init__(self, db_path: Path | str):
		self.db_path = Path(db_path)
		self._db: aiosqlite.Connection | None = None

	async def open(self):
		try:
			os.makedirs(self.db_path.parent, exist_ok=True)
			self._db = await aiosqlite.connect(self.db_path)
			await self._db.execute("""
			CREATE TABLE IF NOT EXISTS blob (
				key TEXT PRIMARY KEY,
				value TEXT NOT NULL,
				updated_at TEXT NOT NULL
			)
			""")
			await self._db.commit()
		except (aiosqlite.Error, OSError) as e:
			raise StorageError(f"Cannot open store at {self.db_path}: {e}") from e

	async def close(self):
		if self._db is not None:
			await self._db.close()
			self._db = None

	def _conn(self) -> aiosqlite.Connection:
		if self._db is None:
			raise StorageError("Store is not open")
		return self._db

	async def get(self, key: str) -> str | None:
		try:
			cur = await self._conn().execute("SELECT value FROM blob WHERE key = ?", (key,))
			row = await cur.fetchone()
		except aiosqlite.Error as e:
			raise StorageError(f"Read of {key} failed: {e}") from e
		return row[0] if row else None

	async def put(self, key: str, value: str):
		db = self._conn()
		try:
			await db.execute(
				"""
				INSERT INTO blob (key, value, updated_at) VALUES (?, ?, ?)
				ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
				""",
				(key, value, utc_now()),
			)
			await db.commit()
		except aiosqlite.Error as e:
			raise StorageError(f"Write of {key} failed: {e}") from e


class PlaylistStore:
	"""
	Owns the in-process playlist and writes it through to the blob store.
	The in-memory copy stays authoritative when the blob store is unavailable.
	"""

	def __init__(self, backend, key: str = STORAGE_KEY, seed_path: Path | None = None):
		self.backend = backend
		self.key = key
		self.seed_path = Path(seed_path) if seed_path else None
		self._playlist = Playlist()

	def get(self) -> Playlist:
		return self._playlist

	def replace(self, playlist: Playlist):
		self._playlist = playlist

	async def load(self) -> Playlist:
		"""Reads the durable copy. Falls back to the seed file, then to an empty playlist."""
		record = None
		try:
			raw = await self.backend.get(self.key)
			if raw:
				record = json.loads(raw)
		except (StorageError, ValueError) as e:
			logger.error(f"Loading cached playlist failed: {e}")

		# The seed only stands in for a missing or unreadable record; an empty list is a valid state
		if not isinstance(record, dict):
			record = self._read_seed()

		playlist = Playlist.from_record(record) if isinstance(record, dict) else Playlist()
		self._playlist = playlist
		logger.info(f"Loaded {len(playlist)} cached tracks")
		return playlist

	def _read_seed(self) -> dict | None:
		if not self.seed_path or not self.seed_path.exists():
			return None
		try:
			with open(self.seed_path, "r", encoding="utf-8") as f:
				record = json.load(f)
		except (OSError, ValueError) as e:
			logger.error(f"Reading seed file {self.seed_path} failed: {e}")
			return None
		if not isinstance(record, dict):
			return None
		logger.info(f"Seeding playlist from {self.seed_path}")
		return record

	async def save(self, playlist: Playlist | None = None) -> bool:
		"""
		Writes the whole playlist through to the blob store. The demo playlist is never written.
		Returns False when the write failed; the in-memory copy is kept either way.
		"""
		if playlist is not None:
			self._playlist = playlist
		playlist = self._playlist
		if playlist.is_demo:
			return False

		playlist.last_updated = utc_now()
		try:
			await self.backend.put(self.key, json.dumps(playlist.to_record()))
		except StorageError as e:
			logger.error(f"Saving playlist failed, keeping it in memory only: {e}")
			return False
		logger.debug(f"Saved {len(playlist)} tracks")
		return True
