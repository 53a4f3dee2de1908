"""Shared fakes and fixtures"""

import pytest

from channel import ChannelGateway
from errors import ChannelError, MessageNotFoundError, StorageError
from models import Playlist, Track
from store import PlaylistStore

CHANNEL_ID = -1001234567890
BOT_ID = 42


class MemoryBlobStore:
	def __init__(self):
		self.data: dict[str, str] = {}
		self.fail = False
		self.writes = 0

	async def get(self, key):
		if self.fail:
			raise StorageError("store offline")
		return self.data.get(key)

	async def put(self, key, value):
		if self.fail:
			raise StorageError("store offline")
		self.writes += 1
		self.data[key] = value


class FakeGateway(ChannelGateway):
	"""Channel with scripted messages. Head probes and successful forwards each take the next id, as on the real provider."""

	def __init__(self, head: int = 100):
		self.head = head
		self.messages: dict[int, dict] = {}
		self.errors: dict[int, Exception] = {}
		self.admins = {BOT_ID}
		self.channel_error: Exception | None = None
		self.head_error: Exception | None = None
		self.url_errors: set[str] = set()
		self.fetched: list[int] = []
		self.resolved: list[str] = []

	async def resolve_channel(self):
		if self.channel_error:
			raise self.channel_error
		return {"id": CHANNEL_ID, "title": "Test channel"}

	async def list_admin_ids(self):
		return set(self.admins)

	async def self_id(self):
		return BOT_ID

	async def head_id(self):
		if self.head_error:
			raise self.head_error
		head = self.head
		self.head += 1
		return head

	async def fetch_message(self, message_id):
		self.fetched.append(message_id)
		if message_id in self.errors:
			raise self.errors[message_id]
		if message_id in self.messages:
			self.head += 1
			return self.messages[message_id]
		raise MessageNotFoundError("Bad Request: message to forward not found", 400)

	async def resolve_file_url(self, file_ref):
		self.resolved.append(file_ref)
		if file_ref in self.url_errors:
			raise ChannelError("Bad Request: file is too big", 400)
		return f"https://files.example/{file_ref}.mp3"


def audio_message(message_id: int, title: str | None = None, file_id: str | None = None, **extra) -> dict:
	audio = {
		"file_id": file_id or f"file-{message_id}",
		"duration": 185,
		"performer": "Test Artist",
		"mime_type": "audio/mpeg",
	}
	if title:
		audio["title"] = title
	message = {"message_id": message_id, "chat": {"id": CHANNEL_ID, "type": "channel"}, "audio": audio}
	message.update(extra)
	return message


def make_track(title: str, message_id: int | None = None, source_ref: str | None = None, url: str = "https://files.example/x.mp3") -> Track:
	return Track(
		title=title,
		url=url,
		source_ref=source_ref if source_ref is not None else (f"file-{message_id}" if message_id else ""),
		origin_message_id=message_id,
		url_resolved_at="2999-01-01T00:00:00+00:00",
	)


@pytest.fixture
def backend():
	return MemoryBlobStore()


@pytest.fixture
def store(backend):
	return PlaylistStore(backend)


@pytest.fixture
def gateway():
	return FakeGateway()


def with_tracks(store: PlaylistStore, *tracks: Track, index: int = 0) -> Playlist:
	playlist = Playlist(tracks=list(tracks), current_index=index)
	store.replace(playlist)
	return playlist
