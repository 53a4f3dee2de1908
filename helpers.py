# Helper functions for building and refreshing tracks
import logging
import re
from dataclasses import replace
from datetime import datetime, timezone

from errors import ChannelError
from models import Playlist, Track, utc_now

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = ("mp3", "wav", "ogg", "m4a", "flac", "aac", "mp4")
AUDIO_FILE_RE = re.compile(r"\.(" + "|".join(AUDIO_EXTENSIONS) + r")$", re.IGNORECASE)

DEMO_TRACKS = [
	("Demo Song 1", "https://www.soundhelix.com/examples/mp3/SoundHelix-Song-1.mp3", "4:47"),
	("Demo Song 2", "https://www.soundhelix.com/examples/mp3/SoundHelix-Song-2.mp3", "4:44"),
	("Demo Song 3", "https://www.soundhelix.com/examples/mp3/SoundHelix-Song-3.mp3", "5:10"),
]


def audio_payload(message: dict) -> dict | None:
	"""
	Returns the audio attachment of a channel message, or None when the message carries no audio.
	A payload counts as audio when it has an audio MIME type, an audio file extension,
	or arrives in the provider's native audio field.
	"""
	if not isinstance(message, dict):
		return None
	payload = message.get("audio") or message.get("voice") or message.get("document")
	if not payload or not isinstance(payload, dict):
		return None
	if message.get("audio"):
		return payload
	if "audio" in (payload.get("mime_type") or ""):
		return payload
	if AUDIO_FILE_RE.search(payload.get("file_name") or ""):
		return payload
	return None


def format_duration(seconds) -> str:
	if not seconds or not isinstance(seconds, (int, float)) or seconds < 0:
		return "Unknown"
	seconds = int(seconds)
	return f"{seconds // 60}:{seconds % 60:02d}"


def pick_title(payload: dict, counter: int) -> str:
	return (
		payload.get("title")
		or payload.get("file_name")
		or payload.get("performer")
		or f"Music {counter}"
	)


def build_track(payload: dict, message_id: int, counter: int) -> Track:
	"""Track for an audio payload found at message_id. The URL is resolved separately."""
	return Track(
		title=pick_title(payload, counter),
		duration=format_duration(payload.get("duration")),
		performer=payload.get("performer") or "Unknown Artist",
		source_ref=payload.get("file_id") or "",
		origin_message_id=message_id,
	)


def url_is_stale(track: Track, ttl: int, now: datetime | None = None) -> bool:
	if not track.url:
		return True
	if not track.source_ref:
		return False
	if not track.url_resolved_at:
		return True
	try:
		resolved = datetime.fromisoformat(track.url_resolved_at)
	except ValueError:
		return True
	if resolved.tzinfo is None:
		resolved = resolved.replace(tzinfo=timezone.utc)
	now = now or datetime.now(timezone.utc)
	return (now - resolved).total_seconds() >= ttl


async def ensure_fresh_url(track: Track, gateway, ttl: int) -> Track:
	"""
	Returns the track with a freshly resolved URL when its current one is missing or expired.
	The same track is returned when nothing needed resolving or the provider refused.
	"""
	if gateway is None or not track.source_ref or not url_is_stale(track, ttl):
		return track
	try:
		url = await gateway.resolve_file_url(track.source_ref)
	except ChannelError as e:
		logger.warning(f"Could not resolve URL for {track.title}: {e}")
		return track
	return replace(track, url=url, url_resolved_at=utc_now())


def demo_playlist() -> Playlist:
	tracks = [Track(title=title, url=url, duration=duration) for title, url, duration in DEMO_TRACKS]
	return Playlist(tracks=tracks, is_demo=True)


def is_real_playlist(playlist: Playlist) -> bool:
	return len(playlist) > 0 and not playlist.is_demo
