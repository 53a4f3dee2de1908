from dataclasses import dataclass, field
from datetime import datetime, timezone

# Keys written by older cache files, mapped onto current field names
LEGACY_KEYS = {
	"fileId": "sourceRef",
	"messageId": "originMessageId",
	"uploadDate": "discoveredAt",
}

REMOVED_DISPLAY_LIMIT = 3


def utc_now() -> str:
	return datetime.now(timezone.utc).isoformat()


@dataclass
class Track:
	title: str
	url: str = ""
	duration: str = "Unknown"
	performer: str = "Unknown Artist"
	source_ref: str = ""
	origin_message_id: int | None = None
	discovered_at: str = field(default_factory=utc_now)
	url_resolved_at: str | None = None

	def to_dict(self) -> dict:
		return {
			"title": self.title,
			"url": self.url,
			"duration": self.duration,
			"performer": self.performer,
			"sourceRef": self.source_ref,
			"originMessageId": self.origin_message_id,
			"discoveredAt": self.discovered_at,
			"urlResolvedAt": self.url_resolved_at,
		}

	@classmethod
	def from_dict(cls, data: dict) -> "Track":
		data = dict(data)
		for old, new in LEGACY_KEYS.items():
			if old in data and new not in data:
				data[new] = data[old]

		message_id = data.get("originMessageId")
		try:
			message_id = int(message_id) if message_id not in (None, "") else None
		except (TypeError, ValueError):
			message_id = None

		return cls(
			title=str(data.get("title") or "Unknown"),
			url=data.get("url") or "",
			duration=data.get("duration") or "Unknown",
			performer=data.get("performer") or "Unknown Artist",
			source_ref=data.get("sourceRef") or "",
			origin_message_id=message_id,
			discovered_at=data.get("discoveredAt") or utc_now(),
			url_resolved_at=data.get("urlResolvedAt"),
		)


@dataclass
class Playlist:
	tracks: list[Track] = field(default_factory=list)
	current_index: int = 0
	current_position: float = 0
	is_demo: bool = False
	last_updated: str | None = None

	def __len__(self) -> int:
		return len(self.tracks)

	def current_track(self) -> Track | None:
		if not self.tracks:
			return None
		return self.tracks[self.current_index]

	def normalize_index(self) -> None:
		"""Reset the cursor to the first track when it no longer points into the list."""
		if not 0 <= self.current_index < len(self.tracks):
			self.current_index = 0
			self.current_position = 0

	def message_ids(self) -> set[int]:
		return {t.origin_message_id for t in self.tracks if t.origin_message_id}

	def source_refs(self) -> set[str]:
		return {t.source_ref for t in self.tracks if t.source_ref}

	def to_record(self) -> dict:
		return {
			"musicFiles": [t.to_dict() for t in self.tracks],
			"currentIndex": self.current_index,
			"currentPosition": self.current_position,
			"lastUpdated": self.last_updated or utc_now(),
		}

	@classmethod
	def from_record(cls, record: dict) -> "Playlist":
		tracks = [Track.from_dict(t) for t in record.get("musicFiles") or [] if isinstance(t, dict)]
		try:
			index = int(record.get("currentIndex") or 0)
		except (TypeError, ValueError):
			index = 0
		position = record.get("currentPosition") or 0
		if not isinstance(position, (int, float)) or isinstance(position, bool) or position < 0:
			position = 0

		playlist = cls(
			tracks=tracks,
			current_index=index,
			current_position=position,
			last_updated=record.get("lastUpdated"),
		)
		playlist.normalize_index()
		return playlist


@dataclass
class SyncOutcome:
	success: bool
	tracks_added: int = 0
	tracks_removed: int = 0
	removed_titles: list[str] = field(default_factory=list)
	unverified: int = 0
	duplicates_dropped: int = 0
	total_tracks: int = 0
	error: str | None = None

	def removed_summary(self, limit: int = REMOVED_DISPLAY_LIMIT) -> list[str]:
		shown = self.removed_titles[:limit]
		hidden = len(self.removed_titles) - len(shown)
		if hidden > 0:
			shown = shown + [f"...and {hidden} more"]
		return shown

	@property
	def message(self) -> str:
		if not self.success:
			return f"Sync failed: {self.error}"
		text = (
			f"Sync complete! Removed {self.tracks_removed} deleted songs, "
			f"added {self.tracks_added} new songs. Total: {self.total_tracks} tracks"
		)
		if self.removed_titles:
			text += " (removed: " + ", ".join(self.removed_summary()) + ")"
		if self.unverified:
			text += f". {self.unverified} tracks could not be verified"
		if self.duplicates_dropped:
			text += f". Dropped {self.duplicates_dropped} duplicate entries"
		return text
