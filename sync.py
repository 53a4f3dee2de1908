"""
Reconciles the cached playlist with what currently exists in the channel.

The provider offers no history listing, so a pass works in two phases:
existing tracks are probed one by one by their origin message id, then the
newest ids are scanned backward for audio posts not yet in the playlist.
Both phases are bounded; scan_window and max_new_tracks cap provider calls per pass.
"""

import logging

from channel import ChannelGateway
from errors import ChannelError, MessageNotFoundError, PermissionDeniedError
from helpers import audio_payload, build_track, demo_playlist, ensure_fresh_url
from models import Playlist, SyncOutcome, Track
from store import PlaylistStore

logger = logging.getLogger(__name__)

SCAN_WINDOW = 50
MAX_NEW_TRACKS = 20
URL_TTL = 3300


class ChannelSynchronizer:
	def __init__(
		self,
		store: PlaylistStore,
		gateway: ChannelGateway | None,
		channel_id: int = 0,
		scan_window: int = SCAN_WINDOW,
		max_new_tracks: int = MAX_NEW_TRACKS,
		url_ttl: int = URL_TTL,
	):
		self.store = store
		self.gateway = gateway
		self.channel_id = channel_id
		self.scan_window = scan_window
		self.max_new_tracks = max_new_tracks
		self.url_ttl = url_ttl

	async def sync(self) -> SyncOutcome:
		"""
		Runs one reconciliation pass. Nothing is written unless the whole pass succeeds;
		a failure comes back as an unsuccessful SyncOutcome and the cached playlist stays as it was.
		"""
		snapshot = self.store.get()
		if self.gateway is None:
			return SyncOutcome(success=False, error="Channel is not configured", total_tracks=len(snapshot))

		# The demo playlist is a placeholder, never a starting point
		base = [] if snapshot.is_demo else list(snapshot.tracks)
		logger.info(f"Starting playlist sync, {len(base)} cached tracks")

		try:
			await self._check_access()
			# Taken before the liveness checks: their forwards into the channel use up new ids
			head = await self.gateway.head_id()
			retained, removed, unverified, duplicates = await self._validate(base)
			added = await self._discover(head, retained, removed)
		except ChannelError as e:
			logger.error(f"Sync aborted: {e}")
			return SyncOutcome(success=False, error=str(e), total_tracks=len(snapshot))
		except Exception as e:
			logger.exception("Sync aborted by unexpected error")
			return SyncOutcome(success=False, error=str(e), total_tracks=len(snapshot))

		live = self.store.get()
		playlist = Playlist(
			tracks=retained + added,
			current_index=0 if live.is_demo else live.current_index,
			current_position=0 if live.is_demo else live.current_position,
		)
		playlist.normalize_index()
		self.store.replace(playlist)
		await self.store.save()

		outcome = SyncOutcome(
			success=True,
			tracks_added=len(added),
			tracks_removed=len(removed),
			removed_titles=[t.title for t in removed],
			unverified=unverified,
			duplicates_dropped=duplicates,
			total_tracks=len(playlist),
		)
		for track in removed:
			logger.info(f"Removed: {track.title} (message {track.origin_message_id})")
		for track in added:
			logger.info(f"Added: {track.title} (message {track.origin_message_id})")
		logger.info(outcome.message)
		return outcome

	async def _check_access(self):
		await self.gateway.resolve_channel()
		admins = await self.gateway.list_admin_ids()
		if await self.gateway.self_id() not in admins:
			raise PermissionDeniedError("Bot is not an administrator of the channel")

	async def _validate(self, tracks: list[Track]) -> tuple[list[Track], list[Track], int, int]:
		retained: list[Track] = []
		removed: list[Track] = []
		unverified = 0
		duplicates = 0
		seen_ids: set[int] = set()
		seen_refs: set[str] = set()

		for track in tracks:
			if track.origin_message_id in seen_ids or (track.source_ref and track.source_ref in seen_refs):
				logger.warning(f"Dropping duplicate cached entry {track.title}")
				duplicates += 1
				continue
			if track.source_ref:
				seen_refs.add(track.source_ref)

			if not track.origin_message_id:
				retained.append(track)
				continue
			seen_ids.add(track.origin_message_id)

			try:
				await self.gateway.fetch_message(track.origin_message_id)
			except MessageNotFoundError:
				removed.append(track)
				continue
			except ChannelError as e:
				logger.warning(f"Cannot verify message {track.origin_message_id} for {track.title} ({e}), keeping it")
				unverified += 1
				retained.append(track)
				continue
			logger.debug(f"Message {track.origin_message_id} still exists, keeping {track.title}")
			retained.append(track)

		return retained, removed, unverified, duplicates

	async def _discover(self, head: int, retained: list[Track], removed: list[Track]) -> list[Track]:
		known = {t.origin_message_id for t in retained + removed if t.origin_message_id}
		refs = {t.source_ref for t in retained if t.source_ref}
		found: list[Track] = []

		lowest = max(1, head - self.scan_window)
		for message_id in range(head - 1, lowest - 1, -1):
			if len(found) >= self.max_new_tracks:
				logger.info(f"New track limit of {self.max_new_tracks} reached, stopping scan")
				break
			if message_id in known:
				continue
			try:
				message = await self.gateway.fetch_message(message_id)
			except ChannelError as e:
				logger.debug(f"Skipping message {message_id}: {e}")
				continue

			payload = audio_payload(message)
			if payload is None:
				continue
			track = build_track(payload, message_id, len(found) + 1)
			if track.source_ref and track.source_ref in refs:
				logger.debug(f"Message {message_id} repeats a known file, skipping")
				continue
			track = await ensure_fresh_url(track, self.gateway, self.url_ttl)
			found.append(track)
			if track.source_ref:
				refs.add(track.source_ref)

		found.sort(key=lambda t: t.origin_message_id)
		logger.info(f"Scanned ids {head - 1}..{lowest}, found {len(found)} new tracks")
		return found

	def _is_probe_copy(self, message: dict) -> bool:
		origin = (message.get("forward_origin") or {}).get("chat") or message.get("forward_from_chat") or {}
		return origin.get("id") == self.channel_id

	async def ingest_post(self, message: dict) -> Track | None:
		"""Adds a freshly published channel post to the playlist. Returns the new track, if any."""
		if (message.get("chat") or {}).get("id") != self.channel_id:
			return None
		if self._is_probe_copy(message):
			return None
		payload = audio_payload(message)
		message_id = message.get("message_id")
		if payload is None or not message_id:
			return None
		if self._is_known(self.store.get(), message_id, payload.get("file_id")):
			return None

		track = build_track(payload, message_id, len(self.store.get()) + 1)
		track = await ensure_fresh_url(track, self.gateway, self.url_ttl)

		# Re-read: a sync may have replaced the playlist while the URL was resolving
		playlist = self.store.get()
		if playlist.is_demo:
			logger.info("Replacing demo playlist with channel music")
			playlist = Playlist()
		if self._is_known(playlist, message_id, track.source_ref):
			return None
		playlist.tracks.append(track)
		self.store.replace(playlist)
		await self.store.save()
		logger.info(f"New upload added: {track.title} ({len(playlist)} tracks)")
		return track

	@staticmethod
	def _is_known(playlist: Playlist, message_id: int, source_ref: str | None) -> bool:
		if playlist.is_demo:
			return False
		if message_id in playlist.message_ids():
			return True
		return bool(source_ref) and source_ref in playlist.source_refs()


async def bootstrap(store: PlaylistStore, synchronizer: ChannelSynchronizer) -> Playlist:
	"""Makes sure there is something to play: cache, then channel, then the demo playlist."""
	if len(store.get()):
		return store.get()
	if len(await store.load()):
		return store.get()

	outcome = await synchronizer.sync()
	if not outcome.success:
		logger.warning(f"Channel unavailable while bootstrapping: {outcome.error}")
	if not len(store.get()):
		logger.info("No music found, using demo playlist")
		store.replace(demo_playlist())
	return store.get()
