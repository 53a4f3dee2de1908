from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
import yaml
import logging
import logging.config

from channel import TelegramGateway
from config import load_settings
from errors import IndexOutOfRangeError, InvalidPositionError, StorageError
from helpers import demo_playlist, is_real_playlist
from playback import PlaybackController
from store import PlaylistStore, SqliteBlobStore
from sync import ChannelSynchronizer, bootstrap


def init_logger(config_path: Path | str = "logger_config.yaml") -> logging.Logger:
	try:
		with open(config_path, "r") as f:
			config = yaml.safe_load(f)
		logging.config.dictConfig(config)
		logger = logging.getLogger("dev")
		logger.debug("Logger configured")
		return logger
	except Exception as e:
		logging.basicConfig(level=logging.INFO)
		logger = logging.getLogger(__name__)
		logger.error(f"Logger initialization failed: {e}")
		return logger


@asynccontextmanager
async def lifespan(app: FastAPI):
	settings = load_settings()
	app.state.settings = settings
	app.state.logger = init_logger(settings.logger_config)
	logger = app.state.logger

	backend = SqliteBlobStore(settings.db_path)
	try:
		await backend.open()
		logger.info(f"Store ready at {settings.db_path}")
	except StorageError as e:
		logger.error(f"Store not available, playlist will not survive restarts: {e}")

	gateway = None
	if settings.channel_enabled:
		gateway = TelegramGateway(
			settings.bot_token,
			settings.channel_id,
			probe_chat_id=settings.probe_chat_id,
			api_base=settings.api_base,
			timeout=settings.request_timeout,
		)
		logger.info(f"Channel gateway configured for {settings.channel_id}")
	else:
		logger.warning("TELEGRAM_BOT_TOKEN or CHANNEL_ID missing, channel sync disabled")

	store = PlaylistStore(backend, seed_path=settings.seed_path)
	await store.load()
	app.state.store = store
	app.state.synchronizer = ChannelSynchronizer(
		store,
		gateway,
		channel_id=settings.channel_id,
		scan_window=settings.scan_window,
		max_new_tracks=settings.max_new_tracks,
		url_ttl=settings.url_ttl,
	)
	app.state.controller = PlaybackController(store, gateway, url_ttl=settings.url_ttl)

	await bootstrap(store, app.state.synchronizer)
	logger.info(f"Playlist ready with {len(store.get())} tracks")

	yield

	await store.save()
	if gateway is not None:
		await gateway.close()
	await backend.close()
	logger.info("Application shutdown")


app = FastAPI(
	title="Channel Music Player",
	version="0.1",
	description="Playlist and playback API for music posted to a chat channel",
	lifespan=lifespan,
)


@app.exception_handler(HTTPException)
async def http_error(request: Request, exc: HTTPException):
	return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})


def get_store(request: Request) -> PlaylistStore:
	return request.app.state.store


def get_synchronizer(request: Request) -> ChannelSynchronizer:
	return request.app.state.synchronizer


def get_controller(request: Request) -> PlaybackController:
	return request.app.state.controller


@app.get("/")
async def docs():
	return RedirectResponse(url="/docs", status_code=307)


@app.get("/api/playlist")
@app.get("/api/music")
async def get_playlist(
	store: PlaylistStore = Depends(get_store),
	synchronizer: ChannelSynchronizer = Depends(get_synchronizer),
):
	logger = app.state.logger
	try:
		playlist = await bootstrap(store, synchronizer)
		return [t.to_dict() for t in playlist.tracks]
	except Exception:
		logger.exception("Error getting playlist")
		raise HTTPException(status_code=500, detail="Failed to get playlist")


@app.get("/api/current")
async def get_current(
	store: PlaylistStore = Depends(get_store),
	synchronizer: ChannelSynchronizer = Depends(get_synchronizer),
	controller: PlaybackController = Depends(get_controller),
):
	logger = app.state.logger
	try:
		await bootstrap(store, synchronizer)
		track, index, total = await controller.current()
		return {"track": track.to_dict() if track else None, "index": index, "total": total}
	except Exception:
		logger.exception("Error getting current track")
		raise HTTPException(status_code=500, detail="Failed to get current track")


async def _step(controller: PlaybackController, forward: bool):
	index = await (controller.next() if forward else controller.previous())
	if index is None:
		return {"success": False, "index": 0, "error": "No tracks available"}
	track, index, _ = await controller.current()
	return {"success": True, "index": index, "track": track.to_dict() if track else None}


@app.post("/api/next")
async def next_track(controller: PlaybackController = Depends(get_controller)):
	logger = app.state.logger
	try:
		result = await _step(controller, forward=True)
		if result.get("track"):
			logger.info(f"Next track: {result['track']['title']}")
		return result
	except Exception:
		logger.exception("Error switching to next track")
		raise HTTPException(status_code=500, detail="Failed to switch track")


@app.post("/api/previous")
@app.post("/api/prev")
async def previous_track(controller: PlaybackController = Depends(get_controller)):
	logger = app.state.logger
	try:
		result = await _step(controller, forward=False)
		if result.get("track"):
			logger.info(f"Previous track: {result['track']['title']}")
		return result
	except Exception:
		logger.exception("Error switching to previous track")
		raise HTTPException(status_code=500, detail="Failed to switch track")


@app.post("/api/play/{index}")
@app.post("/api/track/{index}")
async def play_track(index: str, controller: PlaybackController = Depends(get_controller)):
	logger = app.state.logger
	try:
		try:
			await controller.select_index(int(index))
		except ValueError as e:
			max_index = e.max_index if isinstance(e, IndexOutOfRangeError) else len(controller.store.get()) - 1
			return JSONResponse(
				status_code=400,
				content={"success": False, "error": "Invalid track index", "maxIndex": max_index},
			)
		track, current, _ = await controller.current()
		logger.info(f"Switching to track {current + 1}: {track.title}")
		return {
			"success": True,
			"index": current,
			"track": track.to_dict(),
			"position": controller.position(),
		}
	except Exception:
		logger.exception("Error selecting track")
		raise HTTPException(status_code=500, detail="Failed to select track")


@app.post("/api/seek")
async def seek(request: Request, controller: PlaybackController = Depends(get_controller)):
	logger = app.state.logger
	invalid = JSONResponse(status_code=400, content={"success": False, "error": "Invalid position value"})
	try:
		try:
			body = await request.json()
		except ValueError:
			return invalid
		if not isinstance(body, dict):
			return invalid
		try:
			position = await controller.record_position(body.get("position"))
		except InvalidPositionError:
			return invalid
		return {"success": True, "position": position}
	except Exception:
		logger.exception("Error syncing position")
		raise HTTPException(status_code=500, detail="Failed to sync position")


@app.get("/api/position")
async def get_position(controller: PlaybackController = Depends(get_controller)):
	return {"position": controller.position()}


@app.post("/api/refresh")
async def refresh(
	store: PlaylistStore = Depends(get_store),
	synchronizer: ChannelSynchronizer = Depends(get_synchronizer),
):
	logger = app.state.logger
	try:
		logger.info("Manual refresh requested")
		outcome = await synchronizer.sync()
		playlist = store.get()

		if outcome.success:
			return {
				"success": True,
				"message": outcome.message,
				"tracks": outcome.total_tracks,
				"newTracks": outcome.tracks_added,
				"removedTracks": outcome.tracks_removed,
				"removedTrackNames": outcome.removed_titles,
				"unverifiedTracks": outcome.unverified,
				"duplicateTracks": outcome.duplicates_dropped,
				"isReal": is_real_playlist(playlist),
				"syncDetails": {
					"added": outcome.tracks_added,
					"removed": outcome.tracks_removed,
					"duplicates": outcome.duplicates_dropped,
					"total": outcome.total_tracks,
				},
			}

		if not len(playlist):
			store.replace(demo_playlist())
			playlist = store.get()
			return {
				"success": True,
				"message": f"Sync failed. Using demo playlist with {len(playlist)} tracks",
				"tracks": len(playlist),
				"newTracks": 0,
				"removedTracks": 0,
				"removedTrackNames": [],
				"isReal": False,
				"error": outcome.error,
			}
		return {"success": False, "error": outcome.error, "tracks": len(playlist)}
	except Exception:
		logger.exception("Error during manual refresh")
		raise HTTPException(status_code=500, detail="Failed to refresh playlist")


@app.get("/api/health")
async def health(
	store: PlaylistStore = Depends(get_store),
	synchronizer: ChannelSynchronizer = Depends(get_synchronizer),
):
	return {
		"status": "ok",
		"timestamp": datetime.now(timezone.utc).isoformat(),
		"tracks": len(store.get()),
		"channel": synchronizer.gateway is not None,
	}


@app.post("/api/telegram-webhook")
async def telegram_webhook(request: Request, synchronizer: ChannelSynchronizer = Depends(get_synchronizer)):
	logger = app.state.logger
	try:
		update = await request.json()
	except ValueError:
		update = None
	if not isinstance(update, dict):
		raise HTTPException(status_code=400, detail="Update must be a JSON object")

	post = update.get("channel_post")
	if isinstance(post, dict):
		try:
			track = await synchronizer.ingest_post(post)
		except Exception:
			logger.exception("Error ingesting channel post")
			raise HTTPException(status_code=500, detail="Failed to ingest channel post")
		if track is not None:
			logger.info(f"New music uploaded: {track.title}")
	return {"ok": True}
