import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml


cwd = Path(__file__).parent

# Env var for each setting; values there win over the YAML file
ENV_VARS = {
	"bot_token": "TELEGRAM_BOT_TOKEN",
	"channel_id": "CHANNEL_ID",
	"probe_chat_id": "PROBE_CHAT_ID",
	"api_base": "TELEGRAM_API_BASE",
	"db_path": "DB_PATH",
	"seed_path": "MUSIC_CACHE_FILE",
	"scan_window": "SCAN_WINDOW",
	"max_new_tracks": "MAX_NEW_TRACKS",
	"url_ttl": "URL_TTL_SECONDS",
	"request_timeout": "REQUEST_TIMEOUT",
	"logger_config": "LOGGER_CONFIG",
}


@dataclass
class Settings:
	bot_token: str = ""
	channel_id: int = 0
	probe_chat_id: int = 0
	api_base: str = "https://api.telegram.org"
	db_path: Path = field(default_factory=lambda: cwd / ".database" / "database.db")
	seed_path: Path = field(default_factory=lambda: cwd / "music_cache.json")
	scan_window: int = 50
	max_new_tracks: int = 20
	url_ttl: int = 3300
	request_timeout: float = 30.0
	logger_config: Path = field(default_factory=lambda: cwd / "logger_config.yaml")

	@property
	def channel_enabled(self) -> bool:
		return bool(self.bot_token) and bool(self.channel_id)


def _coerce(kind, value):
	if kind is int:
		return int(value)
	if kind is float:
		return float(value)
	if kind is Path:
		return Path(value)
	return str(value)


def load_settings(path: Path | str | None = None) -> Settings:
	"""
	Builds Settings from defaults, then the YAML file (if present), then environment variables.
	Raises ValueError when a numeric setting does not parse or a scan bound is below 1.
	"""
	path = Path(path or os.environ.get("PLAYER_CONFIG") or cwd / "config.yaml")
	values: dict = {}
	if path.exists():
		with open(path, "r") as f:
			values.update(yaml.safe_load(f) or {})

	for name, var in ENV_VARS.items():
		if os.environ.get(var):
			values[name] = os.environ[var]

	kinds = {
		"channel_id": int, "probe_chat_id": int, "scan_window": int,
		"max_new_tracks": int, "url_ttl": int, "request_timeout": float,
		"db_path": Path, "seed_path": Path, "logger_config": Path,
	}
	known = {f.name for f in fields(Settings)}
	kwargs = {}
	for name, value in values.items():
		if name not in known or value is None:
			continue
		try:
			kwargs[name] = _coerce(kinds.get(name, str), value)
		except (TypeError, ValueError):
			raise ValueError(f"Invalid value for {name}: {value!r}")

	settings = Settings(**kwargs)
	if not settings.probe_chat_id:
		settings.probe_chat_id = settings.channel_id
	if settings.scan_window < 1 or settings.max_new_tracks < 1:
		raise ValueError("scan_window and max_new_tracks must be at least 1")
	return settings
