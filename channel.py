"""Channel gateway: the only place that talks to the chat provider."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from errors import (
	ChannelError,
	ChatNotFoundError,
	MessageNotFoundError,
	PermissionDeniedError,
	RateLimitedError,
	TransientChannelError,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MARKERS = (
	"message to forward not found",
	"message to delete not found",
	"message to copy not found",
	"message not found",
	"message_id_invalid",
)
CHAT_NOT_FOUND_MARKERS = ("chat not found",)
DENIED_MARKERS = (
	"not enough rights",
	"have no rights",
	"forbidden",
	"bot is not a member",
	"bot was kicked",
)


def classify_error(error_code: int | None, description: str, parameters: dict | None = None) -> ChannelError:
	"""
	Maps a provider error onto the error taxonomy.
	Numeric error codes decide first; the description text is only consulted for 400-class errors.
	"""
	text = (description or "").lower()
	if error_code == 429:
		retry_after = (parameters or {}).get("retry_after")
		return RateLimitedError(description, error_code, retry_after=retry_after)
	if error_code == 403:
		return PermissionDeniedError(description, error_code)
	if error_code is not None and error_code >= 500:
		return TransientChannelError(description, error_code)
	if any(m in text for m in NOT_FOUND_MARKERS):
		return MessageNotFoundError(description, error_code)
	if any(m in text for m in CHAT_NOT_FOUND_MARKERS):
		return ChatNotFoundError(description, error_code)
	if any(m in text for m in DENIED_MARKERS):
		return PermissionDeniedError(description, error_code)
	return ChannelError(description, error_code)


class ChannelGateway(ABC):
	"""
	What the synchronizer needs from a channel. There is no history listing,
	so the newest id and individual messages are obtained by probing.
	"""

	@abstractmethod
	async def resolve_channel(self) -> dict:
		...

	@abstractmethod
	async def list_admin_ids(self) -> set[int]:
		...

	@abstractmethod
	async def self_id(self) -> int:
		...

	@abstractmethod
	async def head_id(self) -> int:
		"""Id the provider would assign to the next post. Leaves nothing visible behind."""

	@abstractmethod
	async def fetch_message(self, message_id: int) -> dict:
		"""Message content for message_id. Raises MessageNotFoundError when it no longer exists."""

	@abstractmethod
	async def resolve_file_url(self, file_ref: str) -> str:
		...

	async def close(self):
		pass


class TelegramGateway(ChannelGateway):
	"""Bot API adapter. Probes are sent or forwarded silently and deleted right after use."""

	PROBE_TEXT = "Scanning..."

	def __init__(
		self,
		token: str,
		channel_id: int,
		probe_chat_id: int | None = None,
		api_base: str = "https://api.telegram.org",
		timeout: float = 30.0,
		client: httpx.AsyncClient | None = None,
	):
		self.token = token
		self.channel_id = channel_id
		self.probe_chat_id = probe_chat_id or channel_id
		self.api_base = api_base.rstrip("/")
		self.timeout = timeout
		self._client = client
		self._self_id: int | None = None

	async def _get_client(self) -> httpx.AsyncClient:
		if self._client is None:
			self._client = httpx.AsyncClient(base_url=self.api_base, timeout=self.timeout)
		return self._client

	async def close(self):
		if self._client is not None:
			await self._client.aclose()
			self._client = None

	async def _call(self, method: str, **params) -> Any:
		client = await self._get_client()
		try:
			response = await client.post(f"/bot{self.token}/{method}", json=params)
		except httpx.TransportError as e:
			# str(e) may carry the request URL, and with it the token
			raise TransientChannelError(f"{method}: {type(e).__name__}") from e

		try:
			data = response.json()
		except ValueError:
			if response.status_code >= 500:
				raise TransientChannelError(f"{method}: HTTP {response.status_code}", response.status_code)
			raise ChannelError(f"{method}: unreadable response (HTTP {response.status_code})", response.status_code)

		if not isinstance(data, dict) or not data.get("ok"):
			data = data if isinstance(data, dict) else {}
			raise classify_error(
				data.get("error_code") or response.status_code,
				data.get("description") or f"{method} failed",
				data.get("parameters"),
			)
		return data.get("result")

	async def resolve_channel(self) -> dict:
		return await self._call("getChat", chat_id=self.channel_id)

	async def list_admin_ids(self) -> set[int]:
		admins = await self._call("getChatAdministrators", chat_id=self.channel_id)
		return {a["user"]["id"] for a in admins or [] if a.get("user")}

	async def self_id(self) -> int:
		if self._self_id is None:
			me = await self._call("getMe")
			self._self_id = me["id"]
		return self._self_id

	async def _delete(self, chat_id: int, message_id: int):
		try:
			await self._call("deleteMessage", chat_id=chat_id, message_id=message_id)
		except ChannelError as e:
			logger.warning(f"Probe message {message_id} in {chat_id} could not be deleted: {e}")

	async def head_id(self) -> int:
		probe = await self._call(
			"sendMessage",
			chat_id=self.channel_id,
			text=self.PROBE_TEXT,
			disable_notification=True,
		)
		message_id = probe["message_id"]
		await self._delete(self.channel_id, message_id)
		logger.debug(f"Channel head id is {message_id}")
		return message_id

	async def fetch_message(self, message_id: int) -> dict:
		copy = await self._call(
			"forwardMessage",
			chat_id=self.probe_chat_id,
			from_chat_id=self.channel_id,
			message_id=message_id,
			disable_notification=True,
		)
		if copy and copy.get("message_id"):
			await self._delete(self.probe_chat_id, copy["message_id"])
		return copy or {}

	async def resolve_file_url(self, file_ref: str) -> str:
		info = await self._call("getFile", file_id=file_ref)
		file_path = (info or {}).get("file_path")
		if not file_path:
			raise ChannelError(f"No download path for file {file_ref}")
		return f"{self.api_base}/file/bot{self.token}/{file_path}"
