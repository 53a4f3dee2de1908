# Error taxonomy shared by the gateway, the stores and the playback controller


class ChannelError(Exception):
	"""Any failure reported by the channel provider."""

	def __init__(self, description: str, error_code: int | None = None):
		super().__init__(description)
		self.description = description
		self.error_code = error_code


class NotFoundError(ChannelError):
	pass


class MessageNotFoundError(NotFoundError):
	pass


class ChatNotFoundError(NotFoundError):
	pass


class PermissionDeniedError(ChannelError):
	pass


class TransientChannelError(ChannelError):
	pass


class RateLimitedError(TransientChannelError):
	def __init__(self, description: str, error_code: int | None = 429, retry_after: int | None = None):
		super().__init__(description, error_code)
		self.retry_after = retry_after


class StorageError(Exception):
	"""Persistent store unreachable or unreadable."""


class PlaybackValidationError(ValueError):
	pass


class IndexOutOfRangeError(PlaybackValidationError):
	def __init__(self, index, max_index: int):
		super().__init__(f"Invalid track index: {index}")
		self.index = index
		self.max_index = max_index


class InvalidPositionError(PlaybackValidationError):
	def __init__(self, position):
		super().__init__(f"Invalid position value: {position!r}")
		self.position = position
