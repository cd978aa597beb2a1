from __future__ import annotations

from typing import Optional


class MetadataError(Exception):
	"""Base class for everything the metadata services raise."""

	def __init__(self, message: str, image_name: Optional[str] = None, index: Optional[int] = None) -> None:
		super().__init__(message)
		self.message = message
		self.image_name = image_name
		self.index = index

	def __str__(self) -> str:
		if self.image_name is None:
			return self.message
		return f"{self.message} (image {self.image_name!r})"


class InvalidContext(MetadataError):
	"""A required project field is missing or blank."""


class PayloadTooLarge(MetadataError):
	def __init__(self, size: int, limit: int, image_name: Optional[str] = None) -> None:
		super().__init__(
			f"Metadata is too large ({size} bytes, limit {limit}). Reduce the observation or custom field data.",
			image_name=image_name,
		)
		self.size = size
		self.limit = limit


class EncodeIOError(MetadataError):
	"""The tag container could not be written back into the image."""


class MalformedPayload(MetadataError):
	"""The comment tag looks like JSON but does not parse."""


class BatchAborted(MetadataError):
	def __init__(self, index: int, image_name: str, cause: Exception) -> None:
		super().__init__(f"Failed to process image {image_name!r} at index {index}: {cause}")
		self.image_name = image_name
		self.index = index
		self.cause = cause

	def __str__(self) -> str:
		return self.message
