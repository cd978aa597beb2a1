"""
Embed and recover inspection metadata documents through the EXIF UserComment tag.

Encoding writes the document JSON verbatim into ``Exif[UserComment]``.
Decoding tolerates the shapes older writers produced: headered byte payloads,
NUL padding, the legacy flat document and arbitrary JSON objects.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError

from exiftagger.config import Settings
from exiftagger.services.documents import merge_update, new_document_from_update, utc_timestamp
from exiftagger.services.errors import EncodeIOError, MalformedPayload, PayloadTooLarge
from exiftagger.services.exif_container import (
	EXIF_SECTION,
	SECTIONS,
	USER_COMMENT_NAME,
	USER_COMMENT_TAG,
	ContainerError,
	empty_container,
	parse_container,
	splice_into_image,
	write_container,
)
from exiftagger.services.models import (
	DEFAULT_CATEGORY,
	DEFAULT_ORGANIZATION_TYPE,
	DEFAULT_PHASE,
	ImageInfo,
	ImageMetadataDocument,
	ProjectContext,
	ProjectInfo,
)

logger = logging.getLogger(__name__)

CURRENT_KEYS = ("image_metadata", "project", "organization")
LEGACY_KEYS = ("id", "organisationName")
CHARACTER_CODE_LENGTH = 8


def _exif_section(container: Mapping[str, Any]) -> Mapping[Any, Any]:
	section = container.get(EXIF_SECTION)
	return section if isinstance(section, Mapping) else {}


# Where a UserComment may live in a parsed container, in lookup order.
COMMENT_LOCATIONS: Tuple[Tuple[str, Callable[[Mapping[str, Any]], Any]], ...] = (
	("Exif[0x9286]", lambda c: _exif_section(c).get(USER_COMMENT_TAG)),
	("Exif[UserComment]", lambda c: _exif_section(c).get(USER_COMMENT_NAME)),
	("[0x9286]", lambda c: c.get(USER_COMMENT_TAG)),
	("[UserComment]", lambda c: c.get(USER_COMMENT_NAME)),
)


def _is_empty(value: Any) -> bool:
	if value is None:
		return True
	try:
		return len(value) == 0
	except TypeError:
		return False


def locate_comment(container: Mapping[str, Any]) -> Any:
	for label, strategy in COMMENT_LOCATIONS:
		value = strategy(container)
		if not _is_empty(value):
			logger.debug(f"[Codec] UserComment found at {label}")
			return value
	return None


def comment_text(raw: Any) -> str:
	if isinstance(raw, str):
		text = raw
	elif isinstance(raw, (bytes, bytearray)):
		body = bytes(raw[CHARACTER_CODE_LENGTH:]) if len(raw) > CHARACTER_CODE_LENGTH else bytes(raw)
		text = body.decode("utf-8", errors="replace")
	else:
		text = str(raw)
	return text.replace("\x00", "").strip()


class PayloadShape(str, Enum):
	CURRENT = "current"
	LEGACY = "legacy"
	UNKNOWN = "unknown"


def classify_payload(parsed: Any) -> PayloadShape:
	if isinstance(parsed, dict):
		if all(key in parsed for key in CURRENT_KEYS):
			return PayloadShape.CURRENT
		if all(key in parsed for key in LEGACY_KEYS):
			return PayloadShape.LEGACY
	return PayloadShape.UNKNOWN


class MetadataCodec:
	def __init__(self, settings: Optional[Settings] = None, clock: Optional[Callable[[], datetime]] = None) -> None:
		self.settings = settings or Settings()
		self._clock = clock or (lambda: datetime.now(timezone.utc))
		self._reconcilers = {
			PayloadShape.CURRENT: self._from_current,
			PayloadShape.LEGACY: self._from_legacy,
			PayloadShape.UNKNOWN: self._from_unknown,
		}

	def serialize(self, document: ImageMetadataDocument) -> bytes:
		payload = document.to_json(indent=self.settings.json_indent or None).encode("utf-8")
		if len(payload) > self.settings.max_payload_bytes:
			raise PayloadTooLarge(len(payload), self.settings.max_payload_bytes, image_name=document.image.original_filename)
		return payload

	def encode(self, document: ImageMetadataDocument, image_bytes: bytes) -> bytes:
		name = document.image.original_filename
		payload = self.serialize(document)
		try:
			container = parse_container(image_bytes)
		except ContainerError as exc:
			logger.warning(f"[Codec] No usable EXIF container in {name!r}, starting fresh: {exc}")
			container = empty_container()
		for section in SECTIONS:
			if not isinstance(container.get(section), dict):
				container[section] = {}
		container[EXIF_SECTION][USER_COMMENT_TAG] = payload
		try:
			out = splice_into_image(write_container(container), image_bytes)
		except ContainerError as exc:
			raise EncodeIOError(f"Failed to embed metadata: {exc}", image_name=name) from exc
		logger.info(f"[Codec] Embedded {len(payload)} bytes of metadata into {name!r}")
		return out

	def decode(self, image_bytes: bytes, filename: str = "image.jpg") -> Optional[ImageMetadataDocument]:
		"""
		Recover the document embedded in ``image_bytes``.

		Returns None when the image carries no JSON-looking UserComment.
		Raises MalformedPayload when it looks like JSON but does not parse.
		"""
		try:
			container = parse_container(image_bytes, extract_comment=True)
		except ContainerError as exc:
			logger.debug(f"[Codec] No EXIF container in {filename!r}: {exc}")
			return None
		raw = locate_comment(container)
		if raw is None:
			logger.debug(f"[Codec] No UserComment in {filename!r}")
			return None
		text = comment_text(raw)
		if not (text.startswith("{") and text.endswith("}")):
			logger.warning(f"[Codec] UserComment in {filename!r} is not JSON: {text[:100]!r}")
			return None
		try:
			parsed = json.loads(text)
		except json.JSONDecodeError as exc:
			raise MalformedPayload(f"Embedded metadata is not valid JSON: {exc}", image_name=filename) from exc
		return self.reconcile(parsed, filename, len(image_bytes))

	def reconcile(self, parsed: Any, filename: str, file_size: int = 0) -> ImageMetadataDocument:
		shape = classify_payload(parsed)
		logger.debug(f"[Codec] {filename!r} carries a {shape.value} payload")
		return self._reconcilers[shape](parsed, filename, file_size)

	def update(self, image_bytes: bytes, updates: Mapping[str, Any], filename: str = "image.jpg") -> bytes:
		try:
			existing = self.decode(image_bytes, filename)
		except MalformedPayload as exc:
			logger.warning(f"[Codec] Replacing unreadable metadata in {filename!r}: {exc}")
			existing = None
		now = self._clock()
		try:
			if existing is not None:
				document = merge_update(existing, updates, now)
			else:
				document = new_document_from_update(updates, now)
		except (ValidationError, MalformedPayload) as exc:
			raise MalformedPayload(f"Metadata update does not form a valid document: {exc}", image_name=filename) from exc
		return self.encode(document, image_bytes)

	def has_embedded_metadata(self, image_bytes: bytes, filename: str = "image.jpg") -> bool:
		try:
			return self.decode(image_bytes, filename) is not None
		except MalformedPayload:
			return False

	def project_context_from_image(self, image_bytes: bytes, filename: str = "image.jpg") -> Optional[ProjectContext]:
		document = self.decode(image_bytes, filename)
		return document.project_context() if document is not None else None

	def _placeholder_project_id(self, tag: str) -> str:
		return f"PROJ-{round(self._clock().timestamp() * 1000)}-{tag}"

	def _from_current(self, parsed: Dict[str, Any], filename: str, file_size: int) -> ImageMetadataDocument:
		try:
			return ImageMetadataDocument.model_validate(parsed)
		except ValidationError as exc:
			logger.warning(f"[Codec] Current-format metadata in {filename!r} failed validation, preserving as unknown: {exc}")
			return self._from_unknown(parsed, filename, file_size)

	def _from_legacy(self, parsed: Dict[str, Any], filename: str, file_size: int) -> ImageMetadataDocument:
		timestamp = parsed.get("timestamp")
		timestamp = str(timestamp) if timestamp else utc_timestamp(self._clock())
		observations = parsed.get("observations") or {}
		if not isinstance(observations, dict):
			observations = {"observations": observations}
		return ImageMetadataDocument(
			version=self.settings.format_version,
			organization=str(parsed.get("organisationName") or "Unknown"),
			project=ProjectInfo(
				id=self._placeholder_project_id("legacy"),
				name=str(parsed.get("projectName") or "Unknown Project"),
				phase=DEFAULT_PHASE,
				inspection_station=str(parsed.get("inspectionStation") or "Unknown Station"),
				camera_name=str(parsed.get("cameraName") or "Unknown Camera"),
				organization_type=DEFAULT_ORGANIZATION_TYPE,
			),
			image=ImageInfo(
				id=str(parsed.get("id") or filename),
				category=DEFAULT_CATEGORY,
				tags=[],
				status="processed",
				created_at=timestamp,
				last_modified=timestamp,
				title=str(parsed.get("imageFile") or filename),
				description="",
				original_filename=filename,
				file_size_bytes=file_size,
			),
			observations=observations,
			custom_fields={},
		)

	def _from_unknown(self, parsed: Any, filename: str, file_size: int) -> ImageMetadataDocument:
		logger.warning(f"[Codec] Unknown metadata format in {filename!r}, keeping it under observations")
		timestamp = utc_timestamp(self._clock())
		return ImageMetadataDocument(
			version=self.settings.format_version,
			organization="Unknown",
			project=ProjectInfo(
				id=self._placeholder_project_id("unknown"),
				name="Unknown Project",
				phase=DEFAULT_PHASE,
				inspection_station="Unknown Station",
				camera_name="Unknown Camera",
				organization_type=DEFAULT_ORGANIZATION_TYPE,
			),
			image=ImageInfo(
				id=filename,
				category=DEFAULT_CATEGORY,
				tags=[],
				status="unknown",
				created_at=timestamp,
				last_modified=timestamp,
				title=filename,
				description="",
				original_filename=filename,
				file_size_bytes=file_size,
			),
			observations=parsed if isinstance(parsed, dict) else {"value": parsed},
			custom_fields={},
		)
