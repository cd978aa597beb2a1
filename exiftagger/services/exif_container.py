from __future__ import annotations

import logging
import struct
from io import BytesIO
from typing import Any, Dict, Optional

import piexif

logger = logging.getLogger(__name__)

USER_COMMENT_TAG = piexif.ExifIFD.UserComment  # 0x9286
USER_COMMENT_NAME = "UserComment"
EXIF_SECTION = "Exif"
SECTIONS = ("0th", "Exif", "GPS", "Interop", "1st")

# 8-byte character code headers defined for UserComment.
CHARACTER_CODES = (
	b"ASCII\x00\x00\x00",
	b"JIS\x00\x00\x00\x00\x00",
	b"UNICODE\x00",
	b"\x00" * 8,
)

# InvalidImageDataError subclasses ValueError.
_PIEXIF_ERRORS = (ValueError, struct.error, OSError)

JPEG = "jpeg"
TIFF = "tiff"
WEBP = "webp"
RAW_EXIF = "exif"


class ContainerError(Exception):
	"""piexif could not read or write an EXIF container."""


def empty_container() -> Dict[str, Any]:
	container: Dict[str, Any] = {name: {} for name in SECTIONS}
	container["thumbnail"] = None
	return container


def container_format(data: bytes) -> Optional[str]:
	"""
	Sniff the kind of input piexif is about to see.

	piexif opens anything it does not recognise as a filename, so callers
	must never hand it bytes for which this returns None.
	"""
	head = bytes(data[:12])
	if head[:2] == b"\xff\xd8":
		return JPEG
	if head[:4] in (b"II*\x00", b"MM\x00*"):
		return TIFF
	if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
		return WEBP
	if head[:6] == b"Exif\x00\x00":
		return RAW_EXIF
	return None


def has_character_code(raw: bytes) -> bool:
	return raw[:8] in CHARACTER_CODES


def extract_user_comment(raw: Any) -> Any:
	"""
	Turn a UserComment written verbatim (no character code header) into text.

	Values that carry one of the EXIF character codes, or that are not valid
	UTF-8, are returned as raw bytes so the caller can apply the legacy
	header convention.
	"""
	if not isinstance(raw, (bytes, bytearray)):
		return raw
	raw = bytes(raw)
	if has_character_code(raw):
		return raw
	try:
		return raw.decode("utf-8")
	except UnicodeDecodeError:
		return raw


def parse_container(data: bytes, extract_comment: bool = False) -> Dict[str, Any]:
	"""
	Load the EXIF container of ``data`` with raw integer tag keys and raw values.

	With ``extract_comment`` the UserComment value is passed through
	:func:`extract_user_comment`; nothing else is translated.
	"""
	if not data:
		raise ContainerError("no image data")
	if container_format(data) is None:
		raise ContainerError("not a JPEG, TIFF or WebP image")
	try:
		container = piexif.load(bytes(data))
	except _PIEXIF_ERRORS as exc:
		raise ContainerError(f"could not parse EXIF container: {exc}") from exc
	if extract_comment:
		exif = container.get(EXIF_SECTION) or {}
		if USER_COMMENT_TAG in exif:
			exif[USER_COMMENT_TAG] = extract_user_comment(exif[USER_COMMENT_TAG])
	return container


def write_container(container: Dict[str, Any]) -> bytes:
	try:
		return piexif.dump(container)
	except _PIEXIF_ERRORS as exc:
		raise ContainerError(f"could not serialize EXIF container: {exc}") from exc


def splice_into_image(tag_bytes: bytes, original: bytes) -> bytes:
	if container_format(original) not in (JPEG, WEBP):
		raise ContainerError("EXIF can only be inserted into JPEG or WebP images")
	out = BytesIO()
	try:
		piexif.insert(tag_bytes, bytes(original), out)
	except _PIEXIF_ERRORS as exc:
		raise ContainerError(f"could not insert EXIF container into image: {exc}") from exc
	return out.getvalue()
