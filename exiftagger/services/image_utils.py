from __future__ import annotations

import logging
from io import BytesIO
from typing import Optional, Tuple

from PIL import ExifTags, Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Orientations 5-8 are stored rotated by 90 degrees.
_TRANSPOSED_ORIENTATIONS = (5, 6, 7, 8)


def exif_orientation(exif) -> Optional[int]:
	if not exif:
		return None
	tmp = {}
	for tag_id, value in exif.items():
		tag = ExifTags.TAGS.get(tag_id, tag_id)
		tmp[str(tag)] = value
	orientation = tmp.get("Orientation")
	if orientation is None:
		return None
	try:
		return int(orientation)
	except (TypeError, ValueError):
		return None


def image_dimensions(data: bytes) -> Optional[Tuple[int, int]]:
	"""Displayed (width, height) of an encoded image, or None when Pillow cannot open it."""
	try:
		with Image.open(BytesIO(data)) as img:
			width, height = img.size
			orientation = exif_orientation(img.getexif())
	except (UnidentifiedImageError, OSError, ValueError) as exc:
		logger.debug(f"[Image] Could not read dimensions: {exc}")
		return None
	if orientation in _TRANSPOSED_ORIENTATIONS:
		return height, width
	return width, height
