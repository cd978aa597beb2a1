from __future__ import annotations

from datetime import datetime, timezone
from io import BytesIO

import piexif
import pytest
from PIL import Image

from exiftagger.services.models import ImageInput, ProjectContext

CREATED_AT = datetime(2024, 5, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)
UPDATED_AT = datetime(2024, 5, 2, 8, 30, 0, tzinfo=timezone.utc)


def make_jpeg(width: int = 16, height: int = 12) -> bytes:
	buf = BytesIO()
	Image.new("RGB", (width, height), (120, 80, 40)).save(buf, format="JPEG")
	return buf.getvalue()


def make_png(width: int = 8, height: int = 8) -> bytes:
	buf = BytesIO()
	Image.new("RGB", (width, height)).save(buf, format="PNG")
	return buf.getvalue()


def with_exif(image: bytes, exif: dict = None, zeroth: dict = None) -> bytes:
	container = {"0th": zeroth or {}, "Exif": exif or {}, "GPS": {}, "Interop": {}, "1st": {}, "thumbnail": None}
	out = BytesIO()
	piexif.insert(piexif.dump(container), image, out)
	return out.getvalue()


def with_user_comment(image: bytes, raw: bytes) -> bytes:
	return with_exif(image, exif={piexif.ExifIFD.UserComment: raw})


@pytest.fixture
def jpeg_bytes() -> bytes:
	return make_jpeg()


@pytest.fixture
def png_bytes() -> bytes:
	return make_png()


@pytest.fixture
def context() -> ProjectContext:
	return ProjectContext(
		organization_name="Acme",
		project_name="P1",
		inspection_station="S1",
		camera_name="C1",
	)


@pytest.fixture
def photo(jpeg_bytes) -> ImageInput:
	return ImageInput(name="photo.jpg", data=jpeg_bytes)


@pytest.fixture
def created_clock():
	return lambda: CREATED_AT


@pytest.fixture
def updated_clock():
	return lambda: UPDATED_AT


@pytest.fixture
def comment_image(jpeg_bytes):
	"""Factory: the fixture JPEG with a raw UserComment value written through piexif."""
	return lambda raw: with_user_comment(jpeg_bytes, raw)


@pytest.fixture
def exif_image():
	return with_exif
