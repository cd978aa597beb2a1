from __future__ import annotations

import re
import zipfile
from dataclasses import dataclass
from io import BytesIO
from pathlib import PurePosixPath
from typing import List, Sequence

from exiftagger.services.errors import InvalidContext
from exiftagger.services.models import BatchResult, ImageInput, ProjectContext

_INVALID_SEGMENT_CHARS = re.compile(r'[<>:"/\\|?*]')
IMAGES_DIR = "images"


@dataclass(frozen=True)
class StoredImage:
	path: PurePosixPath
	data: bytes


def sanitize_segment(name: str) -> str:
	if not isinstance(name, str) or not name.strip():
		raise InvalidContext(f"Invalid path segment {name!r}: expected a non-empty string")
	return _INVALID_SEGMENT_CHARS.sub("_", name).strip()


def storage_directory(context: ProjectContext) -> List[str]:
	"""Organization/Project/InspectionStation/images, each segment sanitized."""
	return [
		sanitize_segment(context.organization_name),
		sanitize_segment(context.project_name),
		sanitize_segment(context.inspection_station),
		IMAGES_DIR,
	]


def storage_plan(images: Sequence[ImageInput], result: BatchResult, context: ProjectContext) -> List[StoredImage]:
	if len(images) != len(result):
		raise ValueError(f"batch result has {len(result)} entries for {len(images)} images")
	directory = PurePosixPath(*storage_directory(context))
	plan: List[StoredImage] = []
	for image, (data, document) in zip(images, result):
		plan.append(StoredImage(path=directory / f"{document.image.id}.{image.extension}", data=data))
	return plan


def build_archive(plan: Sequence[StoredImage]) -> bytes:
	buf = BytesIO()
	# Images are already compressed.
	with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_STORED) as zf:
		for item in plan:
			zf.writestr(str(item.path), item.data)
	return buf.getvalue()
