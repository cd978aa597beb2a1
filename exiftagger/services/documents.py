from __future__ import annotations

import logging
import random
import string
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from exiftagger.config import Settings
from exiftagger.services.errors import InvalidContext, MalformedPayload
from exiftagger.services.image_utils import image_dimensions
from exiftagger.services.models import (
	DEFAULT_CATEGORY,
	DEFAULT_ORGANIZATION_TYPE,
	DEFAULT_PHASE,
	Dimensions,
	ImageInfo,
	ImageInput,
	ImageMetadataDocument,
	ObservationRecord,
	ProjectContext,
	ProjectInfo,
)

logger = logging.getLogger(__name__)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def utc_timestamp(now: Optional[datetime] = None) -> str:
	"""UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
	now = now or datetime.now(timezone.utc)
	return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def image_id(index: int) -> str:
	if index < 0:
		raise ValueError(f"image index must not be negative, got {index}")
	return f"img-{index + 1:03d}"


def project_id(millis: Optional[int] = None, rng: Optional[random.Random] = None) -> str:
	millis = int(time.time() * 1000) if millis is None else millis
	rng = rng or random
	suffix = "".join(rng.choice(_SUFFIX_ALPHABET) for _ in range(5))
	return f"PROJ-{millis}-{suffix}"


def validate_context(context: ProjectContext) -> None:
	missing = context.missing_fields()
	if missing:
		raise InvalidContext(
			"Missing required project data: " + ", ".join(missing) + ". "
			"Organization name, project name, inspection station and camera name must all be filled in."
		)


def flatten_observations(observations: Iterable[ObservationRecord]) -> Dict[str, Any]:
	out: Dict[str, Any] = {}
	for obs in observations:
		out[obs.name] = obs.value
	return out


class MetadataDocumentBuilder:
	"""Assembles the canonical document for one image of a batch; holds no state between calls."""

	def __init__(self, settings: Optional[Settings] = None, clock: Optional[Callable[[], datetime]] = None) -> None:
		self.settings = settings or Settings()
		self._clock = clock or (lambda: datetime.now(timezone.utc))

	def build(
		self,
		context: ProjectContext,
		image: ImageInput,
		index: int,
		observations: Iterable[ObservationRecord] = (),
	) -> ImageMetadataDocument:
		validate_context(context)
		now = self._clock()
		timestamp = utc_timestamp(now)
		dims = image_dimensions(image.data)
		doc = ImageMetadataDocument(
			version=self.settings.format_version,
			organization=context.organization_name,
			project=ProjectInfo(
				id=project_id(round(now.timestamp() * 1000)),
				name=context.project_name,
				phase=DEFAULT_PHASE,
				inspection_station=context.inspection_station,
				camera_name=context.camera_name,
				organization_type=DEFAULT_ORGANIZATION_TYPE,
			),
			image=ImageInfo(
				id=image_id(index),
				category=DEFAULT_CATEGORY,
				tags=[],
				status="processed",
				created_at=timestamp,
				last_modified=timestamp,
				title=image.name,
				description="",
				original_filename=image.name,
				file_size_bytes=image.size_bytes,
				dimensions=Dimensions(width=dims[0], height=dims[1]) if dims else None,
			),
			observations=flatten_observations(observations),
			custom_fields={},
		)
		logger.debug(f"[Documents] Built {doc.image.id} for {image.name!r} ({len(doc.observations)} observations)")
		return doc


def parse_timestamp(value: Any) -> Optional[datetime]:
	"""Read an ISO-8601 timestamp as an aware UTC datetime; naive values are taken as UTC."""
	try:
		parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
	except ValueError:
		return None
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=timezone.utc)
	return parsed.astimezone(timezone.utc)


def refreshed_last_modified(created: Any, now: Optional[datetime] = None) -> str:
	"""``now``, unless ``created`` lies after it; then ``created`` itself, so the pair stays ordered."""
	now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
	created_at = parse_timestamp(created)
	if created_at is not None and created_at > now:
		return utc_timestamp(created_at)
	return utc_timestamp(now)


def _object_update(updates: Mapping[str, Any], key: str) -> Dict[str, Any]:
	value = updates.get(key)
	if value is None:
		return {}
	if not isinstance(value, Mapping):
		raise MalformedPayload(f"'{key}' in a metadata update must be an object, got {type(value).__name__}")
	return dict(value)


def merge_update(
	existing: ImageMetadataDocument,
	updates: Mapping[str, Any],
	now: Optional[datetime] = None,
) -> ImageMetadataDocument:
	"""
	Apply a partial wire-format update on top of an existing document.

	Top-level keys are replaced, ``image_metadata`` is merged key by key and
	always gets a fresh ``last_modified``. ``observations`` are only replaced
	when the update carries them. ``project.id`` and ``created_date`` are
	never changed by an update.
	"""
	base = existing.to_wire()
	merged: Dict[str, Any] = {**base, **updates}

	image = {**base["image_metadata"], **_object_update(updates, "image_metadata")}
	image["created_date"] = base["image_metadata"]["created_date"]
	image["last_modified"] = refreshed_last_modified(image["created_date"], now)
	merged["image_metadata"] = image

	project = {**base["project"], **_object_update(updates, "project")}
	project["id"] = base["project"]["id"]
	merged["project"] = project

	if updates.get("observations") is None:
		merged["observations"] = base["observations"]
	return ImageMetadataDocument.model_validate(merged)


def new_document_from_update(updates: Mapping[str, Any], now: Optional[datetime] = None) -> ImageMetadataDocument:
	"""Treat an update with nothing to merge into as a complete document; ``last_modified`` is still refreshed."""
	now = now or datetime.now(timezone.utc)
	data: Dict[str, Any] = dict(updates)
	image = _object_update(data, "image_metadata")
	image["created_date"] = str(image.get("created_date") or utc_timestamp(now))
	image["last_modified"] = refreshed_last_modified(image["created_date"], now)
	data["image_metadata"] = image
	return ImageMetadataDocument.model_validate(data)
