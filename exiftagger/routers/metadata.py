from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response

from exiftagger.config import Settings
from exiftagger.services.batch import BatchMetadataProcessor
from exiftagger.services.codec import MetadataCodec
from exiftagger.services.errors import BatchAborted, MetadataError
from exiftagger.services.models import ImageInput, ObservationRecord, ObservationTemplate, ProjectContext
from exiftagger.services.observations import inadmissible_entries, normalize_observations
from exiftagger.services.storage import build_archive, storage_plan

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/metadata", tags=["metadata"])


@lru_cache
def get_settings() -> Settings:
	return Settings.from_env()


def get_codec(settings: Settings = Depends(get_settings)) -> MetadataCodec:
	return MetadataCodec(settings)


def get_processor(codec: MetadataCodec = Depends(get_codec)) -> BatchMetadataProcessor:
	return BatchMetadataProcessor(codec)


def _parse_json_field(name: str, raw: str, expected: type) -> Any:
	try:
		value = json.loads(raw)
	except json.JSONDecodeError as exc:
		raise HTTPException(status_code=400, detail=f"'{name}' is not valid JSON: {exc}") from exc
	if not isinstance(value, expected):
		raise HTTPException(status_code=400, detail=f"'{name}' must be a JSON {expected.__name__}")
	return value


def _observations_by_index(
	templates_raw: List[Dict[str, Any]],
	observations_raw: Dict[str, Any],
	count: int,
) -> Dict[int, List[ObservationRecord]]:
	try:
		templates = [ObservationTemplate.from_dict(t) for t in templates_raw]
	except (KeyError, TypeError, AttributeError) as exc:
		raise HTTPException(status_code=400, detail=f"Invalid observation template: {exc}") from exc
	out: Dict[int, List[ObservationRecord]] = {}
	for key, raw in observations_raw.items():
		try:
			index = int(key)
		except ValueError as exc:
			raise HTTPException(status_code=400, detail=f"Observation key {key!r} is not an image index") from exc
		if not 0 <= index < count:
			raise HTTPException(status_code=400, detail=f"Observation index {index} is out of range")
		if not isinstance(raw, dict):
			raise HTTPException(status_code=400, detail=f"Observations for image {index} must be an object")
		rejected = inadmissible_entries(templates, raw)
		if rejected:
			raise HTTPException(
				status_code=400,
				detail=f"Invalid observation for image {index}: wrong value type for template(s) {', '.join(rejected)}",
			)
		out[index] = normalize_observations(templates, raw)
	return out


async def _read_uploads(files: List[UploadFile]) -> List[ImageInput]:
	images = []
	for f in files:
		data = await f.read()
		images.append(ImageInput(name=f.filename or "image.jpg", data=data))
	return images


@router.post("/embed", summary="Embed project and observation metadata into a batch of images")
async def embed(
	files: List[UploadFile] = File(...),
	organization_name: str = Form(...),
	project_name: str = Form(...),
	inspection_station: str = Form(...),
	camera_name: str = Form(...),
	templates: str = Form("[]"),
	observations: str = Form("{}"),
	processor: BatchMetadataProcessor = Depends(get_processor),
):
	images = await _read_uploads(files)
	by_index = _observations_by_index(
		_parse_json_field("templates", templates, list),
		_parse_json_field("observations", observations, dict),
		len(images),
	)
	context = ProjectContext(
		organization_name=organization_name,
		project_name=project_name,
		inspection_station=inspection_station,
		camera_name=camera_name,
	)
	try:
		result = processor.process(images, by_index, context)
		archive = build_archive(storage_plan(images, result, context))
	except BatchAborted as exc:
		raise HTTPException(
			status_code=422,
			detail={"message": str(exc), "index": exc.index, "filename": exc.image_name},
		) from exc
	except MetadataError as exc:
		raise HTTPException(status_code=422, detail=str(exc)) from exc
	logger.info(f"[API] Embedded metadata into {len(images)} images for {project_name!r}")
	return Response(
		content=archive,
		media_type="application/zip",
		headers={"Content-Disposition": 'attachment; filename="images.zip"'},
	)


@router.post("/read", summary="Read embedded metadata from images")
async def read(
	files: List[UploadFile] = File(...),
	processor: BatchMetadataProcessor = Depends(get_processor),
):
	images = await _read_uploads(files)
	outcomes = processor.read(images)
	return {
		"count": len(outcomes),
		"images": [
			{
				"filename": o.name,
				"found": o.found,
				"metadata": o.document.to_wire() if o.document is not None else None,
				"error": str(o.error) if o.error is not None else None,
			}
			for o in outcomes
		],
	}


@router.post("/update", summary="Merge a metadata update into one image")
async def update(
	file: UploadFile = File(...),
	updates: str = Form(...),
	codec: MetadataCodec = Depends(get_codec),
):
	data = await file.read()
	name = file.filename or "image.jpg"
	try:
		out = codec.update(data, _parse_json_field("updates", updates, dict), name)
	except MetadataError as exc:
		raise HTTPException(status_code=422, detail=str(exc)) from exc
	return Response(content=out, media_type=file.content_type or "image/jpeg")


@router.get("/health", summary="Service status")
def health(settings: Settings = Depends(get_settings)):
	return {"status": "ok", "format_version": settings.format_version, "max_payload_bytes": settings.max_payload_bytes}
