from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PHASE = "Image Classification"
DEFAULT_ORGANIZATION_TYPE = "Industrial"
DEFAULT_CATEGORY = "general"

ObservationValue = Union[int, float, bool, str]


class ObservationKind(str, Enum):
	NUMERIC = "numeric"
	BOOLEAN = "bool"
	TEXT = "string"

	def admits(self, value: Any) -> bool:
		if self is ObservationKind.BOOLEAN:
			return isinstance(value, bool)
		if self is ObservationKind.NUMERIC:
			return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
		return isinstance(value, str)


@dataclass(frozen=True)
class ObservationRecord:
	name: str
	kind: ObservationKind
	value: ObservationValue

	def __post_init__(self) -> None:
		if not self.name:
			raise ValueError("observation name must not be empty")
		if not self.kind.admits(self.value):
			raise ValueError(f"value {self.value!r} is not admissible for {self.kind.value} observation {self.name!r}")


@dataclass(frozen=True)
class ObservationTemplate:
	"""One entry of the observation template catalog; ``kind`` is the raw template type."""

	id: str
	name: str
	kind: str = "string"
	default_value: Optional[ObservationValue] = None

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "ObservationTemplate":
		return cls(
			id=str(data["id"]),
			name=str(data["name"]),
			kind=str(data.get("kind", data.get("type", "string"))),
			default_value=data.get("defaultValue", data.get("default_value")),
		)


@dataclass(frozen=True)
class ProjectContext:
	organization_name: str
	project_name: str
	inspection_station: str
	camera_name: str

	def missing_fields(self) -> List[str]:
		return [
			name
			for name in ("organization_name", "project_name", "inspection_station", "camera_name")
			if not isinstance(getattr(self, name), str) or not getattr(self, name).strip()
		]


@dataclass(frozen=True)
class ImageInput:
	name: str
	data: bytes

	@property
	def size_bytes(self) -> int:
		return len(self.data)

	@property
	def extension(self) -> str:
		suffix = PurePath(self.name).suffix
		return suffix[1:] if len(suffix) > 1 else "jpg"


class _WireModel(BaseModel):
	# Readers must tolerate keys added by newer writers.
	model_config = ConfigDict(extra="allow", populate_by_name=True)


class Dimensions(_WireModel):
	width: int
	height: int


class ProjectInfo(_WireModel):
	id: str
	name: str
	phase: str = DEFAULT_PHASE
	inspection_station: str = Field(alias="inspectionStation")
	camera_name: str = Field(alias="cameraName")
	organization_type: str = Field(DEFAULT_ORGANIZATION_TYPE, alias="organizationType")


class ImageInfo(_WireModel):
	id: str
	category: str = DEFAULT_CATEGORY
	tags: List[str] = Field(default_factory=list)
	status: str = "processed"
	created_at: str = Field(alias="created_date")
	last_modified: str
	title: Optional[str] = None
	description: Optional[str] = None
	original_filename: str
	file_size_bytes: int = Field(0, alias="file_size")
	dimensions: Optional[Dimensions] = None


class ImageMetadataDocument(_WireModel):
	version: str = "1.0"
	organization: str
	project: ProjectInfo
	image: ImageInfo = Field(alias="image_metadata")
	observations: Dict[str, Any] = Field(default_factory=dict)
	custom_fields: Dict[str, Any] = Field(default_factory=dict)

	def to_wire(self) -> Dict[str, Any]:
		return self.model_dump(mode="json", by_alias=True)

	def to_json(self, indent: Optional[int] = 2) -> str:
		return json.dumps(self.to_wire(), indent=indent, ensure_ascii=False)

	def project_context(self) -> ProjectContext:
		return ProjectContext(
			organization_name=self.organization,
			project_name=self.project.name,
			inspection_station=self.project.inspection_station,
			camera_name=self.project.camera_name,
		)


@dataclass
class BatchResult:
	encoded: List[bytes] = field(default_factory=list)
	documents: List[ImageMetadataDocument] = field(default_factory=list)

	def __len__(self) -> int:
		return len(self.documents)

	def __iter__(self) -> Iterator[Tuple[bytes, ImageMetadataDocument]]:
		return iter(zip(self.encoded, self.documents))


@dataclass
class DecodeOutcome:
	name: str
	document: Optional[ImageMetadataDocument] = None
	error: Optional[Exception] = None

	@property
	def found(self) -> bool:
		return self.document is not None
