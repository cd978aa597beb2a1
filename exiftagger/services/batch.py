from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence

from exiftagger.services.codec import MetadataCodec
from exiftagger.services.documents import MetadataDocumentBuilder
from exiftagger.services.errors import BatchAborted, MetadataError
from exiftagger.services.models import (
	BatchResult,
	DecodeOutcome,
	ImageInput,
	ObservationRecord,
	ProjectContext,
)

logger = logging.getLogger(__name__)


class BatchMetadataProcessor:
	"""
	Build and embed metadata for an ordered batch of images.

	Images are handled one at a time in input order. The batch is
	all-or-nothing: the first image that fails to build or encode aborts the
	whole call with BatchAborted and nothing processed so far is returned.
	"""

	def __init__(self, codec: Optional[MetadataCodec] = None, builder: Optional[MetadataDocumentBuilder] = None) -> None:
		self.codec = codec or MetadataCodec()
		self.builder = builder or MetadataDocumentBuilder(self.codec.settings)

	def process(
		self,
		images: Sequence[ImageInput],
		observations_by_index: Mapping[int, Sequence[ObservationRecord]],
		context: ProjectContext,
	) -> BatchResult:
		encoded: List[bytes] = []
		documents = []
		for i, image in enumerate(images):
			observations = observations_by_index.get(i) or []
			try:
				document = self.builder.build(context, image, i, observations)
				data = self.codec.encode(document, image.data)
			except MetadataError as exc:
				logger.error(f"[Batch] Aborting batch at image {i} ({image.name!r}): {exc}")
				raise BatchAborted(i, image.name, exc) from exc
			encoded.append(data)
			documents.append(document)
		logger.info(f"[Batch] Embedded metadata into {len(documents)} images for {context.project_name!r}")
		return BatchResult(encoded=encoded, documents=documents)

	def read(self, images: Sequence[ImageInput]) -> List[DecodeOutcome]:
		"""Decode every image; a malformed payload is recorded on its outcome and does not stop the read."""
		outcomes: List[DecodeOutcome] = []
		for image in images:
			try:
				document = self.codec.decode(image.data, image.name)
			except MetadataError as exc:
				logger.warning(f"[Batch] Failed to read metadata from {image.name!r}: {exc}")
				outcomes.append(DecodeOutcome(name=image.name, error=exc))
				continue
			outcomes.append(DecodeOutcome(name=image.name, document=document))
		found = sum(1 for o in outcomes if o.found)
		logger.info(f"[Batch] Read metadata from {found} of {len(outcomes)} images")
		return outcomes
