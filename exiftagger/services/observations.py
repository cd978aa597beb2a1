from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from exiftagger.services.models import ObservationKind, ObservationRecord, ObservationTemplate, ObservationValue

logger = logging.getLogger(__name__)

_TRUE_STRINGS = ("1", "true", "t", "yes", "y", "on")
_FALSE_STRINGS = ("0", "false", "f", "no", "n", "off")


def observation_kind(template_kind: str) -> ObservationKind:
	if template_kind == "boolean":
		return ObservationKind.BOOLEAN
	if template_kind == "numeric":
		return ObservationKind.NUMERIC
	return ObservationKind.TEXT


def _catalog_index(catalog: Iterable[Union[ObservationTemplate, Dict[str, Any]]]) -> Dict[str, ObservationTemplate]:
	index: Dict[str, ObservationTemplate] = {}
	for t in catalog:
		template = t if isinstance(t, ObservationTemplate) else ObservationTemplate.from_dict(t)
		index.setdefault(template.id, template)
	return index


def _is_blank(value: Any) -> bool:
	return value is None or value == ""


def normalize_observations(
	catalog: Iterable[Union[ObservationTemplate, Dict[str, Any]]],
	raw: Mapping[str, Any],
) -> List[ObservationRecord]:
	"""
	Turn a ``template id -> raw value`` map into typed observation records.

	Entries whose template is unknown or whose value is ``None``/``""`` are
	dropped without error: a partially filled form must not leak blanks into
	the embedded document. Values are brought to the template's kind with
	:func:`admissible_value`; those that cannot be are dropped as well.
	"""
	templates = _catalog_index(catalog)
	records: List[ObservationRecord] = []
	for template_id, value in raw.items():
		template = templates.get(template_id)
		if template is None:
			logger.debug(f"[Observations] Skipping unknown template id {template_id!r}")
			continue
		if _is_blank(value):
			logger.debug(f"[Observations] Skipping empty value for {template.name!r}")
			continue
		typed = admissible_value(template.kind, value)
		if typed is None:
			logger.debug(f"[Observations] Skipping {value!r} for {template.kind} observation {template.name!r}")
			continue
		records.append(ObservationRecord(name=template.name, kind=observation_kind(template.kind), value=typed))
	return records


def coerce_raw_value(template_kind: str, value: Any) -> Any:
	"""Convert form text to the Python type a template expects; unconvertible text is returned unchanged."""
	if not isinstance(value, str):
		return value
	text = value.strip()
	if text == "":
		return ""
	kind = observation_kind(template_kind)
	if kind is ObservationKind.BOOLEAN:
		lowered = text.lower()
		if lowered in _TRUE_STRINGS:
			return True
		if lowered in _FALSE_STRINGS:
			return False
		return value
	if kind is ObservationKind.NUMERIC:
		try:
			return int(text)
		except ValueError:
			pass
		try:
			number = float(text)
		except ValueError:
			return value
		return number if math.isfinite(number) else value
	return value


def admissible_value(template_kind: str, value: Any) -> Optional[ObservationValue]:
	"""
	``value`` as the observation kind of ``template_kind`` admits it, or None.

	Text templates take any scalar (booleans as ``"true"``/``"false"``);
	numeric and boolean templates go through :func:`coerce_raw_value` first.
	"""
	kind = observation_kind(template_kind)
	if kind is ObservationKind.TEXT:
		if isinstance(value, bool):
			return "true" if value else "false"
		if isinstance(value, (str, int, float)):
			return value if isinstance(value, str) else str(value)
		return None
	coerced = coerce_raw_value(template_kind, value)
	return coerced if kind.admits(coerced) else None


def inadmissible_entries(
	catalog: Iterable[Union[ObservationTemplate, Dict[str, Any]]],
	raw: Mapping[str, Any],
) -> List[str]:
	"""Template ids in ``raw`` with a non-blank value the normalizer would drop as the wrong kind."""
	templates = _catalog_index(catalog)
	return [
		template_id
		for template_id, value in raw.items()
		if template_id in templates
		and not _is_blank(coerce_raw_value(templates[template_id].kind, value))
		and admissible_value(templates[template_id].kind, value) is None
	]
