"""Tests for observation normalization and kind coercion."""

from __future__ import annotations

import pytest

from exiftagger.services.models import ObservationKind, ObservationRecord, ObservationTemplate
from exiftagger.services.observations import (
	admissible_value,
	coerce_raw_value,
	inadmissible_entries,
	normalize_observations,
	observation_kind,
)

CATALOG = [
	{"id": "t-temp", "name": "Temperature", "type": "numeric", "defaultValue": 0},
	{"id": "t-ok", "name": "Passed", "type": "boolean"},
	{"id": "t-note", "name": "Note", "type": "string"},
]


def test_kind_mapping() -> None:
	assert observation_kind("boolean") is ObservationKind.BOOLEAN
	assert observation_kind("numeric") is ObservationKind.NUMERIC
	assert observation_kind("string") is ObservationKind.TEXT
	assert observation_kind("anything-else") is ObservationKind.TEXT


def test_normalize_keeps_raw_insertion_order() -> None:
	records = normalize_observations(CATALOG, {"t-note": "scratch", "t-temp": 42, "t-ok": True})
	assert records == [
		ObservationRecord("Note", ObservationKind.TEXT, "scratch"),
		ObservationRecord("Temperature", ObservationKind.NUMERIC, 42),
		ObservationRecord("Passed", ObservationKind.BOOLEAN, True),
	]


@pytest.mark.parametrize("template_id", ["t-temp", "t-ok", "t-note", "missing", ""])
@pytest.mark.parametrize("value", [None, ""])
def test_empty_values_never_emit_records(template_id, value) -> None:
	assert normalize_observations(CATALOG, {template_id: value}) == []


@pytest.mark.parametrize("value", [0, False, "x", 3.5, True])
def test_unknown_template_never_emits_records(value) -> None:
	assert normalize_observations(CATALOG, {"not-in-catalog": value}) == []


def test_falsy_but_present_values_are_kept() -> None:
	records = normalize_observations(CATALOG, {"t-temp": 0, "t-ok": False})
	assert [(r.name, r.value) for r in records] == [("Temperature", 0), ("Passed", False)]


def test_accepts_template_objects() -> None:
	catalog = [ObservationTemplate(id="a", name="Crack length", kind="numeric")]
	(record,) = normalize_observations(catalog, {"a": 1.25, "b": 3})
	assert record.kind is ObservationKind.NUMERIC
	assert record.value == 1.25


def test_values_of_the_wrong_kind_are_dropped() -> None:
	raw = {"t-temp": "hot", "t-ok": "maybe", "t-note": ["a", "b"]}
	assert normalize_observations(CATALOG, raw) == []
	assert inadmissible_entries(CATALOG, raw) == ["t-temp", "t-ok", "t-note"]


@pytest.mark.parametrize("value,expected", [(42, "42"), (3.5, "3.5"), (True, "true"), (False, "false")])
def test_text_template_accepts_non_string_scalars(value, expected) -> None:
	(record,) = normalize_observations(CATALOG, {"t-note": value})
	assert record == ObservationRecord("Note", ObservationKind.TEXT, expected)


def test_form_text_is_brought_to_the_template_kind() -> None:
	raw = {"t-temp": "42", "t-ok": "true", "t-note": "ok"}
	records = normalize_observations(CATALOG, raw)
	assert [(r.name, r.value) for r in records] == [("Temperature", 42), ("Passed", True), ("Note", "ok")]
	assert inadmissible_entries(CATALOG, raw) == []


@pytest.mark.parametrize(
	"kind,value,expected",
	[
		("numeric", "42", 42),
		("numeric", " 3.5 ", 3.5),
		("numeric", "nan", "nan"),
		("numeric", "hot", "hot"),
		("numeric", 7, 7),
		("boolean", "true", True),
		("boolean", "No", False),
		("boolean", "maybe", "maybe"),
		("string", "42", "42"),
		("numeric", "", ""),
	],
)
def test_coerce_raw_value(kind, value, expected) -> None:
	assert coerce_raw_value(kind, value) == expected
	assert type(coerce_raw_value(kind, value)) is type(expected)


def test_whitespace_numeric_text_counts_as_blank() -> None:
	raw = {"t-temp": "  ", "t-ok": "yes", "t-note": "", "other": "1"}
	assert inadmissible_entries(CATALOG, raw) == []
	records = normalize_observations(CATALOG, raw)
	assert [(r.name, r.value) for r in records] == [("Passed", True)]


def test_record_rejects_mismatched_kind() -> None:
	with pytest.raises(ValueError):
		ObservationRecord("Passed", ObservationKind.BOOLEAN, 1)
	with pytest.raises(ValueError):
		ObservationRecord("Temperature", ObservationKind.NUMERIC, True)
	with pytest.raises(ValueError):
		ObservationRecord("Temperature", ObservationKind.NUMERIC, float("inf"))
	with pytest.raises(ValueError):
		ObservationRecord("", ObservationKind.TEXT, "x")


@pytest.mark.parametrize(
	"kind,value,expected",
	[
		("boolean", "yes", True),
		("boolean", 1, None),
		("numeric", "1e3", 1000.0),
		("numeric", True, None),
		("string", {"nested": 1}, None),
		("free-text", 7, "7"),
	],
)
def test_admissible_value(kind, value, expected) -> None:
	assert admissible_value(kind, value) == expected
