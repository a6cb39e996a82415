from datetime import datetime
from typing import List, Tuple

import pytest
from pydantic import BaseModel

from codeloom.services.errors import ConfigError, ExecutionError
from codeloom.services.result_validator import check_expected_shape, infer_schema, schema_from_hint, validate_result


class Point(BaseModel):
    x: int
    y: int


class Event(BaseModel):
    name: str
    at: datetime


def test_no_shape_returns_value():
    value = {"anything": [1, "two"]}
    assert validate_result(value, None) is value


def test_scalar_hints():
    assert validate_result(3.5, "number") == 3.5
    assert validate_result("x", "string") == "x"
    with pytest.raises(ExecutionError) as excinfo:
        validate_result("x", "number", source="result = 'x'")
    err = excinfo.value
    assert err.kind == "validation"
    assert err.source == "result = 'x'"
    assert err.diff[0]["path"] == "$"


def test_list_hint_reports_item_path():
    assert validate_result(["a", "b"], "string[]") == ["a", "b"]
    with pytest.raises(ExecutionError) as excinfo:
        validate_result(["a", 1], "list[string]")
    assert [entry["path"] for entry in excinfo.value.diff] == ["$.1"]


def test_json_schema_nested_path():
    schema = {"type": "object", "properties": {"a": {"type": "integer"}}, "required": ["a"]}
    assert validate_result({"a": 1}, schema) == {"a": 1}
    with pytest.raises(ExecutionError) as excinfo:
        validate_result({"a": "x"}, schema)
    assert excinfo.value.diff[0]["path"] == "$.a"


def test_pydantic_annotations_are_strict():
    assert validate_result([1, 2], List[int]) == [1, 2]
    with pytest.raises(ExecutionError) as excinfo:
        validate_result(["1"], List[int])
    assert excinfo.value.diff[0]["path"] == "$.0"


def test_pydantic_model_mismatch():
    with pytest.raises(ExecutionError) as excinfo:
        validate_result({"x": "a"}, Point)
    paths = {entry["path"] for entry in excinfo.value.diff}
    assert "$.x" in paths


def test_unknown_hint():
    with pytest.raises(ValueError):
        schema_from_hint("widget")
    with pytest.raises(ExecutionError):
        validate_result(1, "widget")


def test_schema_from_hint_nested():
    assert schema_from_hint("list[int]") == {"type": "array", "items": {"type": "integer"}}
    assert schema_from_hint("any") == {}


def test_infer_schema_accepts_its_sample():
    sample = {"name": "a", "scores": [1.5], "ok": True}
    schema = infer_schema(sample)
    assert schema["required"] == ["name", "ok", "scores"]
    assert schema["properties"]["scores"] == {"type": "array", "items": {"type": "number"}}
    assert validate_result(sample, schema) == sample


def test_tuple_annotation_accepts_json_array():
    assert validate_result([1, 2], Tuple[int, int]) == [1, 2]
    with pytest.raises(ExecutionError) as excinfo:
        validate_result([1, 2, 3], Tuple[int, int])
    assert excinfo.value.kind == "validation"


def test_datetime_field_accepts_iso_string():
    value = {"name": "launch", "at": "2024-01-01T00:00:00"}
    assert validate_result(value, Event) == value
    with pytest.raises(ExecutionError) as excinfo:
        validate_result({"name": "launch", "at": "soon"}, Event)
    assert excinfo.value.diff[0]["path"] == "$.at"


@pytest.mark.parametrize("shape", [None, "number", "list[string]", {"type": "integer"}, List[int], Point])
def test_check_expected_shape_accepts_usable_shapes(shape):
    check_expected_shape(shape)


@pytest.mark.parametrize("shape", [{"type": "integr"}, "widget", 42])
def test_check_expected_shape_rejects_unusable_shapes(shape):
    with pytest.raises(ConfigError):
        check_expected_shape(shape)
