from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from pydantic import TypeAdapter, ValidationError

from .errors import ConfigError, ExecutionError

_SCALAR_HINTS = {
    "string": {"type": "string"},
    "str": {"type": "string"},
    "number": {"type": "number"},
    "float": {"type": "number"},
    "integer": {"type": "integer"},
    "int": {"type": "integer"},
    "boolean": {"type": "boolean"},
    "bool": {"type": "boolean"},
    "null": {"type": "null"},
    "none": {"type": "null"},
    "object": {"type": "object"},
    "dict": {"type": "object"},
    "array": {"type": "array"},
    "list": {"type": "array"},
    "any": {},
    "unknown": {},
}
_LIST_HINT_RE = re.compile(r"^(?:list|array)\[(.+)\]$", re.IGNORECASE)


def schema_from_hint(hint: str) -> Dict[str, Any]:
    """Translate a short type hint (``"number"``, ``"string[]"``, ``"list[int]"``) to a JSON schema."""

    text = (hint or "").strip()
    lowered = text.lower()
    if lowered in _SCALAR_HINTS:
        return dict(_SCALAR_HINTS[lowered])
    if text.endswith("[]"):
        return {"type": "array", "items": schema_from_hint(text[:-2])}
    match = _LIST_HINT_RE.match(text)
    if match:
        return {"type": "array", "items": schema_from_hint(match.group(1))}
    raise ValueError(f"Unsupported type hint: {hint!r}")


def infer_schema(value: Any) -> Dict[str, Any]:
    """Build a JSON schema describing a sample value."""

    if value is None:
        return {"type": "null"}
    if isinstance(value, bool):
        return {"type": "boolean"}
    if isinstance(value, int):
        return {"type": "integer"}
    if isinstance(value, float):
        return {"type": "number"}
    if isinstance(value, str):
        return {"type": "string"}
    if isinstance(value, dict):
        return {
            "type": "object",
            "properties": {str(key): infer_schema(item) for key, item in value.items()},
            "required": sorted(str(key) for key in value),
        }
    if isinstance(value, (list, tuple)):
        schema: Dict[str, Any] = {"type": "array"}
        if value:
            schema["items"] = infer_schema(value[0])
        return schema
    return {}


def _json_path(parts: Any) -> str:
    path = "$"
    for part in parts:
        path += f".{part}"
    return path


def _schema_diff(value: Any, schema: Dict[str, Any]) -> List[Dict[str, Any]]:
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(value), key=lambda err: list(err.absolute_path))
    return [{"path": _json_path(err.absolute_path), "message": err.message} for err in errors]


def check_expected_shape(shape: Any) -> None:
    """Raise ``ConfigError`` when ``shape`` cannot be used to validate a result."""

    if shape is None:
        return
    try:
        if isinstance(shape, str):
            schema_from_hint(shape)
        elif isinstance(shape, dict):
            Draft7Validator.check_schema(shape)
        else:
            TypeAdapter(shape)
    except SchemaError as exc:
        raise ConfigError(f"Invalid expected shape schema: {exc.message}") from exc
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"Unsupported expected shape {shape!r}: {exc}") from exc


def _pydantic_diff(value: Any, shape: Any) -> List[Dict[str, Any]]:
    # results arrive as JSON-plain data, so tuples, sets and datetimes are checked in JSON mode
    try:
        TypeAdapter(shape).validate_json(json.dumps(value, ensure_ascii=False), strict=True)
    except ValidationError as exc:
        return [{"path": _json_path(err["loc"]), "message": err["msg"]} for err in exc.errors()]
    return []


def validate_result(value: Any, expected_shape: Any, source: str = "", from_cache: bool = False) -> Any:
    """Check ``value`` against ``expected_shape``; return it unchanged on success."""

    if expected_shape is None:
        return value
    if isinstance(expected_shape, str):
        try:
            schema: Optional[Dict[str, Any]] = schema_from_hint(expected_shape)
        except ValueError as exc:
            raise ExecutionError(str(exc), source, kind="validation", from_cache=from_cache) from exc
        diff = _schema_diff(value, schema)
    elif isinstance(expected_shape, dict):
        diff = _schema_diff(value, expected_shape)
    else:
        diff = _pydantic_diff(value, expected_shape)
    if diff:
        first = diff[0]
        raise ExecutionError(
            f"Result does not match expected shape at {first['path']}: {first['message']}",
            source,
            kind="validation",
            diff=diff,
            from_cache=from_cache,
        )
    return value
