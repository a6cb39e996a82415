from __future__ import annotations

import dataclasses
import json
from typing import Any, Dict, List, Mapping

import numpy as np
import pandas as pd
from pydantic import BaseModel, TypeAdapter

_MAX_DEPTH = 3
_MAX_KEYS = 12


def _normalize_value(value: Any) -> Any:
    if isinstance(value, pd.DataFrame):
        return value.to_dict(orient="records")
    if isinstance(value, pd.Series):
        return value.tolist()
    if isinstance(value, (pd.Timestamp, pd.Timedelta)):
        return value.isoformat()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (np.integer, np.floating, np.bool_)):
        return value.item()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset)):
        try:
            return sorted(value)
        except TypeError:
            return sorted(value, key=repr)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def sanitize_input(value: Any) -> Any:
    """Deep copy ``value`` into plain JSON data, dropping object identity and behaviour."""

    if value is None:
        return None
    return json.loads(json.dumps(value, ensure_ascii=False, default=_normalize_value))


def format_json(value: Any) -> str:
    return json.dumps(sanitize_input(value), ensure_ascii=False, sort_keys=True)


def describe_shape(value: Any, depth: int = 0) -> str:
    """Best-effort type description of a call input, ``any`` when unknown."""

    if value is None:
        return "null"
    if isinstance(value, (bool, np.bool_)):
        return "boolean"
    if isinstance(value, (int, float, np.integer, np.floating)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, pd.DataFrame):
        columns = ", ".join(f"{col}: {dtype}" for col, dtype in value.dtypes.astype(str).items())
        return f"DataFrame[{columns}]"
    if isinstance(value, pd.Series):
        return f"Series[{value.dtype}]"
    if isinstance(value, np.ndarray):
        return f"ndarray[{value.dtype}, shape={tuple(value.shape)}]"
    if depth >= _MAX_DEPTH:
        return "any"
    if isinstance(value, BaseModel) or (dataclasses.is_dataclass(value) and not isinstance(value, type)):
        return describe_shape(_normalize_value(value), depth)
    if isinstance(value, Mapping):
        return _describe_mapping(value, depth)
    if isinstance(value, (list, tuple)):
        if not value:
            return "list[any]"
        return f"list[{describe_shape(value[0], depth + 1)}]"
    return "any"


def _describe_mapping(value: Mapping[Any, Any], depth: int) -> str:
    keys = sorted(value.keys(), key=str)
    parts: List[str] = []
    for key in keys[:_MAX_KEYS]:
        parts.append(f"{key}: {describe_shape(value[key], depth + 1)}")
    if len(keys) > _MAX_KEYS:
        parts.append("...")
    return "{" + ", ".join(parts) + "}"


def describe_expected_shape(shape: Any) -> str:
    if shape is None:
        return "any"
    if isinstance(shape, str):
        return shape.strip() or "any"
    if isinstance(shape, dict):
        return json.dumps(shape, ensure_ascii=False, sort_keys=True)
    if isinstance(shape, type) and issubclass(shape, BaseModel):
        return json.dumps(shape.model_json_schema(), ensure_ascii=False, sort_keys=True)
    try:
        schema: Dict[str, Any] = TypeAdapter(shape).json_schema()
    except Exception:  # noqa: BLE001
        return getattr(shape, "__name__", None) or "any"
    return json.dumps(schema, ensure_ascii=False, sort_keys=True)
