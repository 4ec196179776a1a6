"""Typed extraction of decoded JSON bodies into dataclasses.

Backs ``Request.deserialize_json(into=...)``. For each field of the target
dataclass the value is looked up by name and converted to the annotated
type.

Supported field types: ``str``, ``int``, ``float``, ``bool``. Any other
annotation receives the decoded value as-is. Missing keys use the field
default; a field with no default and no value raises ``TypeError`` from
the dataclass constructor.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any, TypeVar

T = TypeVar("T")


def extract_dataclass(cls: type[T], data: Any) -> T:
    """Create a *cls* instance from a decoded JSON object.

    Raises:
        TypeError: If *cls* is not a dataclass or *data* is not a JSON object.
    """
    if not isinstance(cls, type) or not dataclasses.is_dataclass(cls):
        msg = f"{cls!r} is not a dataclass type"
        raise TypeError(msg)
    if not isinstance(data, Mapping):
        msg = f"Expected a JSON object for {cls.__name__}, got {type(data).__name__}"
        raise TypeError(msg)

    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if f.name not in data:
            continue
        target_type = f.type
        if isinstance(target_type, str):
            target_type = _resolve_type(target_type)
        kwargs[f.name] = _convert(data[f.name], target_type)

    return cls(**kwargs)


def _convert(value: Any, target_type: Any) -> Any:
    """Convert *value* to *target_type*, returning *value* unchanged on failure."""
    if value is None:
        return None

    if target_type is str:
        return value if isinstance(value, str) else str(value)

    if target_type is int and not isinstance(value, bool):
        try:
            return int(value)
        except (ValueError, TypeError):
            return value

    if target_type is float and not isinstance(value, bool):
        try:
            return float(value)
        except (ValueError, TypeError):
            return value

    if target_type is bool:
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    return value


def _resolve_type(name: str) -> type | str:
    """Resolve builtin type names from string annotations."""
    builtins: dict[str, type] = {
        "str": str,
        "int": int,
        "float": float,
        "bool": bool,
    }
    return builtins.get(name, name)
