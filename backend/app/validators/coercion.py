"""Scalar coercion — JSON values → protobuf scalar and enum values.

Every function either returns the coerced value or raises StructuralMismatch
naming the field path, the declared kind, and the JSON kind it received.
"""

import math
import re
from typing import Any

from app.descriptors.models import (
    FLOATING_TYPES,
    INTEGER_RANGES,
    EnumDescriptor,
    EnumKind,
    ScalarKind,
    ScalarType,
)
from app.validators.models import StructuralMismatch

FLOAT32_MAX = 3.4028234663852886e38

_INTEGER_KEY = re.compile(r"-?[0-9]+")


def json_kind(value: Any) -> str:
    """Name of the JSON kind of a parsed value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def coerce_scalar(kind: ScalarKind, value: Any, path: str) -> Any:
    scalar_type = kind.type

    if scalar_type in INTEGER_RANGES:
        return _coerce_integer(kind, value, path)

    if scalar_type in FLOATING_TYPES:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise StructuralMismatch(path, kind.describe(), json_kind(value))
        try:
            number = float(value)
        except OverflowError:
            raise StructuralMismatch(
                path, kind.describe(), json_kind(value),
                message=f"Field '{path}' value is out of range for {kind.describe()}",
            )
        if isinstance(value, int) and int(number) != value:
            # Integer literals must survive the round trip through a double
            raise StructuralMismatch(
                path, kind.describe(), json_kind(value),
                message=f"Field '{path}' value {value} is not exactly representable as {kind.describe()}",
            )
        if not math.isfinite(number) or (scalar_type == ScalarType.FLOAT and abs(number) > FLOAT32_MAX):
            raise StructuralMismatch(
                path, kind.describe(), json_kind(value),
                message=f"Field '{path}' value {value} is out of range for {kind.describe()}",
            )
        return number

    if scalar_type == ScalarType.BOOL:
        if not isinstance(value, bool):
            raise StructuralMismatch(path, kind.describe(), json_kind(value))
        return value

    if scalar_type == ScalarType.STRING:
        if not isinstance(value, str):
            raise StructuralMismatch(path, kind.describe(), json_kind(value))
        return value

    if scalar_type == ScalarType.BYTES:
        if not isinstance(value, str):
            raise StructuralMismatch(path, kind.describe(), json_kind(value))
        try:
            return value.encode("utf-8")
        except UnicodeEncodeError:
            raise StructuralMismatch(
                path, kind.describe(), json_kind(value),
                message=f"Field '{path}' is not valid UTF-8",
            )

    raise StructuralMismatch(path, kind.describe(), json_kind(value))


def _coerce_integer(kind: ScalarKind, value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise StructuralMismatch(path, kind.describe(), json_kind(value))

    if isinstance(value, float):
        # Only integral floats (e.g. 42.0, 1e3) bind without losing precision
        if not value.is_integer():
            raise StructuralMismatch(
                path, kind.describe(), json_kind(value),
                message=f"Field '{path}' expects {kind.describe()}, got non-integral number {value}",
            )
        value = int(value)

    low, high = INTEGER_RANGES[kind.type]
    if not low <= value <= high:
        raise StructuralMismatch(
            path, kind.describe(), json_kind(value),
            message=f"Field '{path}' value {value} is out of range for {kind.describe()}",
        )
    return value


def coerce_enum(kind: EnumKind, enum: EnumDescriptor, value: Any, path: str) -> int:
    """Bind an enum by value name or by declared number."""
    if isinstance(value, str):
        number = enum.number_of(value)
        if number is None:
            raise StructuralMismatch(
                path, kind.describe(), json_kind(value),
                message=f"Invalid enum value '{value}' for field '{path}' ({enum.full_name})",
            )
        return number

    if isinstance(value, int) and not isinstance(value, bool):
        if enum.name_of(value) is None:
            raise StructuralMismatch(
                path, kind.describe(), json_kind(value),
                message=f"Invalid enum number {value} for field '{path}' ({enum.full_name})",
            )
        return value

    raise StructuralMismatch(path, kind.describe(), json_kind(value))


def parse_map_key(kind: ScalarKind, key: str, path: str) -> Any:
    """JSON object keys are always strings; parse them into the map key type."""
    if kind.type == ScalarType.STRING:
        return key

    if kind.type == ScalarType.BOOL:
        if key == "true":
            return True
        if key == "false":
            return False
        raise StructuralMismatch(path, f"map key {kind.describe()}", "string")

    if not _INTEGER_KEY.fullmatch(key):
        raise StructuralMismatch(path, f"map key {kind.describe()}", "string")
    return _coerce_integer(kind, int(key), path)
