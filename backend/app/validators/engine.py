"""Validation Engine — binds untyped JSON to a message descriptor.

This is the structural stage of every validation request. It walks the JSON
object against a MessageDescriptor from a registry snapshot and produces a
DynamicMessage, or raises a StructuralError describing the first offending
field.

Usage:
    engine = ValidationEngine()
    message = engine.validate(registry.snapshot(), "shop.v1.Order", payload)

Rules:
    - Absent fields stay unset; `null` counts as absent
    - Unknown JSON keys are ignored
    - Nested messages are visited breadth-first from an explicit queue,
      never by native recursion, and bounded by `max_depth`
"""

import json
import time
from collections import deque
from typing import Any, Optional

import structlog

from app.config import get_settings
from app.descriptors.models import (
    DescriptorSet,
    EnumKind,
    MapKind,
    MessageKind,
    RepeatedKind,
    ScalarKind,
)
from app.validators.coercion import coerce_enum, coerce_scalar, json_kind, parse_map_key
from app.validators.dynamic_message import DynamicMessage
from app.validators.models import (
    MalformedJson,
    NestingTooDeep,
    StructuralMismatch,
    TypeNotFound,
)

logger = structlog.get_logger()

ROOT_PATH = "$"


def _reject_constant(token: str):
    raise ValueError(f"'{token}' is not valid JSON")


def normalize_payload(raw: Any, escaped: bool = True) -> Any:
    """Bring the `json` member of a request to its native JSON value.

    An escaped payload arrives as a JSON string holding JSON text; a native
    payload is used as is. Non-string values are native regardless of the
    `escaped` flag.

    Raises:
        MalformedJson: the escaped text does not parse
    """
    if not escaped or not isinstance(raw, str):
        return raw

    try:
        return json.loads(raw, parse_constant=_reject_constant)
    except (json.JSONDecodeError, ValueError) as e:
        raise MalformedJson(f"Failed to parse JSON: {e}")
    except RecursionError:
        raise MalformedJson("Failed to parse JSON: nesting is too deep")


class ValidationEngine:
    """Structural validation of JSON values against descriptor snapshots.

    Stateless apart from its depth limit, so one instance is shared by all
    concurrent requests.
    """

    def __init__(self, max_depth: Optional[int] = None):
        """Initialize with the configured or an explicit depth limit.

        Args:
            max_depth: Maximum message nesting depth (root message is depth 1)
        """
        self.max_depth = max_depth or get_settings().MAX_NESTING_DEPTH

    def validate(
        self,
        snapshot: DescriptorSet,
        type_name: Optional[str],
        json_value: Any,
    ) -> Optional[DynamicMessage]:
        """Bind `json_value` to the message type `type_name`.

        Args:
            snapshot: Descriptor set acquired at request start
            type_name: Fully-qualified message type; None checks JSON only
            json_value: Parsed JSON payload

        Returns:
            The populated DynamicMessage, or None when no type was given

        Raises:
            TypeNotFound: `type_name` is not in the snapshot
            StructuralMismatch: a present field disagrees with its declared kind
            NestingTooDeep: message nesting exceeds `max_depth`
        """
        if not type_name:
            # Payload already parsed: well-formed JSON is all there is to check
            logger.debug("json_only_validation", kind=json_kind(json_value))
            return None

        start_time = time.perf_counter()

        descriptor = snapshot.message(type_name)
        if descriptor is None:
            raise TypeNotFound(type_name)

        if not isinstance(json_value, dict):
            raise StructuralMismatch(
                ROOT_PATH,
                f"message {descriptor.full_name}",
                json_kind(json_value),
                message=f"Expected a JSON object to populate {descriptor.full_name}, got {json_kind(json_value)}",
            )

        root = DynamicMessage(descriptor)
        queue: deque = deque([(root, json_value, "", 1)])
        visited = 0

        while queue:
            message, obj, prefix, depth = queue.popleft()
            visited += 1
            for key, raw in obj.items():
                field = message.descriptor.field(key)
                if field is None or raw is None:
                    continue
                path = f"{prefix}.{key}" if prefix else key
                message.set(key, self._bind(snapshot, field.kind, raw, path, depth, queue))

        logger.debug(
            "structural_validation_complete",
            message_type=descriptor.full_name,
            messages_visited=visited,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 3),
        )
        return root

    def _bind(self, snapshot, kind, raw, path, depth, queue):
        """Coerce one present field value according to its kind variant."""
        if isinstance(kind, RepeatedKind):
            if not isinstance(raw, list):
                raise StructuralMismatch(path, kind.describe(), json_kind(raw))
            return [
                self._bind_element(snapshot, kind.element, item, f"{path}[{i}]", depth, queue)
                for i, item in enumerate(raw)
            ]

        if isinstance(kind, MapKind):
            if not isinstance(raw, dict):
                raise StructuralMismatch(path, kind.describe(), json_kind(raw))
            entries = {}
            for key, item in raw.items():
                entry_path = f"{path}[{key}]"
                entries[parse_map_key(kind.key, key, entry_path)] = self._bind_element(
                    snapshot, kind.value, item, entry_path, depth, queue
                )
            return entries

        return self._bind_element(snapshot, kind, raw, path, depth, queue)

    def _bind_element(self, snapshot, kind, raw, path, depth, queue):
        if isinstance(kind, ScalarKind):
            return coerce_scalar(kind, raw, path)

        if isinstance(kind, EnumKind):
            return coerce_enum(kind, snapshot.enum(kind.type_name), raw, path)

        if isinstance(kind, MessageKind):
            if not isinstance(raw, dict):
                raise StructuralMismatch(path, kind.describe(), json_kind(raw))
            if depth + 1 > self.max_depth:
                raise NestingTooDeep(path, self.max_depth)
            child = DynamicMessage(snapshot.message(kind.type_name))
            queue.append((child, raw, path, depth + 1))
            return child

        raise TypeError(f"Unsupported field kind at '{path}': {kind!r}")
