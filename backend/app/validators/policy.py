"""Policy Evaluator — optional field checks on a structurally valid message.

Two checks are supported:
    ExactValueCheck           field equals a value, compared by the field's kind
    ForbiddenSubstringCheck   string field does not contain a text

Misconfiguration (FIELD_NOT_FOUND, FIELD_NOT_STRING) is reported separately
from genuine failures (FIELD_ABSENT, VALUE_MISMATCH, FORBIDDEN_TEXT_FOUND).
"""

import json
from typing import Any, Optional

import structlog

from app.descriptors.models import (
    FLOATING_TYPES,
    INTEGER_RANGES,
    DescriptorSet,
    EnumKind,
    MessageKind,
    ScalarKind,
    ScalarType,
)
from app.validators.dynamic_message import DynamicMessage, render_value
from app.validators.models import (
    CheckOutcome,
    ErrorCode,
    ExactValueCheck,
    FieldCheck,
    ForbiddenSubstringCheck,
)

logger = structlog.get_logger()

_NUMERIC_TYPES = frozenset(INTEGER_RANGES) | FLOATING_TYPES


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _show(value: Any) -> str:
    return json.dumps(value, default=str)


class PolicyEvaluator:
    """Evaluates one field check against a validated message."""

    def evaluate(
        self,
        message: DynamicMessage,
        field_name: str,
        check: FieldCheck,
        descriptors: Optional[DescriptorSet] = None,
    ) -> CheckOutcome:
        """Run `check` against the field `field_name` of `message`.

        Args:
            message: Structurally valid message from the engine
            field_name: Field name, or a dotted path through nested message fields
            check: ExactValueCheck or ForbiddenSubstringCheck
            descriptors: Snapshot used to resolve nested types and enum names

        Returns:
            CheckOutcome (never raises for data-related failures)
        """
        parts = field_name.split(".")
        current: Optional[DynamicMessage] = message
        descriptor = message.descriptor
        field = None

        for i, part in enumerate(parts):
            field = descriptor.field(part) if descriptor is not None else None
            if field is None:
                if descriptor is None:
                    return self._absent(field_name)
                return CheckOutcome.fail(
                    field_name,
                    ErrorCode.FIELD_NOT_FOUND,
                    f"Field '{field_name}' is not declared in {descriptor.full_name}",
                )
            if i == len(parts) - 1:
                break
            if not isinstance(field.kind, MessageKind):
                return CheckOutcome.fail(
                    field_name,
                    ErrorCode.FIELD_NOT_FOUND,
                    f"Field '{part}' in '{field_name}' is not a nested message",
                )
            current = current.get(part) if current is not None else None
            if current is not None:
                descriptor = current.descriptor
            else:
                descriptor = descriptors.message(field.kind.type_name) if descriptors else None

        last = parts[-1]

        if isinstance(check, ForbiddenSubstringCheck) and not (
            isinstance(field.kind, ScalarKind) and field.kind.type == ScalarType.STRING
        ):
            return CheckOutcome.fail(
                field_name,
                ErrorCode.FIELD_NOT_STRING,
                f"Forbidden-word check needs a string field, '{field_name}' is {field.kind.describe()}",
                expected="string",
                actual=field.kind.describe(),
            )

        if current is None or not current.has(last):
            return self._absent(field_name)

        value = current.get(last)

        if isinstance(check, ForbiddenSubstringCheck):
            return self._forbidden(field_name, value, check.text)

        if self._matches(field.kind, value, check.expected, descriptors):
            logger.debug("field_check_passed", field=field_name)
            return CheckOutcome.ok(field_name)

        actual = render_value(field.kind, value, descriptors)
        return CheckOutcome.fail(
            field_name,
            ErrorCode.VALUE_MISMATCH,
            f"Field '{field_name}' value mismatch: expected {_show(check.expected)}, found {_show(actual)}",
            expected=_show(check.expected),
            actual=_show(actual),
        )

    def evaluate_json(self, value: Any, field_name: str, check: FieldCheck) -> CheckOutcome:
        """Run `check` against a raw JSON object when no message type was given."""
        current = value
        for part in field_name.split("."):
            if not isinstance(current, dict) or part not in current:
                return self._absent(field_name)
            current = current[part]

        if isinstance(check, ForbiddenSubstringCheck):
            if not isinstance(current, str):
                return CheckOutcome.fail(
                    field_name,
                    ErrorCode.FIELD_NOT_STRING,
                    f"Forbidden-word check needs a string value at '{field_name}'",
                    expected="string",
                    actual=type(current).__name__,
                )
            return self._forbidden(field_name, current, check.text)

        if self._json_equal(current, check.expected):
            return CheckOutcome.ok(field_name)
        return CheckOutcome.fail(
            field_name,
            ErrorCode.VALUE_MISMATCH,
            f"Field '{field_name}' value mismatch: expected {_show(check.expected)}, found {_show(current)}",
            expected=_show(check.expected),
            actual=_show(current),
        )

    # ── Helper Methods ──

    def _absent(self, field_name: str) -> CheckOutcome:
        return CheckOutcome.fail(
            field_name,
            ErrorCode.FIELD_ABSENT,
            f"Field '{field_name}' is not set in the message",
        )

    def _forbidden(self, field_name: str, value: str, text: str) -> CheckOutcome:
        if text in value:
            return CheckOutcome.fail(
                field_name,
                ErrorCode.FORBIDDEN_TEXT_FOUND,
                f"Field '{field_name}' contains forbidden text {_show(text)}",
                expected=f"no occurrence of {_show(text)}",
                actual=_show(value),
            )
        return CheckOutcome.ok(field_name)

    def _matches(self, kind, value, expected, descriptors) -> bool:
        if isinstance(kind, ScalarKind):
            if kind.type in _NUMERIC_TYPES:
                return _is_number(expected) and value == expected
            if kind.type == ScalarType.BOOL:
                return isinstance(expected, bool) and value is expected
            if kind.type == ScalarType.BYTES:
                return isinstance(expected, str) and value == expected.encode("utf-8")
            return isinstance(expected, str) and value == expected

        if isinstance(kind, EnumKind):
            if _is_number(expected):
                return value == expected
            enum = descriptors.enum(kind.type_name) if descriptors else None
            return isinstance(expected, str) and enum is not None and enum.number_of(expected) == value

        return self._json_equal(render_value(kind, value, descriptors), expected)

    def _json_equal(self, actual: Any, expected: Any) -> bool:
        """JSON equality that keeps booleans and numbers apart."""
        if isinstance(actual, bool) or isinstance(expected, bool):
            return isinstance(actual, bool) and isinstance(expected, bool) and actual is expected
        if _is_number(actual) or _is_number(expected):
            return _is_number(actual) and _is_number(expected) and actual == expected
        if isinstance(actual, list) and isinstance(expected, list):
            return len(actual) == len(expected) and all(
                self._json_equal(a, e) for a, e in zip(actual, expected)
            )
        if isinstance(actual, dict) and isinstance(expected, dict):
            return actual.keys() == expected.keys() and all(
                self._json_equal(actual[k], expected[k]) for k in actual
            )
        return actual == expected
