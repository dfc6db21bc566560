"""Validation models — error codes, failures, and check outcomes.

Envelope and structural failures are raised and recovered by the request
coordinator. Field-check outcomes are plain values.
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Deterministic error codes for every failure the service reports."""

    # Envelope / parse errors
    INVALID_REQUEST = "INVALID_REQUEST"
    MALFORMED_JSON = "MALFORMED_JSON"
    INVALID_FIELD_CHECK = "INVALID_FIELD_CHECK"

    # Structural errors
    TYPE_NOT_FOUND = "TYPE_NOT_FOUND"
    STRUCTURAL_MISMATCH = "STRUCTURAL_MISMATCH"
    NESTING_TOO_DEEP = "NESTING_TOO_DEEP"

    # Field check errors
    FIELD_NOT_FOUND = "FIELD_NOT_FOUND"
    FIELD_ABSENT = "FIELD_ABSENT"
    FIELD_NOT_STRING = "FIELD_NOT_STRING"
    VALUE_MISMATCH = "VALUE_MISMATCH"
    FORBIDDEN_TEXT_FOUND = "FORBIDDEN_TEXT_FOUND"

    # Descriptor upload
    REGISTRY_REJECTED = "REGISTRY_REJECTED"


# Check failures caused by a wrong check directive rather than by the data
MISCONFIGURATION_CODES = frozenset({ErrorCode.FIELD_NOT_FOUND, ErrorCode.FIELD_NOT_STRING})


class ErrorDetail(BaseModel):
    """A single failure reason as reported to callers."""

    code: ErrorCode
    message: str
    path: Optional[str] = None      # Dotted path of the offending field
    expected: Optional[str] = None  # Declared kind or expected value
    actual: Optional[str] = None    # Observed JSON kind or value
    misconfiguration: bool = False

    class Config:
        use_enum_values = True


# ── Structural errors ──


class ValidationFailure(Exception):
    """Base for failures that end a validation request early."""

    code: ErrorCode = ErrorCode.INVALID_REQUEST

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(code=self.code, message=self.message, path=self.path)


# ── Envelope errors ──


class InvalidRequest(ValidationFailure):
    code = ErrorCode.INVALID_REQUEST


class InvalidFieldCheck(ValidationFailure):
    code = ErrorCode.INVALID_FIELD_CHECK


class MalformedJson(ValidationFailure):
    code = ErrorCode.MALFORMED_JSON


class StructuralError(ValidationFailure):
    """Base for every failure of the structural stage."""

    code = ErrorCode.STRUCTURAL_MISMATCH


class TypeNotFound(StructuralError):
    code = ErrorCode.TYPE_NOT_FOUND

    def __init__(self, type_name: str):
        super().__init__(f"Message type '{type_name}' not found in descriptor set")
        self.type_name = type_name


class StructuralMismatch(StructuralError):
    code = ErrorCode.STRUCTURAL_MISMATCH

    def __init__(self, path: str, expected: str, actual: str, message: Optional[str] = None):
        super().__init__(
            message or f"Field '{path}' expects {expected}, got {actual}",
            path=path,
        )
        self.expected = expected
        self.actual = actual

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(
            code=self.code,
            message=self.message,
            path=self.path,
            expected=self.expected,
            actual=self.actual,
        )


class NestingTooDeep(StructuralError):
    code = ErrorCode.NESTING_TOO_DEEP

    def __init__(self, path: str, limit: int):
        super().__init__(f"Nesting at '{path}' exceeds the maximum depth of {limit}", path=path)
        self.limit = limit


# ── Field checks ──


class ExactValueCheck(BaseModel):
    """Field must equal `expected`, compared by the field's native kind."""

    expected: Any


class ForbiddenSubstringCheck(BaseModel):
    """String field must not contain `text` (case-sensitive)."""

    text: str


FieldCheck = Union[ExactValueCheck, ForbiddenSubstringCheck]


class CheckOutcome(BaseModel):
    """Result of one field check. `reason` is set only when it failed."""

    passed: bool
    field: str
    reason: Optional[ErrorDetail] = None

    @classmethod
    def ok(cls, field: str) -> "CheckOutcome":
        return cls(passed=True, field=field)

    @classmethod
    def fail(
        cls,
        field: str,
        code: ErrorCode,
        message: str,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
    ) -> "CheckOutcome":
        return cls(
            passed=False,
            field=field,
            reason=ErrorDetail(
                code=code,
                message=message,
                path=field,
                expected=expected,
                actual=actual,
                misconfiguration=code in MISCONFIGURATION_CODES,
            ),
        )
