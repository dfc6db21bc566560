"""JSON Validator — structural validation against protobuf descriptors plus field checks.

Usage:
    from app.validators import ValidationEngine, PolicyEvaluator

    message = ValidationEngine().validate(snapshot, "pkg.MyMessage", json_value)
    outcome = PolicyEvaluator().evaluate(message, "key2", ExactValueCheck(expected=42), snapshot)
    if not outcome.passed:
        # outcome.reason carries FIELD_ABSENT / VALUE_MISMATCH / ...
"""

from app.validators.dynamic_message import DynamicMessage
from app.validators.engine import ValidationEngine, normalize_payload
from app.validators.models import (
    CheckOutcome,
    ErrorCode,
    ErrorDetail,
    ExactValueCheck,
    ForbiddenSubstringCheck,
    StructuralError,
    StructuralMismatch,
    TypeNotFound,
)
from app.validators.policy import PolicyEvaluator

__all__ = [
    "CheckOutcome",
    "DynamicMessage",
    "ErrorCode",
    "ErrorDetail",
    "ExactValueCheck",
    "ForbiddenSubstringCheck",
    "PolicyEvaluator",
    "StructuralError",
    "StructuralMismatch",
    "TypeNotFound",
    "ValidationEngine",
    "normalize_payload",
]
