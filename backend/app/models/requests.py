"""API request models."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.validators.models import (
    ExactValueCheck,
    FieldCheck,
    ForbiddenSubstringCheck,
    InvalidFieldCheck,
)


class ValidationRequest(BaseModel):
    """Body of `POST /validate`."""

    model_config = ConfigDict(populate_by_name=True)

    protobuf: Optional[str] = Field(
        default=None,
        description="Fully-qualified message type name; omit to only check JSON well-formedness",
        examples=["MyMessage"],
    )
    payload: Any = Field(
        ...,
        alias="json",
        description="JSON to validate, as escaped JSON text or as a native JSON value",
        examples=['{"key1": "example_value", "key2": 42, "key3": true}'],
    )
    json_escaped: bool = Field(
        default=True,
        description="Treat a string `json` as escaped JSON text",
    )
    field_check: bool = False
    field_name: Optional[str] = None
    field_value_check: Any = Field(default=None, description="Expected value for an equality check")
    forbidden_word: Optional[str] = Field(default=None, description="Text the field must not contain")

    def check(self) -> Optional[FieldCheck]:
        """The requested field check, if any.

        Raises:
            InvalidFieldCheck: field_check is set but the directive is incomplete
        """
        if not self.field_check:
            return None
        if not self.field_name:
            raise InvalidFieldCheck("field_check requires 'field_name'")

        has_value = "field_value_check" in self.model_fields_set
        has_word = self.forbidden_word is not None
        if has_value == has_word:
            raise InvalidFieldCheck(
                "field_check requires exactly one of 'field_value_check' or 'forbidden_word'"
            )
        if has_word:
            return ForbiddenSubstringCheck(text=self.forbidden_word)
        return ExactValueCheck(expected=self.field_value_check)


class LoadDescriptorRequest(BaseModel):
    """Body of `POST /load_descriptor`."""

    file_name: str = Field(..., min_length=1, description="Label for the uploaded descriptor set")
    file_content: str = Field(..., description="Base64-encoded serialized FileDescriptorSet")
