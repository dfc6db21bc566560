"""DynamicMessage — request-scoped values bound to a MessageDescriptor."""

from typing import Any, Iterator, Optional

from app.descriptors.models import (
    DescriptorSet,
    EnumKind,
    MapKind,
    MessageDescriptor,
    MessageKind,
    RepeatedKind,
    ScalarKind,
    ScalarType,
)


class DynamicMessage:
    """Field values for one message instance, keyed by field name.

    Values are already coerced: ints, floats, bools, str, bytes, enum numbers,
    nested DynamicMessage, lists and dicts of those.
    """

    __slots__ = ("descriptor", "_values")

    def __init__(self, descriptor: MessageDescriptor):
        self.descriptor = descriptor
        self._values: dict[str, Any] = {}

    @property
    def type_name(self) -> str:
        return self.descriptor.full_name

    def set(self, name: str, value: Any) -> None:
        self._values[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def has(self, name: str) -> bool:
        return name in self._values

    def items(self) -> Iterator[tuple[str, Any]]:
        return iter(self._values.items())

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"DynamicMessage({self.type_name}, fields={sorted(self._values)})"

    def to_json(self, descriptors: Optional[DescriptorSet] = None) -> dict:
        """Render set fields back to JSON-compatible values.

        Enum numbers are rendered as names when `descriptors` is given.
        """
        out = {}
        for name, value in self._values.items():
            field = self.descriptor.field(name)
            out[name] = render_value(field.kind, value, descriptors)
        return out


def render_value(kind, value, descriptors=None):
    """JSON-compatible form of one coerced field value."""
    if isinstance(kind, RepeatedKind):
        return [render_value(kind.element, v, descriptors) for v in value]
    if isinstance(kind, MapKind):
        return {str(k).lower() if isinstance(k, bool) else str(k): render_value(kind.value, v, descriptors)
                for k, v in value.items()}
    if isinstance(kind, MessageKind):
        return value.to_json(descriptors)
    if isinstance(kind, EnumKind):
        enum = descriptors.enum(kind.type_name) if descriptors else None
        return (enum.name_of(value) if enum else None) or value
    if isinstance(kind, ScalarKind) and kind.type == ScalarType.BYTES:
        return value.decode("utf-8")
    return value
