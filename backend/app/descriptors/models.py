"""Descriptor models — immutable compiled schemas.

Field kinds form a closed tagged variant (``tag`` discriminator):

    ScalarKind    int32, string, bool, ...
    EnumKind      reference to an EnumDescriptor
    MessageKind   reference to a MessageDescriptor
    RepeatedKind  list of scalar / enum / message elements
    MapKind       scalar key → scalar / enum / message value

Everything here is frozen once built. A DescriptorSet is only ever replaced
wholesale, never mutated.
"""

from collections import Counter
from enum import Enum
from types import MappingProxyType
from typing import Annotated, Iterable, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class ScalarType(str, Enum):
    """Protobuf scalar value types."""

    DOUBLE = "double"
    FLOAT = "float"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"


# Inclusive integer ranges per integral type
INTEGER_RANGES: dict[ScalarType, tuple[int, int]] = {
    ScalarType.INT32: (-(2**31), 2**31 - 1),
    ScalarType.SINT32: (-(2**31), 2**31 - 1),
    ScalarType.SFIXED32: (-(2**31), 2**31 - 1),
    ScalarType.INT64: (-(2**63), 2**63 - 1),
    ScalarType.SINT64: (-(2**63), 2**63 - 1),
    ScalarType.SFIXED64: (-(2**63), 2**63 - 1),
    ScalarType.UINT32: (0, 2**32 - 1),
    ScalarType.FIXED32: (0, 2**32 - 1),
    ScalarType.UINT64: (0, 2**64 - 1),
    ScalarType.FIXED64: (0, 2**64 - 1),
}

FLOATING_TYPES = frozenset({ScalarType.DOUBLE, ScalarType.FLOAT})

MAP_KEY_TYPES = frozenset(INTEGER_RANGES) | {ScalarType.BOOL, ScalarType.STRING}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ScalarKind(_Frozen):
    tag: Literal["scalar"] = "scalar"
    type: ScalarType

    def describe(self) -> str:
        return self.type.value


class EnumKind(_Frozen):
    tag: Literal["enum"] = "enum"
    type_name: str

    def describe(self) -> str:
        return f"enum {self.type_name}"


class MessageKind(_Frozen):
    tag: Literal["message"] = "message"
    type_name: str

    def describe(self) -> str:
        return f"message {self.type_name}"


ElementKind = Annotated[Union[ScalarKind, EnumKind, MessageKind], Field(discriminator="tag")]


class RepeatedKind(_Frozen):
    tag: Literal["repeated"] = "repeated"
    element: ElementKind

    def describe(self) -> str:
        return f"repeated {self.element.describe()}"


class MapKind(_Frozen):
    tag: Literal["map"] = "map"
    key: ScalarKind
    value: ElementKind

    def describe(self) -> str:
        return f"map<{self.key.describe()}, {self.value.describe()}>"


FieldKind = Annotated[
    Union[ScalarKind, EnumKind, MessageKind, RepeatedKind, MapKind],
    Field(discriminator="tag"),
]


class FieldDescriptor(_Frozen):
    """A single declared field of a message."""

    name: str
    number: int
    kind: FieldKind
    optional: bool = False  # explicit presence (proto3 `optional` / proto2)


class MessageDescriptor(_Frozen):
    """Compiled message type: fully-qualified name plus ordered fields."""

    full_name: str
    fields: tuple[FieldDescriptor, ...] = ()

    _by_name: Mapping[str, FieldDescriptor] = PrivateAttr()

    def model_post_init(self, __context) -> None:
        self._by_name = MappingProxyType({f.name: f for f in self.fields})

    def field(self, name: str) -> Optional[FieldDescriptor]:
        return self._by_name.get(name)


class EnumValue(_Frozen):
    name: str
    number: int


class EnumDescriptor(_Frozen):
    full_name: str
    values: tuple[EnumValue, ...] = ()

    _numbers_by_name: Mapping[str, int] = PrivateAttr()
    _names_by_number: Mapping[int, str] = PrivateAttr()

    def model_post_init(self, __context) -> None:
        self._numbers_by_name = MappingProxyType({v.name: v.number for v in self.values})
        # First declared name wins for aliased numbers
        names: dict[int, str] = {}
        for v in self.values:
            names.setdefault(v.number, v.name)
        self._names_by_number = MappingProxyType(names)

    def number_of(self, name: str) -> Optional[int]:
        return self._numbers_by_name.get(name)

    def name_of(self, number: int) -> Optional[str]:
        return self._names_by_number.get(number)


class DescriptorSet:
    """Immutable collection of message and enum schemas keyed by full name."""

    __slots__ = ("_messages", "_enums", "duplicate_names", "fingerprint", "generation", "source")

    def __init__(
        self,
        messages: Iterable[MessageDescriptor] = (),
        enums: Iterable[EnumDescriptor] = (),
        fingerprint: str = "",
        generation: int = 0,
        source: str = "",
    ):
        messages = list(messages)
        enums = list(enums)
        counts = Counter([m.full_name for m in messages] + [e.full_name for e in enums])
        # Recorded rather than raised so the registry can reject with a diagnostic
        self.duplicate_names = tuple(sorted(name for name, n in counts.items() if n > 1))
        self._messages = MappingProxyType({m.full_name: m for m in messages})
        self._enums = MappingProxyType({e.full_name: e for e in enums})
        self.fingerprint = fingerprint
        self.generation = generation
        self.source = source

    @classmethod
    def empty(cls) -> "DescriptorSet":
        return cls()

    @property
    def messages(self) -> Mapping[str, MessageDescriptor]:
        return self._messages

    @property
    def enums(self) -> Mapping[str, EnumDescriptor]:
        return self._enums

    def message(self, type_name: str) -> Optional[MessageDescriptor]:
        return self._messages.get(type_name.lstrip("."))

    def enum(self, type_name: str) -> Optional[EnumDescriptor]:
        return self._enums.get(type_name.lstrip("."))

    def with_generation(self, generation: int) -> "DescriptorSet":
        """Copy of this set stamped with a registry generation number."""
        return DescriptorSet(
            self._messages.values(),
            self._enums.values(),
            fingerprint=self.fingerprint,
            generation=generation,
            source=self.source,
        )

    def __len__(self) -> int:
        return len(self._messages)

    def __repr__(self) -> str:
        return (
            f"DescriptorSet(generation={self.generation}, messages={len(self._messages)}, "
            f"enums={len(self._enums)}, fingerprint={self.fingerprint[:12]!r})"
        )
