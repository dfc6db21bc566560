"""Descriptor compiler — serialized FileDescriptorSet → DescriptorSet.

`protoc --descriptor_set_out` produces the bytes; this module turns them into
the immutable descriptor model and checks that the result is self-consistent
(no duplicate type names, every referenced message/enum resolvable, valid map
entries).
"""

import hashlib
from typing import Optional

import structlog
from google.protobuf import descriptor_pb2
from google.protobuf.message import DecodeError

from app.descriptors.errors import RegistryRejected
from app.descriptors.models import (
    MAP_KEY_TYPES,
    DescriptorSet,
    EnumDescriptor,
    EnumKind,
    EnumValue,
    FieldDescriptor,
    MapKind,
    MessageDescriptor,
    MessageKind,
    RepeatedKind,
    ScalarKind,
    ScalarType,
)

logger = structlog.get_logger()

FDP = descriptor_pb2.FieldDescriptorProto

_SCALAR_TYPES = {
    FDP.TYPE_DOUBLE: ScalarType.DOUBLE,
    FDP.TYPE_FLOAT: ScalarType.FLOAT,
    FDP.TYPE_INT64: ScalarType.INT64,
    FDP.TYPE_UINT64: ScalarType.UINT64,
    FDP.TYPE_INT32: ScalarType.INT32,
    FDP.TYPE_FIXED64: ScalarType.FIXED64,
    FDP.TYPE_FIXED32: ScalarType.FIXED32,
    FDP.TYPE_BOOL: ScalarType.BOOL,
    FDP.TYPE_STRING: ScalarType.STRING,
    FDP.TYPE_BYTES: ScalarType.BYTES,
    FDP.TYPE_UINT32: ScalarType.UINT32,
    FDP.TYPE_SFIXED32: ScalarType.SFIXED32,
    FDP.TYPE_SFIXED64: ScalarType.SFIXED64,
    FDP.TYPE_SINT32: ScalarType.SINT32,
    FDP.TYPE_SINT64: ScalarType.SINT64,
}


def fingerprint(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def compile_descriptor_set(payload: bytes, source: str = "upload") -> DescriptorSet:
    """Decode a serialized FileDescriptorSet and build a checked DescriptorSet.

    Args:
        payload: Bytes written by `protoc --descriptor_set_out`
        source: Label kept on the set for diagnostics (e.g. the upload file name)

    Raises:
        RegistryRejected: undecodable bytes or an inconsistent schema set
    """
    try:
        fds = descriptor_pb2.FileDescriptorSet.FromString(payload)
    except (DecodeError, ValueError) as e:
        raise RegistryRejected(f"Cannot decode FileDescriptorSet from '{source}'", [str(e)])

    descriptor_set = build_descriptor_set(fds, fingerprint=fingerprint(payload), source=source)

    problems = check_consistency(descriptor_set)
    if problems:
        raise RegistryRejected(f"Descriptor set '{source}' is not self-consistent", problems)

    logger.debug(
        "descriptor_set_compiled",
        source=source,
        files=len(fds.file),
        messages=len(descriptor_set.messages),
        enums=len(descriptor_set.enums),
    )
    return descriptor_set


def build_descriptor_set(
    fds: descriptor_pb2.FileDescriptorSet,
    fingerprint: str = "",
    source: str = "",
) -> DescriptorSet:
    """Flatten every file's (nested) messages and enums into one set.

    Unresolvable references are kept as-is so that `check_consistency` can
    report them alongside any other problem.
    """
    problems: list[str] = []

    # Pass 1: collect every declared message and enum by full name
    message_protos: list[tuple[str, descriptor_pb2.DescriptorProto]] = []
    enum_protos: list[tuple[str, descriptor_pb2.EnumDescriptorProto]] = []
    for file in fds.file:
        prefix = f"{file.package}." if file.package else ""
        stack = [(prefix + m.name, m) for m in reversed(file.message_type)]
        enum_protos.extend((prefix + e.name, e) for e in file.enum_type)
        while stack:
            full_name, proto = stack.pop()
            message_protos.append((full_name, proto))
            enum_protos.extend((f"{full_name}.{e.name}", e) for e in proto.enum_type)
            stack.extend((f"{full_name}.{n.name}", n) for n in reversed(proto.nested_type))

    map_entries = {name: proto for name, proto in message_protos if proto.options.map_entry}
    message_names = {name for name, _ in message_protos}
    enum_names = {name for name, _ in enum_protos}

    # Pass 2: convert fields now that every name is known
    resolver = _Resolver(message_names, enum_names)
    messages = []
    for full_name, proto in message_protos:
        if full_name in map_entries:
            continue
        fields = []
        for field in proto.field:
            kind = _field_kind(field, full_name, resolver, map_entries, problems)
            if kind is None:
                continue
            fields.append(
                FieldDescriptor(
                    name=field.name,
                    number=field.number,
                    kind=kind,
                    optional=field.label != FDP.LABEL_REQUIRED,
                )
            )
        messages.append(MessageDescriptor(full_name=full_name, fields=tuple(fields)))

    enums = [
        EnumDescriptor(
            full_name=name,
            values=tuple(EnumValue(name=v.name, number=v.number) for v in proto.value),
        )
        for name, proto in enum_protos
    ]

    descriptor_set = DescriptorSet(messages, enums, fingerprint=fingerprint, source=source)
    if problems:
        raise RegistryRejected(f"Descriptor set '{source}' contains unsupported fields", problems)
    return descriptor_set


def check_consistency(descriptor_set: DescriptorSet) -> list[str]:
    """Return a list of problems; empty means the set is self-consistent."""
    problems = [f"duplicate type name '{name}'" for name in descriptor_set.duplicate_names]

    for message in descriptor_set.messages.values():
        for field in message.fields:
            where = f"{message.full_name}.{field.name}"
            kind = field.kind
            if isinstance(kind, RepeatedKind):
                targets = [kind.element]
            elif isinstance(kind, MapKind):
                if kind.key.type not in MAP_KEY_TYPES:
                    problems.append(f"{where}: map key type '{kind.key.describe()}' is not allowed")
                targets = [kind.value]
            else:
                targets = [kind]

            for target in targets:
                if isinstance(target, MessageKind) and descriptor_set.message(target.type_name) is None:
                    problems.append(f"{where}: unresolved message type '{target.type_name}'")
                elif isinstance(target, EnumKind) and descriptor_set.enum(target.type_name) is None:
                    problems.append(f"{where}: unresolved enum type '{target.type_name}'")

    return problems


class _Resolver:
    """Resolves protobuf type references to fully-qualified names."""

    def __init__(self, message_names: set[str], enum_names: set[str]):
        self.message_names = message_names
        self.enum_names = enum_names

    def resolve(self, type_name: str, scope: str) -> Optional[str]:
        if type_name.startswith("."):
            name = type_name[1:]
            return name if self._known(name) else None

        # Relative reference: search from the innermost scope outwards
        parts = scope.split(".")
        while parts:
            candidate = ".".join(parts + [type_name])
            if self._known(candidate):
                return candidate
            parts.pop()
        return type_name if self._known(type_name) else None

    def _known(self, name: str) -> bool:
        return name in self.message_names or name in self.enum_names


def _field_kind(field, scope, resolver, map_entries, problems):
    """Build the kind variant for one FieldDescriptorProto (None on problems)."""
    where = f"{scope}.{field.name}"

    if field.HasField("type") and field.type == FDP.TYPE_GROUP:
        problems.append(f"{where}: proto2 groups are not supported")
        return None

    element = _element_kind(field, scope, resolver)
    if element is None:
        problems.append(f"{where}: unresolved type '{field.type_name}'")
        return None

    if field.label != FDP.LABEL_REPEATED:
        return element

    if isinstance(element, MessageKind) and element.type_name in map_entries:
        entry = map_entries[element.type_name]
        by_number = {f.number: f for f in entry.field}
        key_proto, value_proto = by_number.get(1), by_number.get(2)
        if key_proto is None or value_proto is None:
            problems.append(f"{where}: malformed map entry '{element.type_name}'")
            return None
        key = _element_kind(key_proto, element.type_name, resolver)
        value = _element_kind(value_proto, element.type_name, resolver)
        if not isinstance(key, ScalarKind):
            problems.append(f"{where}: map key must be a scalar type")
            return None
        if value is None:
            problems.append(f"{where}: unresolved map value type '{value_proto.type_name}'")
            return None
        return MapKind(key=key, value=value)

    return RepeatedKind(element=element)


def _element_kind(field, scope, resolver):
    has_type = field.HasField("type")
    if has_type and field.type in _SCALAR_TYPES:
        return ScalarKind(type=_SCALAR_TYPES[field.type])

    if not field.type_name:
        return None

    resolved = resolver.resolve(field.type_name, scope)
    if has_type and field.type == FDP.TYPE_ENUM:
        return EnumKind(type_name=resolved or field.type_name.lstrip("."))
    if has_type and field.type == FDP.TYPE_MESSAGE:
        return MessageKind(type_name=resolved or field.type_name.lstrip("."))

    # Type left unset: infer it from what the name resolves to
    if resolved is None:
        return None
    if resolved in resolver.enum_names:
        return EnumKind(type_name=resolved)
    return MessageKind(type_name=resolved)
