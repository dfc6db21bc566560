"""Compiled protobuf schema descriptors.

Usage:
    from app.descriptors import compile_descriptor_set

    descriptor_set = compile_descriptor_set(fds_bytes, source="schemas.pb")
    registry.replace(descriptor_set)
"""

from app.descriptors.compiler import check_consistency, compile_descriptor_set
from app.descriptors.errors import RegistryRejected
from app.descriptors.models import (
    DescriptorSet,
    EnumDescriptor,
    EnumKind,
    FieldDescriptor,
    MapKind,
    MessageDescriptor,
    MessageKind,
    RepeatedKind,
    ScalarKind,
    ScalarType,
)

__all__ = [
    "check_consistency",
    "compile_descriptor_set",
    "RegistryRejected",
    "DescriptorSet",
    "EnumDescriptor",
    "EnumKind",
    "FieldDescriptor",
    "MapKind",
    "MessageDescriptor",
    "MessageKind",
    "RepeatedKind",
    "ScalarKind",
    "ScalarType",
]
