"""Descriptor registry — atomic replacement and snapshot isolation."""

import concurrent.futures
import threading

import pytest

from app.descriptors import (
    DescriptorSet,
    FieldDescriptor,
    MessageDescriptor,
    MessageKind,
    RegistryRejected,
    ScalarType,
    compile_descriptor_set,
)
from app.services.registry import DescriptorRegistry


def _inconsistent_set() -> DescriptorSet:
    broken = MessageDescriptor(
        full_name="Broken",
        fields=(FieldDescriptor(name="ref", number=1, kind=MessageKind(type_name="Nowhere")),),
    )
    return DescriptorSet([broken], source="broken.desc", fingerprint="deadbeef")


def test_new_registry_is_empty():
    registry = DescriptorRegistry()
    snapshot = registry.snapshot()
    assert snapshot.generation == 0
    assert len(snapshot) == 0
    assert snapshot.message("MyMessage") is None


def test_replace_installs_and_stamps_generation(descriptor_set):
    registry = DescriptorRegistry()
    installed = registry.replace(descriptor_set)

    assert installed.generation == 1
    assert registry.snapshot() is installed
    assert registry.snapshot().message("MyMessage") is not None


def test_rejected_set_leaves_previous_set_installed(registry):
    before = registry.snapshot()

    with pytest.raises(RegistryRejected) as exc_info:
        registry.replace(_inconsistent_set())

    assert registry.snapshot() is before
    assert any("Nowhere" in p for p in exc_info.value.problems)


def test_held_snapshot_is_unaffected_by_replace(registry, alternate_payload):
    held = registry.snapshot()
    registry.replace(compile_descriptor_set(alternate_payload))

    assert held.message("MyMessage").field("key2").kind.type == ScalarType.INT32
    assert registry.snapshot().message("MyMessage").field("key2").kind.type == ScalarType.STRING
    assert registry.snapshot().generation == held.generation + 1


def test_identical_uploads_are_idempotent(sample_payload):
    registry = DescriptorRegistry()
    first = registry.replace(compile_descriptor_set(sample_payload))
    second = registry.replace(compile_descriptor_set(sample_payload))

    assert first.fingerprint == second.fingerprint
    assert set(first.messages) == set(second.messages)
    assert second.generation == first.generation + 1


def test_readers_never_observe_a_mixed_set(sample_payload, alternate_payload):
    """Readers racing a writer only ever see one of the two complete sets."""
    d1 = compile_descriptor_set(sample_payload)
    d2 = compile_descriptor_set(alternate_payload)
    expected = {d1.fingerprint: ScalarType.INT32, d2.fingerprint: ScalarType.STRING}

    registry = DescriptorRegistry(initial=d1)
    stop = threading.Event()

    def writer():
        for i in range(200):
            registry.replace(d2 if i % 2 == 0 else d1)
        stop.set()

    def reader():
        seen = 0
        while not stop.is_set() or seen == 0:
            snapshot = registry.snapshot()
            key2 = snapshot.message("MyMessage").field("key2")
            assert key2.kind.type == expected[snapshot.fingerprint]
            seen += 1
        return seen

    with concurrent.futures.ThreadPoolExecutor(max_workers=5) as pool:
        readers = [pool.submit(reader) for _ in range(4)]
        pool.submit(writer).result()
        counts = [f.result() for f in readers]

    assert all(c > 0 for c in counts)
    assert registry.snapshot().generation == 200


def test_concurrent_replaces_are_serialized(descriptor_set):
    registry = DescriptorRegistry()

    with concurrent.futures.ThreadPoolExecutor(max_workers=8) as pool:
        generations = list(pool.map(lambda _: registry.replace(descriptor_set).generation, range(50)))

    assert sorted(generations) == list(range(1, 51))
    assert registry.snapshot().generation == 50


def test_close_drops_the_set_and_refuses_replacements(registry, descriptor_set):
    held = registry.snapshot()
    registry.close()

    assert registry.closed
    assert registry.snapshot().generation == 0
    assert held.message("MyMessage") is not None
    with pytest.raises(RegistryRejected):
        registry.replace(descriptor_set)


def test_describe(registry):
    summary = registry.describe()
    assert summary["generation"] == 1
    assert summary["source"] == "sample.desc"
    assert "shop.v1.Order" in summary["message_types"]
    assert summary["enum_types"] == ["shop.v1.Status"]
    assert summary["installed_at"] is not None


def test_describe_pairs_each_generation_with_its_own_install_time(descriptor_set):
    registry = DescriptorRegistry()
    installed_at = {}
    stop = threading.Event()

    def writer():
        for _ in range(200):
            registry.replace(descriptor_set)
            # Single writer: nothing else can install between the two calls
            summary = registry.describe()
            installed_at[summary["generation"]] = summary["installed_at"]
        stop.set()

    def reader():
        pairs = []
        while not stop.is_set():
            summary = registry.describe()
            pairs.append((summary["generation"], summary["installed_at"]))
        return pairs

    with concurrent.futures.ThreadPoolExecutor(max_workers=4) as pool:
        readers = [pool.submit(reader) for _ in range(3)]
        pool.submit(writer).result()
        observed = [pair for f in readers for pair in f.result()]

    for generation, stamp in observed:
        if generation == 0:
            assert stamp is None
        else:
            assert stamp == installed_at[generation]
