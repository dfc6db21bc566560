import pytest
from fastapi.testclient import TestClient

from app.descriptors import compile_descriptor_set
from app.main import app
from app.services.registry import DescriptorRegistry
from tests.factories import FDP, build_payload, my_message_file, shop_file


@pytest.fixture()
def sample_payload() -> bytes:
    return build_payload(my_message_file(), shop_file())


@pytest.fixture()
def alternate_payload() -> bytes:
    """Same types, but MyMessage.key2 is a string."""
    return build_payload(my_message_file(key2_type=FDP.TYPE_STRING), shop_file())


@pytest.fixture()
def descriptor_set(sample_payload):
    return compile_descriptor_set(sample_payload, source="sample.desc")


@pytest.fixture()
def registry(descriptor_set):
    registry = DescriptorRegistry()
    registry.replace(descriptor_set)
    return registry


@pytest.fixture()
def client():
    # Entering the context runs the lifespan, giving each test a fresh registry
    with TestClient(app) as c:
        yield c
