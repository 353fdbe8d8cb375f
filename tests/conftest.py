"""
Pytest configuration and shared fixtures for driver tests.
"""
import pytest
from fakes import FakeCustomObjectsApi, TEST_NAMESPACE

from mydevice_dra.controller import ResourceDriver
from mydevice_dra.crd import AllocationStateClient, ParametersClient
from mydevice_dra.kubelet_plugin.cdi import CDIRegistry
from mydevice_dra.retry import Backoff


@pytest.fixture
def api():
    """Empty in-memory API server."""
    return FakeCustomObjectsApi()


@pytest.fixture
def state_client(api):
    return AllocationStateClient(api, TEST_NAMESPACE)


@pytest.fixture
def driver(api, state_client):
    """Controller-side driver backed by the fake API."""
    return ResourceDriver(state_client, ParametersClient(api))


@pytest.fixture
def cdi_registry(tmp_path):
    """CDI registry rooted in a temporary directory."""
    return CDIRegistry([str(tmp_path / "cdi")])


@pytest.fixture
def no_wait_backoff():
    """Three attempts without sleeping."""
    return Backoff(steps=3, duration=0.0, factor=1.0, jitter=0.0)
