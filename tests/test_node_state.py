"""
Tests for the node's local view of devices and allocations.
"""
import pytest

from mydevice_dra.config import CDI_KIND
from mydevice_dra.crd import AllocatedDevice, AllocationStateSpec
from mydevice_dra.errors import (
    CDIDeviceNotFoundError, InconsistentStateError, NotFoundError, UnsupportedDeviceTypeError,
)
from mydevice_dra.kubelet_plugin.discovery import fake_devices
from mydevice_dra.kubelet_plugin.node_state import NodeState, sync_detected_devices_with_cdi_registry


def committed(*uids, device_type="type0"):
    return [AllocatedDevice(uid=uid, type=device_type, cdi_device=uid) for uid in uids]


@pytest.fixture
def node_state(cdi_registry):
    cdi_registry.refresh()
    state = NodeState(cdi_registry, fake_devices(3))
    sync_detected_devices_with_cdi_registry(cdi_registry, state.allocatable)
    return state


def test_updated_spec_publishes_inventory(node_state):
    spec = AllocationStateSpec()
    spec.claim_allocations["c1"] = committed("fakeDevice01")
    node_state.sync_allocated_devices_from_spec(spec)

    updated = node_state.get_updated_spec(AllocationStateSpec())

    assert sorted(updated.allocatable_devices) == ["fakeDevice00", "fakeDevice01", "fakeDevice02"]
    assert updated.allocatable_devices["fakeDevice00"].cdi_device == "fakeDevice00"
    assert [d.uid for d in updated.claim_allocations["c1"]] == ["fakeDevice01"]


def test_updated_spec_leaves_input_alone(node_state):
    spec = AllocationStateSpec()
    node_state.get_updated_spec(spec)
    assert spec.allocatable_devices == {}, "Input spec must not be modified"


def test_sync_from_spec_rebuilds(node_state):
    """Allocations released in the record disappear locally too."""
    spec = AllocationStateSpec()
    spec.claim_allocations["c1"] = committed("fakeDevice00")
    spec.claim_allocations["c2"] = committed("fakeDevice01")
    node_state.sync_allocated_devices_from_spec(spec)

    del spec.claim_allocations["c1"]
    node_state.sync_allocated_devices_from_spec(spec)

    assert sorted(node_state.allocations) == ["c2"]


def test_sync_from_spec_unknown_device(node_state):
    spec = AllocationStateSpec()
    spec.claim_allocations["c1"] = committed("vanished")
    with pytest.raises(InconsistentStateError, match="vanished"):
        node_state.sync_allocated_devices_from_spec(spec)


def test_sync_from_spec_unknown_type(node_state):
    spec = AllocationStateSpec()
    spec.claim_allocations["c1"] = committed("fakeDevice00", device_type="type9")
    with pytest.raises(UnsupportedDeviceTypeError):
        node_state.sync_allocated_devices_from_spec(spec)


def test_cdi_names_for_claim(node_state):
    spec = AllocationStateSpec()
    spec.claim_allocations["c1"] = committed("fakeDevice02", "fakeDevice00")
    node_state.sync_allocated_devices_from_spec(spec)

    assert node_state.get_allocated_as_cdi_devices("c1") == [
        f"{CDI_KIND}=fakeDevice02", f"{CDI_KIND}=fakeDevice00",
    ]


def test_cdi_names_without_allocation(node_state):
    with pytest.raises(NotFoundError):
        node_state.get_allocated_as_cdi_devices("c1")


def test_cdi_names_all_or_nothing(node_state):
    """One device missing from the registry fails the whole lookup."""
    node_state.allocatable.update(fake_devices(4))
    spec = AllocationStateSpec()
    spec.claim_allocations["c1"] = committed("fakeDevice00", "fakeDevice03")
    node_state.sync_allocated_devices_from_spec(spec)

    with pytest.raises(CDIDeviceNotFoundError):
        node_state.get_allocated_as_cdi_devices("c1")


def test_free(node_state):
    spec = AllocationStateSpec()
    spec.claim_allocations["c1"] = committed("fakeDevice00")
    node_state.sync_allocated_devices_from_spec(spec)

    assert node_state.free("c1") is True
    assert node_state.free("c1") is False, "Second free is a no-op"
    assert node_state.allocations == {}


def test_announce_and_unannounce(node_state, cdi_registry):
    extra = {k: v for k, v in fake_devices(5).items() if k in ("fakeDevice03", "fakeDevice04")}
    node_state.announce_new_devices(extra)

    assert "fakeDevice04" in node_state.allocatable
    assert cdi_registry.get_device(f"{CDI_KIND}=fakeDevice04") is not None
    assert cdi_registry.get_device(f"{CDI_KIND}=fakeDevice00") is not None, "Announce must not drop devices"

    node_state.unannounce_device("fakeDevice00")

    assert "fakeDevice00" not in node_state.allocatable
    assert cdi_registry.get_device(f"{CDI_KIND}=fakeDevice00") is None
