"""
Tests for scheduling-time allocation: filtering, immediate and pending
allocation, deallocation.
"""
import threading

import pytest
from fakes import add_node, claim_allocation, committed_uids, device_uids, make_claim, node_spec

from mydevice_dra.controller.claims import ALLOCATION_MODE_IMMEDIATE
from mydevice_dra.crd import AllocationState, ClaimParametersSpec, ClassParametersSpec, STATUS_NOT_READY
from mydevice_dra.errors import (
    InsufficientResourcesError, NoSuitableNodeError, NotReadyError,
    PendingRequestMissingError, UnsupportedKindError,
)


def assert_node_invariants(api, node):
    """No device committed twice; every referenced device is allocatable."""
    spec = node_spec(api, node)
    allocatable = set(spec.get('allocatableMydevice', {}))
    committed = [d['uid'] for devices in spec.get('resourceClaimAllocations', {}).values() for d in devices]
    requested = [d['uid'] for r in spec.get('resourceClaimRequests', {}).values() for d in r['mydevices']]

    assert len(committed) == len(set(committed)), f"Device committed twice on {node}: {committed}"
    assert set(committed) <= allocatable, "Committed devices must be allocatable"
    assert set(requested) <= allocatable, "Requested devices must be allocatable"


def filter_and_allocate(driver, ca, node):
    driver.unsuitable_nodes([ca], [node])
    assert node not in ca.unsuitable_nodes, f"{node} should be suitable"
    return driver.allocate(ca.claim, ca.claim_parameters, selected_node=node)


# =============================================================================
# Immediate allocation
# =============================================================================

def test_immediate_allocation_commits_requested_count(api, state_client, driver):
    """Node with 5 devices, claim for 3: bound to the node with 3 committed."""
    add_node(api, "node-a", device_uids(5))
    claim = make_claim("c1", mode=ALLOCATION_MODE_IMMEDIATE)

    result = driver.allocate(claim, ClaimParametersSpec(count=3))

    assert result.node_name == "node-a"
    assert committed_uids(api, "node-a", "c1") == ["dev0", "dev1", "dev2"]
    state = AllocationState("node-a", state_client)
    state.get()
    assert sorted(state.available()) == ["dev3", "dev4"], "The remaining two should stay available"
    assert_node_invariants(api, "node-a")


def test_immediate_allocation_skips_unusable_nodes(api, driver):
    """NotReady and too-small nodes are passed over."""
    add_node(api, "node-a", device_uids(5), status=STATUS_NOT_READY)
    add_node(api, "node-b", device_uids(1))
    add_node(api, "node-c", device_uids(2))

    result = driver.allocate(make_claim("c1"), ClaimParametersSpec(count=2))

    assert result.node_name == "node-c"
    assert committed_uids(api, "node-a", "c1") == []
    assert committed_uids(api, "node-b", "c1") == []


def test_immediate_allocation_without_capacity(api, driver):
    add_node(api, "node-a", device_uids(1))
    with pytest.raises(NoSuitableNodeError, match="no suitable node found"):
        driver.allocate(make_claim("c1"), ClaimParametersSpec(count=2))


def test_immediate_allocation_is_idempotent(api, driver):
    add_node(api, "node-a", device_uids(4))
    claim = make_claim("c1")

    first = driver.allocate(claim, ClaimParametersSpec(count=2))
    second = driver.allocate(claim, ClaimParametersSpec(count=2))

    assert first == second
    assert committed_uids(api, "node-a", "c1") == ["dev0", "dev1"], "Second call must not select again"


def test_immediate_allocation_keeps_binding_when_earlier_node_recovers(api, driver):
    """A claim committed on node-b stays there once node-a turns Ready."""
    add_node(api, "node-a", device_uids(2), status=STATUS_NOT_READY)
    add_node(api, "node-b", device_uids(2))
    claim = make_claim("c1", mode=ALLOCATION_MODE_IMMEDIATE)

    first = driver.allocate(claim, ClaimParametersSpec(count=1))
    assert first.node_name == "node-b"

    add_node(api, "node-a", device_uids(2))
    second = driver.allocate(claim, ClaimParametersSpec(count=1))

    assert second == first, "Repeated allocate must return the existing binding"
    assert committed_uids(api, "node-a", "c1") == [], "Claim must not be committed on a second node"
    assert committed_uids(api, "node-b", "c1") == ["dev0"]


def test_immediate_allocation_prefers_recorded_node(api, driver):
    """The node named in the claim's allocation is checked first."""
    add_node(api, "node-a", device_uids(2))
    add_node(api, "node-b", device_uids(2), allocations={"c1": [{"uid": "dev1", "type": "type0"}]})
    claim = make_claim("c1", mode=ALLOCATION_MODE_IMMEDIATE, allocated_on="node-b")

    result = driver.allocate(claim, ClaimParametersSpec(count=1))

    assert result.node_name == "node-b"
    assert committed_uids(api, "node-a", "c1") == []


def test_concurrent_allocations_never_double_book(api, driver):
    """Parallel immediate allocations on one node get distinct devices."""
    add_node(api, "node-a", device_uids(5))
    errors = []

    def allocate(uid):
        try:
            driver.allocate(make_claim(uid), ClaimParametersSpec(count=1))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=allocate, args=(f"c{i}",)) for i in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors, f"Allocations failed: {errors}"
    taken = [uid for i in range(5) for uid in committed_uids(api, "node-a", f"c{i}")]
    assert sorted(taken) == device_uids(5), "Every device should be taken exactly once"
    assert_node_invariants(api, "node-a")


def test_allocate_rejects_unknown_parameters(driver):
    with pytest.raises(UnsupportedKindError):
        driver.allocate(make_claim("c1"), ClassParametersSpec())


# =============================================================================
# Filtering and pending allocation
# =============================================================================

def test_pending_allocation_commits_filtered_selection(api, driver):
    add_node(api, "node-a", device_uids(4))
    ca = claim_allocation("c1", 2)

    result = filter_and_allocate(driver, ca, "node-a")

    assert result.node_name == "node-a"
    assert committed_uids(api, "node-a", "c1") == ["dev0", "dev1"]
    assert not driver.pending_claim_requests.exists("c1", "node-a"), "Pending entry should be cleared"
    assert_node_invariants(api, "node-a")


def test_pending_allocation_is_idempotent(api, driver):
    add_node(api, "node-a", device_uids(4))
    ca = claim_allocation("c1", 2)

    first = filter_and_allocate(driver, ca, "node-a")
    replaced = api.replace_calls
    second = driver.allocate(ca.claim, ca.claim_parameters, selected_node="node-a")

    assert first == second
    assert api.replace_calls == replaced, "Re-invocation must not write"
    assert committed_uids(api, "node-a", "c1") == ["dev0", "dev1"]


def test_oversized_claim_is_unsuitable_and_fails_to_allocate(api, driver):
    """Claim for 6 on a 5-device node: filtered out, then allocation fails."""
    add_node(api, "node-a", device_uids(5))
    ca = claim_allocation("c1", 6)

    driver.unsuitable_nodes([ca], ["node-a"])
    assert ca.unsuitable_nodes == ["node-a"]

    with pytest.raises(InsufficientResourcesError):
        driver.allocate(ca.claim, ca.claim_parameters, selected_node="node-a")
    assert committed_uids(api, "node-a", "c1") == []


def test_batch_is_all_or_nothing(api, driver):
    """Two claims, room for one: the node is unsuitable for both."""
    add_node(api, "node-a", device_uids(3))
    add_node(api, "node-b", device_uids(4))
    cas = [claim_allocation("c1", 2), claim_allocation("c2", 2)]

    driver.unsuitable_nodes(cas, ["node-a", "node-b"])

    assert cas[0].unsuitable_nodes == ["node-a"]
    assert cas[1].unsuitable_nodes == ["node-a"]
    assert not driver.pending_claim_requests.exists("c1", "node-a")
    assert driver.pending_claim_requests.exists("c2", "node-b")


def test_missing_or_not_ready_nodes_are_unsuitable(api, driver):
    add_node(api, "node-a", device_uids(4), status=STATUS_NOT_READY)
    cas = [claim_allocation("c1", 1), claim_allocation("c2", 1)]

    driver.unsuitable_nodes(cas, ["node-a", "node-x", "node-a"])

    for ca in cas:
        assert ca.unsuitable_nodes == ["node-a", "node-x"], "Nodes are reported once each"


def test_foreign_parameters_do_not_block_node(api, driver):
    """Claims with other parameter kinds are left out of selection."""
    add_node(api, "node-a", device_uids(1))
    mine = claim_allocation("c1", 1)
    foreign = claim_allocation("c2", 1)
    foreign.claim_parameters = ClassParametersSpec()

    driver.unsuitable_nodes([mine, foreign], ["node-a"])

    assert mine.unsuitable_nodes == []
    assert foreign.unsuitable_nodes == []
    assert not driver.pending_claim_requests.exists("c2", "node-a")


def test_refiltering_reuses_pending_selection(api, driver):
    """A second filtering pass keeps the claim's first selection."""
    add_node(api, "node-a", device_uids(4))
    ca = claim_allocation("c1", 2)

    driver.unsuitable_nodes([ca], ["node-a"])
    first = driver.pending_claim_requests.get("c1", "node-a").uids()
    driver.unsuitable_nodes([ca], ["node-a"])

    assert driver.pending_claim_requests.get("c1", "node-a").uids() == first


def test_pending_selection_taken_meanwhile(api, driver):
    """A device consumed between filtering and binding fails the binding."""
    add_node(api, "node-a", device_uids(3))
    ca = claim_allocation("c1", 2)
    driver.unsuitable_nodes([ca], ["node-a"])

    driver.allocate(make_claim("c2"), ClaimParametersSpec(count=2))

    with pytest.raises(InsufficientResourcesError, match="insufficient resources"):
        driver.allocate(ca.claim, ca.claim_parameters, selected_node="node-a")
    assert_node_invariants(api, "node-a")


def test_pending_allocation_requires_filtering(api, driver):
    add_node(api, "node-a", device_uids(3))
    with pytest.raises(PendingRequestMissingError):
        driver.allocate(make_claim("c1"), ClaimParametersSpec(count=1), selected_node="node-a")


def test_immediate_claim_on_selected_node_without_filtering(api, driver):
    add_node(api, "node-a", device_uids(3))
    claim = make_claim("c1", mode=ALLOCATION_MODE_IMMEDIATE)

    result = driver.allocate(claim, ClaimParametersSpec(count=2), selected_node="node-a")

    assert result.node_name == "node-a"
    assert committed_uids(api, "node-a", "c1") == ["dev0", "dev1"]


def test_pending_allocation_on_not_ready_node(api, driver):
    add_node(api, "node-a", device_uids(3), status=STATUS_NOT_READY)
    with pytest.raises(NotReadyError):
        driver.allocate(make_claim("c1"), ClaimParametersSpec(count=1), selected_node="node-a")


# =============================================================================
# Deallocate
# =============================================================================

def test_deallocate_twice(api, driver):
    """First call frees the devices, the second one is a no-op."""
    add_node(api, "node-a", device_uids(2))
    ca = claim_allocation("c1", 2)
    filter_and_allocate(driver, ca, "node-a")

    claim = make_claim("c1", allocated_on="node-a")
    driver.deallocate(claim)

    spec = node_spec(api, "node-a")
    assert "c1" not in spec.get('resourceClaimAllocations', {})
    assert "c1" not in spec.get('resourceClaimRequests', {})

    replaced = api.replace_calls
    driver.deallocate(claim)
    assert api.replace_calls == replaced, "Clean claim must not be written again"

    result = driver.allocate(make_claim("c2"), ClaimParametersSpec(count=2))
    assert result.node_name == "node-a", "Freed devices should be allocatable again"


def test_deallocate_unbound_claim_is_noop(api, driver):
    add_node(api, "node-a", device_uids(2))
    driver.deallocate(make_claim("c1"))
    assert api.replace_calls == 0


def test_status_counts(api, driver):
    add_node(api, "node-a", device_uids(2))
    driver.unsuitable_nodes([claim_allocation("c1", 1)], ["node-a", "node-b"])

    status = driver.get_status()
    assert status["pending_claims"] == 1
    assert status["known_nodes"] == 2
