"""
Tests for the pending claim request table and the per-node lock registry.
"""
import threading

from fakes import add_node, device_uids

from mydevice_dra.controller.locks import PerNodeMutex
from mydevice_dra.controller.requests import PerNodeClaimRequests
from mydevice_dra.crd import AllocationState, ClaimParametersSpec, RequestedDevice, RequestedDevices


def request(*uids):
    return RequestedDevices(spec=ClaimParametersSpec(count=len(uids)),
                            devices=[RequestedDevice(uid) for uid in uids])


def test_set_get_remove():
    """Entries are keyed by claim and node; remove forgets every node."""
    pending = PerNodeClaimRequests()
    pending.set("c1", "node-a", request("dev0"))
    pending.set("c1", "node-b", request("dev1"))

    assert pending.exists("c1", "node-a")
    assert pending.get("c1", "node-b").uids() == ["dev1"]
    assert pending.get("c1", "node-c") is None
    assert pending.get("c2", "node-a") is None

    pending.remove("c1")
    assert not pending.exists("c1", "node-a"), "Claim should be gone on every node"
    assert not pending.exists("c1", "node-b")
    assert len(pending) == 0


def test_remove_unknown_claim_is_noop():
    pending = PerNodeClaimRequests()
    pending.remove("missing")
    assert len(pending) == 0


def test_cleanup_node_merges_and_drops(api, state_client):
    """Committed claims are dropped; the others are copied into the state."""
    add_node(api, "node-a", device_uids(4), allocations={
        "done": [{"uid": "dev0", "type": "type0", "cdiDevice": "dev0"}],
    })
    state = AllocationState("node-a", state_client)
    state.get()

    pending = PerNodeClaimRequests()
    pending.set("done", "node-a", request("dev0"))
    pending.set("waiting", "node-a", request("dev1"))
    pending.set("elsewhere", "node-b", request("dev2"))

    pending.cleanup_node(state)

    assert not pending.exists("done", "node-a"), "Committed claim should be dropped"
    assert pending.exists("waiting", "node-a")
    assert state.spec.claim_requests["waiting"].uids() == ["dev1"], "Pending request should be merged"
    assert "elsewhere" not in state.spec.claim_requests, "Other nodes' entries stay out"
    assert "done" not in state.spec.claim_requests


def test_mutex_is_created_lazily_and_reused():
    mutex = PerNodeMutex()
    assert len(mutex) == 0

    lock = mutex.get("node-a")
    assert mutex.get("node-a") is lock, "Same node should map to the same lock"
    assert mutex.get("node-b") is not lock
    assert len(mutex) == 2


def test_mutex_released_on_exception():
    """The node lock is released when the guarded block raises."""
    mutex = PerNodeMutex()
    try:
        with mutex.locked("node-a"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert mutex.get("node-a").acquire(blocking=False), "Lock should be free again"


def test_mutex_serializes_same_node():
    """Two threads never run the critical section of one node together."""
    mutex = PerNodeMutex()
    inside = []
    overlaps = []

    def work():
        for _ in range(200):
            with mutex.locked("node-a"):
                inside.append(1)
                if len(inside) > 1:
                    overlaps.append(1)
                inside.pop()

    threads = [threading.Thread(target=work) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not overlaps, "Critical sections overlapped"
