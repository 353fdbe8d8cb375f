"""
Tests for the operation counters exported on /metrics.
"""
import pytest
from fakes import add_node, device_uids, make_claim
from prometheus_client import REGISTRY

from mydevice_dra.controller.claims import ALLOCATION_MODE_IMMEDIATE
from mydevice_dra.crd import ClaimParametersSpec
from mydevice_dra.errors import ConflictError, NoSuitableNodeError, NotReadyError
from mydevice_dra.kubelet_plugin import NodeDriver
from mydevice_dra.kubelet_plugin.discovery import fake_devices
from mydevice_dra.metrics import OUTCOME_SUCCESS, count_outcome, ALLOCATE_REQUESTS
from mydevice_dra.retry import retry_on_conflict


def sample(name, **labels):
    """Current counter value; counters are process-wide so tests compare deltas"""
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_allocate_outcomes(api, driver):
    add_node(api, "node-a", device_uids(1))
    before_ok = sample("mydevice_allocate_requests_total", mode="immediate", outcome=OUTCOME_SUCCESS)
    before_err = sample("mydevice_allocate_requests_total", mode="immediate",
                        outcome="NoSuitableNodeError")

    driver.allocate(make_claim("c1", mode=ALLOCATION_MODE_IMMEDIATE), ClaimParametersSpec(count=1))
    with pytest.raises(NoSuitableNodeError):
        driver.allocate(make_claim("c2", mode=ALLOCATION_MODE_IMMEDIATE), ClaimParametersSpec(count=1))

    assert sample("mydevice_allocate_requests_total", mode="immediate",
                  outcome=OUTCOME_SUCCESS) == before_ok + 1
    assert sample("mydevice_allocate_requests_total", mode="immediate",
                  outcome="NoSuitableNodeError") == before_err + 1


def test_deallocate_counted_only_for_bound_claims(api, driver):
    add_node(api, "node-a", device_uids(2))
    claim = make_claim("c1", mode=ALLOCATION_MODE_IMMEDIATE)
    driver.allocate(claim, ClaimParametersSpec(count=1))
    before = sample("mydevice_deallocate_requests_total", outcome=OUTCOME_SUCCESS)

    driver.deallocate(make_claim("unbound"))
    driver.deallocate(make_claim("c1", allocated_on="node-a"))

    assert sample("mydevice_deallocate_requests_total", outcome=OUTCOME_SUCCESS) == before + 1


def test_prepare_and_unprepare_outcomes(state_client, cdi_registry, no_wait_backoff):
    node_driver = NodeDriver(state_client, "node-a", registry=cdi_registry,
                             discover=lambda: fake_devices(2), backoff=no_wait_backoff)
    before_not_ready = sample("mydevice_prepare_requests_total", outcome="NotReadyError")
    with pytest.raises(NotReadyError):
        node_driver.prepare("c1")
    assert sample("mydevice_prepare_requests_total", outcome="NotReadyError") == before_not_ready + 1

    node_driver.start()
    before = sample("mydevice_unprepare_requests_total", outcome=OUTCOME_SUCCESS)
    node_driver.unprepare("c1")
    assert sample("mydevice_unprepare_requests_total", outcome=OUTCOME_SUCCESS) == before + 1


def test_conflict_retries_counted(no_wait_backoff):
    attempts = []

    def always_conflicting():
        attempts.append(1)
        raise ConflictError("stale resourceVersion")

    retried = sample("mydevice_conflict_retries_total", outcome="retried")
    exhausted = sample("mydevice_conflict_retries_total", outcome="exhausted")

    with pytest.raises(ConflictError):
        retry_on_conflict(always_conflicting, no_wait_backoff, sleep=lambda _: None)

    assert sample("mydevice_conflict_retries_total", outcome="retried") == retried + len(attempts) - 1
    assert sample("mydevice_conflict_retries_total", outcome="exhausted") == exhausted + 1


def test_count_outcome_reraises():
    before = sample("mydevice_allocate_requests_total", mode="test", outcome="ValueError")
    with pytest.raises(ValueError):
        with count_outcome(ALLOCATE_REQUESTS, mode="test"):
            raise ValueError("boom")
    assert sample("mydevice_allocate_requests_total", mode="test", outcome="ValueError") == before + 1
