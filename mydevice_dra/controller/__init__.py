"""
Controller Module - scheduling-time allocation for Mydevice claims

Callbacks invoked by the claim reconciliation engine:
- get_class_parameters / get_claim_parameters: resolve parameter objects
- unsuitable_nodes: pick devices per candidate node, reject nodes that
  cannot host the whole co-scheduled batch
- allocate: commit a selection to a node (immediate or pending mode)
- deallocate: drop a claim's request and allocation from its node

Every read-modify-write of a node's MydeviceAllocationState happens while
holding that node's entry in PerNodeMutex.
"""

import logging
from typing import Any, List

from ..config import API_GROUP_VERSION, CLAIM_PARAMETERS_KIND, CLASS_PARAMETERS_KIND
from ..crd import (
    AllocationState, AllocationStateClient, ParametersClient,
    ClaimParametersSpec, ClassParametersSpec, RequestedDevices,
    check_device_type, default_claim_parameters, default_class_parameters, parse_parameters,
)
from ..errors import (
    DriverError, NotReadyError, InsufficientResourcesError, NoSuitableNodeError,
    UnsupportedKindError, InvalidParametersError, PendingRequestMissingError,
)
from ..metrics import ALLOCATE_REQUESTS, DEALLOCATE_REQUESTS, count_outcome
from ..rpc import add_json_service
from .claims import (
    ALLOCATION_MODE_IMMEDIATE, AllocationResult, ClaimAllocation,
    ResourceClaim, ResourceClass,
)
from .locks import PerNodeMutex
from .requests import PerNodeClaimRequests
from .selection import select_potential_devices

logger = logging.getLogger(__name__)

SERVICE_NAME = "mydevice.controller.v1alpha.Controller"


class ResourceDriver:
    """
    Mydevice resource driver (controller side)

    Holds the process-wide per-node locks and pending claim requests; all
    persistent state lives in the per-node MydeviceAllocationState objects.
    """

    def __init__(self, state_client: AllocationStateClient,
                 parameters_client: ParametersClient = None):
        self.state_client = state_client
        self.parameters_client = parameters_client
        self.lock = PerNodeMutex()
        self.pending_claim_requests = PerNodeClaimRequests()
        logger.info(f"ResourceDriver initialized (namespace={state_client.namespace})")

    def _new_state(self, node_name: str) -> AllocationState:
        return AllocationState(node_name, self.state_client)

    # =========================================================================
    # Parameters
    # =========================================================================

    def get_class_parameters(self, resource_class: ResourceClass) -> ClassParametersSpec:
        ref = resource_class.parameters_ref
        logger.debug(f"GetClassParameters called for class {resource_class.name}")
        if ref is None:
            return default_class_parameters()

        if ref.api_group != API_GROUP_VERSION:
            raise UnsupportedKindError(
                f"incorrect resource-class API group and version: {ref.api_group}, "
                f"expected: {API_GROUP_VERSION}")
        if ref.kind != CLASS_PARAMETERS_KIND:
            raise UnsupportedKindError(f"unsupported ResourceClass.ParametersRef kind: '{ref.kind}'")

        obj = self.parameters_client.get_class_parameters(ref.name)
        return parse_parameters(ref.kind, obj.get('spec'))

    def get_claim_parameters(self, claim: ResourceClaim, resource_class: ResourceClass = None,
                             class_parameters: Any = None) -> ClaimParametersSpec:
        ref = claim.parameters_ref
        logger.debug(f"GetClaimParameters called for claim {claim.key}")
        if ref is None:
            return default_claim_parameters()

        if ref.api_group != API_GROUP_VERSION:
            raise UnsupportedKindError(
                f"incorrect claim spec parameter API group and version: {ref.api_group}, "
                f"expected: {API_GROUP_VERSION}")
        if ref.kind != CLAIM_PARAMETERS_KIND:
            raise UnsupportedKindError(f"unsupported ResourceClaim.ParametersRef kind: '{ref.kind}'")

        obj = self.parameters_client.get_claim_parameters(claim.namespace, ref.name)
        params = parse_parameters(ref.kind, obj.get('spec'))
        try:
            params.validate()
        except InvalidParametersError as e:
            raise InvalidParametersError(
                f"could not validate MydeviceClaimParameters '{ref.name}' "
                f"in namespace '{claim.namespace}': {e}") from e
        return params

    # =========================================================================
    # Allocate
    # =========================================================================

    def allocate(self, claim: ResourceClaim, claim_parameters: Any,
                 resource_class: ResourceClass = None, class_parameters: Any = None,
                 selected_node: str = "") -> AllocationResult:
        """
        Bind the claim to a node and commit its devices.

        Without selected_node (immediate allocation) the first node that can
        host the claim wins; otherwise the selection made by unsuitable_nodes
        for selected_node is re-validated and committed.
        """
        logger.info(f"Allocate called for claim {claim.key} ({claim.uid}), "
                    f"selected node '{selected_node}'")
        if not isinstance(claim_parameters, ClaimParametersSpec):
            raise UnsupportedKindError(
                f"unknown claim parameters type: {type(claim_parameters).__name__}")

        if not selected_node:
            with count_outcome(ALLOCATE_REQUESTS, mode="immediate"):
                return self._allocate_immediate_claim(
                    claim, claim_parameters, resource_class, class_parameters)
        with count_outcome(ALLOCATE_REQUESTS, mode="pending"):
            return self._allocate_pending_claim(claim, claim_parameters, selected_node)

    def _allocate_immediate_claim(self, claim: ResourceClaim, claim_parameters: ClaimParametersSpec,
                                  resource_class: ResourceClass,
                                  class_parameters: Any) -> AllocationResult:
        node_names = self._new_state("").list_names()
        ca = ClaimAllocation(
            claim=claim,
            claim_parameters=claim_parameters,
            resource_class=resource_class,
            class_parameters=class_parameters,
        )

        committed_on = self._find_committed_node(claim, node_names)
        if committed_on:
            logger.debug(f"Claim {claim.uid} already allocated on {committed_on}")
            return AllocationResult(node_name=committed_on)

        for node_name in node_names:
            with self.lock.locked(node_name):
                state = self._new_state(node_name)
                try:
                    state.get()
                except DriverError as e:
                    logger.error(f"Error retrieving allocation state for node {node_name}: {e}")
                    continue

                if not state.is_ready():
                    logger.debug(f"Allocation state for node {node_name} is not ready, skipping")
                    continue

                if claim.uid in state.spec.claim_allocations:
                    logger.debug(f"Claim {claim.uid} already allocated on {node_name}")
                    return AllocationResult(node_name=node_name)

                selected = select_potential_devices(state, [ca])[claim.uid]
                if len(selected.devices) != claim_parameters.count:
                    logger.debug(f"Requested {claim_parameters.count} devices, found "
                                 f"{len(selected.devices)}, skipping node {node_name}")
                    continue

                state.spec.claim_requests[claim.uid] = selected
                state.make_claim_allocation(claim.uid)
                state.update(state.spec)

            logger.info(f"Claim {claim.key} allocated on node {node_name}: {selected.uids()}")
            return AllocationResult(node_name=node_name)

        logger.info(f"Could not immediately allocate claim {claim.key}")
        raise NoSuitableNodeError("no suitable node found")

    def _find_committed_node(self, claim: ResourceClaim, node_names: List[str]) -> str:
        """Node already holding the claim's allocation, '' if none does"""
        candidates = list(node_names)
        bound = claim.selected_node()
        if bound:
            candidates = [bound] + [name for name in candidates if name != bound]

        for node_name in candidates:
            state = self._new_state(node_name)
            try:
                state.get()
            except DriverError as e:
                logger.debug(f"Skipping node {node_name} while looking up claim {claim.uid}: {e}")
                continue
            if claim.uid in state.spec.claim_allocations:
                return node_name
        return ""

    def _allocate_pending_claim(self, claim: ResourceClaim, claim_parameters: ClaimParametersSpec,
                                node_name: str) -> AllocationResult:
        with self.lock.locked(node_name):
            state = self._new_state(node_name)
            state.get()

            if not state.is_ready():
                raise NotReadyError(f"MydeviceAllocationState of node {node_name} "
                                    f"is {state.status or 'unset'}")

            if claim.uid in state.spec.claim_allocations:
                logger.debug(f"Claim {claim.uid} already allocated on {node_name}")
                return AllocationResult(node_name=node_name)

            pending = self.pending_claim_requests.get(claim.uid, node_name)
            if pending is None:
                if claim.allocation_mode != ALLOCATION_MODE_IMMEDIATE:
                    raise PendingRequestMissingError(
                        f"no allocation requests generated for claim '{claim.uid}' "
                        f"on node '{node_name}' yet")
                pending = self._select_for_node(state, claim, claim_parameters)

            if not self._enough_resources_for_pending_claim(state, claim.uid, pending):
                raise InsufficientResourcesError(
                    f"unable to allocate devices on node '{node_name}': insufficient resources")

            state.spec.claim_requests[claim.uid] = pending
            state.make_claim_allocation(claim.uid)
            state.update(state.spec)
            self.pending_claim_requests.remove(claim.uid)

        logger.info(f"Claim {claim.key} allocated on node {node_name}: {pending.uids()}")
        return AllocationResult(node_name=node_name)

    def _select_for_node(self, state: AllocationState, claim: ResourceClaim,
                         claim_parameters: ClaimParametersSpec) -> RequestedDevices:
        ca = ClaimAllocation(claim=claim, claim_parameters=claim_parameters)
        selected = select_potential_devices(state, [ca])[claim.uid]
        if len(selected.devices) != claim_parameters.count:
            raise InsufficientResourcesError(
                f"unable to allocate devices on node '{state.name}': insufficient resources")
        return selected

    def _enough_resources_for_pending_claim(self, state: AllocationState, claim_uid: str,
                                            pending: RequestedDevices) -> bool:
        """All devices of the pending selection are still free on the node"""
        available = state.available()
        for uid in pending.uids():
            if uid not in available:
                logger.warning(f"Device {uid} from pending claim {claim_uid} is not available")
                return False
        return len(pending.devices) == pending.spec.count

    # =========================================================================
    # Deallocate
    # =========================================================================

    def deallocate(self, claim: ResourceClaim):
        logger.info(f"Deallocate called for claim {claim.key} ({claim.uid})")

        node_name = claim.selected_node()
        if not node_name:
            return

        with count_outcome(DEALLOCATE_REQUESTS):
            self._deallocate_from_node(claim, node_name)

    def _deallocate_from_node(self, claim: ResourceClaim, node_name: str):
        with self.lock.locked(node_name):
            state = self._new_state(node_name)
            state.get()

            request = state.spec.claim_requests.get(claim.uid)
            if request is None:
                logger.warning(f"Claim {claim.uid} has no request on node {node_name}, "
                               f"nothing to deallocate")
                return

            check_device_type(request.spec.type)
            self.pending_claim_requests.remove(claim.uid)

            del state.spec.claim_requests[claim.uid]
            state.spec.claim_allocations.pop(claim.uid, None)
            state.update(state.spec)

        logger.info(f"Claim {claim.key} deallocated from node {node_name}")

    # =========================================================================
    # Unsuitable nodes
    # =========================================================================

    def unsuitable_nodes(self, claim_allocations: List[ClaimAllocation], potential_nodes: List[str]):
        """Fill ClaimAllocation.unsuitable_nodes for every claim in the batch"""
        logger.debug(f"UnsuitableNodes called for {len(claim_allocations)} claim(s), "
                     f"{len(potential_nodes)} node(s)")

        for node_name in potential_nodes:
            self._unsuitable_node(claim_allocations, node_name)

        for ca in claim_allocations:
            ca.unsuitable_nodes = list(dict.fromkeys(ca.unsuitable_nodes))

    def _unsuitable_node(self, all_cas: List[ClaimAllocation], node_name: str):
        with self.lock.locked(node_name):
            state = self._new_state(node_name)
            try:
                state.get()
            except DriverError as e:
                logger.debug(f"Could not get allocation state for node {node_name}: {e}")
                state = None

            if state is None or not state.is_ready():
                logger.debug(f"Node {node_name} has no ready allocation state, unsuitable")
                for ca in all_cas:
                    ca.unsuitable_nodes.append(node_name)
                return

            mydevice_cas = []
            for ca in all_cas:
                if isinstance(ca.claim_parameters, ClaimParametersSpec):
                    mydevice_cas.append(ca)
                else:
                    logger.warning(f"Unsupported claim parameters type "
                                   f"{type(ca.claim_parameters).__name__}")

            self._unsuitable_mydevice_node(state, mydevice_cas, all_cas)

    def _unsuitable_mydevice_node(self, state: AllocationState,
                                  mydevice_cas: List[ClaimAllocation],
                                  all_cas: List[ClaimAllocation]):
        self.pending_claim_requests.cleanup_node(state)
        selected = select_potential_devices(state, mydevice_cas)

        for ca in mydevice_cas:
            if len(selected[ca.claim.uid].devices) != ca.claim_parameters.count:
                logger.debug(f"Node {state.name} cannot host claim {ca.claim.uid}, "
                             f"rejecting it for the whole batch")
                for other in all_cas:
                    other.unsuitable_nodes.append(state.name)
                return

        for ca in mydevice_cas:
            claim_uid = ca.claim.uid
            self.pending_claim_requests.set(claim_uid, state.name, selected[claim_uid])
            state.spec.claim_requests[claim_uid] = selected[claim_uid]

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> dict:
        return {
            "namespace": self.state_client.namespace,
            "pending_claims": len(self.pending_claim_requests),
            "known_nodes": len(self.lock),
        }


# =============================================================================
# gRPC Servicer
# =============================================================================

class ControllerServicer:
    """JSON/gRPC front of ResourceDriver for the reconciliation engine"""

    def __init__(self, driver: ResourceDriver):
        self.driver = driver

    def _claim_allocation(self, item: dict) -> ClaimAllocation:
        claim = ResourceClaim.from_dict(item.get('claim', {}))
        resource_class = ResourceClass.from_dict(item.get('class', {}))
        class_parameters = self.driver.get_class_parameters(resource_class)
        claim_parameters = self.driver.get_claim_parameters(claim, resource_class, class_parameters)
        return ClaimAllocation(
            claim=claim,
            claim_parameters=claim_parameters,
            resource_class=resource_class,
            class_parameters=class_parameters,
        )

    def Allocate(self, request: dict) -> dict:
        ca = self._claim_allocation(request)
        result = self.driver.allocate(
            ca.claim, ca.claim_parameters, ca.resource_class, ca.class_parameters,
            request.get('selectedNode', ''),
        )
        return {"allocation": result.to_dict()}

    def Deallocate(self, request: dict) -> dict:
        self.driver.deallocate(ResourceClaim.from_dict(request.get('claim', {})))
        return {}

    def UnsuitableNodes(self, request: dict) -> dict:
        cas = [self._claim_allocation(item) for item in request.get('claims', [])]
        self.driver.unsuitable_nodes(cas, request.get('potentialNodes', []))
        return {"unsuitableNodes": {ca.claim.uid: ca.unsuitable_nodes for ca in cas}}

    def add_to_server(self, server):
        add_json_service(server, SERVICE_NAME, {
            "Allocate": self.Allocate,
            "Deallocate": self.Deallocate,
            "UnsuitableNodes": self.UnsuitableNodes,
        })


__all__ = ["ResourceDriver", "ControllerServicer", "SERVICE_NAME"]
