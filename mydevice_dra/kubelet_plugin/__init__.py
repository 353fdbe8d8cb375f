"""
Kubelet Plugin Module - node side of the Mydevice driver

역할:
- 노드의 디바이스 탐지 및 CDI spec 동기화
- MydeviceAllocationState에 allocatable 디바이스 게시, Ready 전환
- kubelet의 NodePrepareResource / NodeUnprepareResource 처리 (v1alpha1 Node 서비스)
- plugins_registry 소켓으로 kubelet에 플러그인 등록
"""

import logging
import threading
from typing import Callable, Dict, List

from ..config import DRA_PLUGIN_TYPE, DRA_SUPPORTED_VERSIONS, DRIVER_NAME, PLUGIN_SOCKET_PATH
from ..crd import AllocationState, AllocationStateClient, STATUS_READY
from ..errors import DriverError, NotReadyError
from ..metrics import PREPARE_REQUESTS, UNPREPARE_REQUESTS, count_outcome
from ..retry import Backoff, DEFAULT_BACKOFF, retry_on_conflict
from ..rpc import status_code_for
from . import api_pb2, api_pb2_grpc, registration_pb2, registration_pb2_grpc
from .cdi import CDIRegistry
from .discovery import DeviceInfo, enumerate_all_possible_devices
from .node_state import NodeState

logger = logging.getLogger(__name__)


class NodeDriver:
    """
    Mydevice node driver

    Owns this node's MydeviceAllocationState. Every prepare/unprepare
    reloads the record, rebuilds the local allocations from it and writes
    the result back, retrying on resourceVersion conflicts.
    """

    def __init__(self, state_client: AllocationStateClient, node_name: str,
                 registry: CDIRegistry = None,
                 discover: Callable[[], Dict[str, DeviceInfo]] = enumerate_all_possible_devices,
                 backoff: Backoff = DEFAULT_BACKOFF, owner: dict = None):
        self.node_name = node_name
        self.state = AllocationState(node_name, state_client, owner=owner)
        self.registry = registry or CDIRegistry()
        self.discover = discover
        self.backoff = backoff
        self.node_state = None
        self._lock = threading.Lock()

        logger.info(f"NodeDriver initialized for node {node_name}")

    def start(self):
        """Publish detected devices and mark the node Ready"""
        with self._lock:
            self.state.get_or_create()

            detected = self.discover()
            self.node_state = NodeState.create(self.state, self.registry, detected)

            self.state.update(self.node_state.get_updated_spec(self.state.spec))
            self.state.update_status(STATUS_READY)

        logger.info(f"Node {self.node_name} is {STATUS_READY} with "
                    f"{len(self.node_state.allocatable)} allocatable device(s)")

    def is_ready(self) -> bool:
        return self.node_state is not None and self.state.is_ready()

    def _require_started(self):
        if self.node_state is None:
            raise NotReadyError(f"node driver for {self.node_name} not started")

    def _sync_and_persist(self, mutate: Callable[[], None] = None):
        self.state.get()
        self.node_state.sync_allocated_devices_from_spec(self.state.spec)
        if mutate is not None:
            mutate()
        self.state.update(self.node_state.get_updated_spec(self.state.spec))

    # =========================================================================
    # Prepare / Unprepare
    # =========================================================================

    def prepare(self, claim_uid: str) -> List[str]:
        """
        Make the claim's committed devices usable on this node

        Returns:
            Qualified CDI device names of the claim
        """
        logger.info(f"NodePrepareResource called for claim {claim_uid}")

        def attempt():
            self._sync_and_persist()
            return self.node_state.get_allocated_as_cdi_devices(claim_uid)

        with count_outcome(PREPARE_REQUESTS):
            self._require_started()
            with self._lock:
                cdi_devices = retry_on_conflict(attempt, self.backoff)

        logger.info(f"Prepared claim {claim_uid}: {cdi_devices}")
        return cdi_devices

    def unprepare(self, claim_uid: str):
        """Release the claim's devices; a claim without allocation is a no-op"""
        logger.info(f"NodeUnprepareResource called for claim {claim_uid}")

        def free():
            if not self.node_state.free(claim_uid):
                logger.debug(f"Claim {claim_uid} has no allocation on {self.node_name}")

        with count_outcome(UNPREPARE_REQUESTS):
            self._require_started()
            with self._lock:
                retry_on_conflict(lambda: self._sync_and_persist(free), self.backoff)

        logger.info(f"Unprepared claim {claim_uid}")

    # =========================================================================
    # Hot-plug
    # =========================================================================

    def announce(self, devices: Dict[str, DeviceInfo]):
        self._require_started()
        with self._lock:
            self.node_state.announce_new_devices(devices)

    def unannounce(self, device_uid: str):
        self._require_started()
        with self._lock:
            self.node_state.unannounce_device(device_uid)

    def get_status(self) -> dict:
        status = {
            "node": self.node_name,
            "state": self.state.status or "unset",
            "cdi_devices": self.registry.device_names(),
        }
        if self.node_state is not None:
            status.update(self.node_state.get_status())
        return status


# =============================================================================
# gRPC Servicers
# =============================================================================

class NodeServicer(api_pb2_grpc.NodeServicer):
    """kubelet DRA Node service backed by NodeDriver"""

    def __init__(self, driver: NodeDriver):
        self.driver = driver

    def NodePrepareResource(self, request, context):
        try:
            cdi_devices = self.driver.prepare(request.claim_uid)
        except DriverError as e:
            logger.warning(f"NodePrepareResource failed for claim {request.claim_uid}: {e}")
            context.abort(status_code_for(e), f"error preparing resource: {e}")
        return api_pb2.NodePrepareResourceResponse(cdi_devices=cdi_devices)

    def NodeUnprepareResource(self, request, context):
        try:
            self.driver.unprepare(request.claim_uid)
        except DriverError as e:
            logger.warning(f"NodeUnprepareResource failed for claim {request.claim_uid}: {e}")
            context.abort(status_code_for(e), f"error unpreparing resource: {e}")
        return api_pb2.NodeUnprepareResourceResponse()

    def add_to_server(self, server):
        api_pb2_grpc.add_NodeServicer_to_server(self, server)


class RegistrationServicer(registration_pb2_grpc.RegistrationServicer):
    """
    Registration service on the plugin watcher socket

    kubelet finds the socket under its plugins_registry directory, calls
    GetInfo to learn the Node service endpoint, then reports the result
    through NotifyRegistrationStatus.
    """

    def __init__(self, driver_name: str = DRIVER_NAME, endpoint: str = PLUGIN_SOCKET_PATH,
                 versions: List[str] = None):
        self.driver_name = driver_name
        self.endpoint = endpoint
        self.versions = list(versions or DRA_SUPPORTED_VERSIONS)
        self.registered = False

    def GetInfo(self, request, context):
        logger.info(f"kubelet requested plugin info for {self.driver_name}")
        return registration_pb2.PluginInfo(
            type=DRA_PLUGIN_TYPE,
            name=self.driver_name,
            endpoint=self.endpoint,
            supported_versions=self.versions,
        )

    def NotifyRegistrationStatus(self, request, context):
        self.registered = request.plugin_registered
        if request.plugin_registered:
            logger.info(f"Registered with kubelet: {self.driver_name}")
        else:
            logger.error(f"kubelet rejected registration of {self.driver_name}: {request.error}")
        return registration_pb2.RegistrationStatusResponse()

    def add_to_server(self, server):
        registration_pb2_grpc.add_RegistrationServicer_to_server(self, server)


__all__ = ["NodeDriver", "NodeServicer", "RegistrationServicer"]
