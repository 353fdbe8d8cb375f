"""
MydeviceAllocationState - the per-node allocation record

One object per node, named after the node. The controller writes claim
requests and allocations into it; the kubelet plugin publishes the
allocatable devices, flips the status to Ready and writes back the
allocations it has prepared.
"""

import logging
from typing import Dict, List, Optional

from ..config import API_GROUP_VERSION, ALLOCATION_STATE_KIND
from ..errors import InconsistentStateError, NotFoundError
from .client import AllocationStateClient
from .types import (
    AllocatableDevice, AllocatedDevice, AllocationStateSpec,
    STATUS_NOT_READY, STATUS_READY, SUPPORTED_DEVICE_TYPES,
)

logger = logging.getLogger(__name__)


class AllocationState:
    """
    Local copy of one node's MydeviceAllocationState

    get() / update() / update_status() replace the whole local copy with
    what the API server returned, including the new resourceVersion.
    """

    def __init__(self, name: str, client: AllocationStateClient,
                 owner: Optional[dict] = None):
        self.name = name
        self.client = client
        self.owner = owner
        self.spec = AllocationStateSpec()
        self.status = ""
        self.resource_version = ""

    @property
    def namespace(self) -> str:
        return self.client.namespace

    def is_ready(self) -> bool:
        return self.status == STATUS_READY

    # =========================================================================
    # (De)serialization
    # =========================================================================

    def to_object(self, spec: AllocationStateSpec = None, status: str = None) -> dict:
        metadata = {"name": self.name, "namespace": self.namespace}
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        if self.owner:
            metadata["ownerReferences"] = [self.owner]
        body = {
            "apiVersion": API_GROUP_VERSION,
            "kind": ALLOCATION_STATE_KIND,
            "metadata": metadata,
            "spec": (spec if spec is not None else self.spec).to_dict(),
        }
        status = status if status is not None else self.status
        if status:
            body["status"] = status
        return body

    def _load(self, obj: dict):
        self.spec = AllocationStateSpec.from_dict(obj.get('spec'))
        self.status = obj.get('status') or ""
        self.resource_version = obj.get('metadata', {}).get('resourceVersion', "")

    # =========================================================================
    # Store operations
    # =========================================================================

    def get(self):
        self._load(self.client.get(self.name))

    def create(self):
        self._load(self.client.create(self.to_object(status=self.status or STATUS_NOT_READY)))

    def get_or_create(self):
        try:
            self.get()
        except NotFoundError:
            logger.info(f"MydeviceAllocationState {self.namespace}/{self.name} not found, creating")
            self.create()

    def update(self, spec: AllocationStateSpec):
        self._load(self.client.replace(self.to_object(spec=spec)))

    def update_status(self, status: str):
        self._load(self.client.replace(self.to_object(status=status)))

    def list_names(self) -> List[str]:
        return [item.get('metadata', {}).get('name', '') for item in self.client.list()]

    # =========================================================================
    # Queries
    # =========================================================================

    def available(self) -> Dict[str, AllocatableDevice]:
        """Allocatable devices of a supported type not committed to any claim"""
        allocated = self.allocated_uids()
        available = {}
        for uid, device in self.spec.allocatable_devices.items():
            if device.type not in SUPPORTED_DEVICE_TYPES:
                logger.warning(f"Unsupported device type: {device.type}")
                continue
            if uid in allocated:
                continue
            available[uid] = device
        logger.debug(f"{self.name}: {len(available)} of "
                     f"{len(self.spec.allocatable_devices)} devices available")
        return available

    def allocated_uids(self) -> set:
        return {
            device.uid
            for devices in self.spec.claim_allocations.values()
            for device in devices
        }

    def device_is_allocated(self, device_uid: str) -> bool:
        return device_uid in self.allocated_uids()

    # =========================================================================
    # Mutations (local only, persisted by update())
    # =========================================================================

    def make_claim_allocation(self, claim_uid: str):
        """Promote claim_requests[claim_uid] into claim_allocations[claim_uid]"""
        request = self.spec.claim_requests[claim_uid]
        allocated = []
        for requested in request.devices:
            source = self.spec.allocatable_devices.get(requested.uid)
            if source is None:
                raise InconsistentStateError(
                    f"requested device {requested.uid} for claim {claim_uid} "
                    f"is not allocatable on node {self.name}")
            allocated.append(AllocatedDevice(
                uid=source.uid, type=source.type, cdi_device=source.cdi_device,
            ))
        self.spec.claim_allocations[claim_uid] = allocated


__all__ = ["AllocationState"]
