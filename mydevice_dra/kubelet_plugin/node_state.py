"""
Node State - devices and allocations of this node

Mirrors what the node offers (allocatable) and which claim holds which
device (allocations). Synced from MydeviceAllocationState before every
prepare/unprepare and written back to it afterwards; detected devices are
reconciled with the CDI registry.
"""

import logging
import threading
from typing import Dict, List

from ..config import CDI_VENDOR, CDI_KIND
from ..crd import (
    AllocatableDevice, AllocatedDevice, AllocationState, AllocationStateSpec,
    check_device_type,
)
from ..errors import CDIDeviceNotFoundError, InconsistentStateError, NotFoundError
from .cdi import CDIRegistry, new_spec, generate_name_for_spec
from .discovery import DeviceInfo

logger = logging.getLogger(__name__)

# Container edits applied with every device
DEVICE_ENV = ["ENV_A=value1", "ENV_B=value2"]


# =============================================================================
# CDI sync
# =============================================================================

def add_devices_to_cdi_spec(devices: Dict[str, DeviceInfo], spec: dict):
    for device in devices.values():
        device_nodes = []
        if device.card:
            device_nodes.append({"path": f"/dev/dri/{device.card}", "type": "c"})
        if device.renderd:
            device_nodes.append({"path": f"/dev/dri/{device.renderd}", "type": "c"})
        spec.setdefault('devices', []).append({
            "name": device.cdiname,
            "containerEdits": {
                "deviceNodes": device_nodes,
                "env": list(DEVICE_ENV),
            },
        })


def sync_detected_devices_with_cdi_registry(registry: CDIRegistry, detected: Dict[str, DeviceInfo],
                                            vendor: str = CDI_VENDOR, kind: str = CDI_KIND,
                                            remove_undetected: bool = True):
    """
    Make the vendor's CDI specs describe the detected devices.

    - vendor devices that were not detected are removed
      (unless remove_undetected is False)
    - devices already present keep their spec entry and name
    - the rest is appended to the first vendor spec, or to a new spec
    """
    to_add = dict(detected)
    vendor_specs = registry.vendor_specs(vendor)

    if not vendor_specs:
        logger.info(f"Creating new CDI spec for {len(to_add)} detected device(s)")
        spec = new_spec(kind)
        add_devices_to_cdi_spec(to_add, spec)
        registry.write_spec(spec, generate_name_for_spec(spec))
        return

    writes = []
    for vendor_spec in vendor_specs:
        kept = []
        for spec_device in vendor_spec.devices:
            name = spec_device.get('name', '')
            if name in to_add:
                kept.append(spec_device)
                del to_add[name]
            elif remove_undetected:
                logger.info(f"Removing device {name} from CDI spec {vendor_spec.name}")
            else:
                kept.append(spec_device)
        if len(kept) != len(vendor_spec.devices):
            vendor_spec.devices = kept
            writes.append(vendor_spec)

    if to_add:
        first = vendor_specs[0]
        logger.info(f"Adding {len(to_add)} device(s) to CDI spec {first.name}")
        add_devices_to_cdi_spec(to_add, first.data)
        if first not in writes:
            writes.append(first)

    for vendor_spec in writes:
        registry.write_spec(vendor_spec.data, vendor_spec.name, vendor_spec.directory)


def remove_device_from_cdi_registry(registry: CDIRegistry, name: str, vendor: str = CDI_VENDOR):
    registry.refresh()
    for vendor_spec in registry.vendor_specs(vendor):
        kept = [d for d in vendor_spec.devices if d.get('name') != name]
        if len(kept) < len(vendor_spec.devices):
            logger.info(f"Removing device {name} from CDI spec {vendor_spec.name}")
            data = dict(vendor_spec.data, devices=kept)
            registry.write_spec(data, vendor_spec.name, vendor_spec.directory)


# =============================================================================
# Node state
# =============================================================================

class NodeState:
    """Allocatable devices and per-claim allocations of this node"""

    def __init__(self, cdi: CDIRegistry, allocatable: Dict[str, DeviceInfo]):
        self._lock = threading.RLock()
        self.cdi = cdi
        self.allocatable: Dict[str, DeviceInfo] = dict(allocatable)
        self.allocations: Dict[str, List[DeviceInfo]] = {}

    @classmethod
    def create(cls, state: AllocationState, cdi: CDIRegistry,
               detected: Dict[str, DeviceInfo]) -> "NodeState":
        """Reconcile detected devices with CDI, then load allocations from the state"""
        for uid, device in detected.items():
            logger.info(f"Detected device {uid}: {device}")

        cdi.refresh()
        sync_detected_devices_with_cdi_registry(cdi, detected)
        cdi.refresh()

        node_state = cls(cdi, detected)
        node_state.sync_allocated_devices_from_spec(state.spec)
        logger.info(f"Node state: {len(node_state.allocatable)} allocatable device(s), "
                    f"{len(node_state.allocations)} allocation(s)")
        return node_state

    # =========================================================================
    # Allocations
    # =========================================================================

    def free(self, claim_uid: str) -> bool:
        """Drop the claim's allocation; False if it had none"""
        with self._lock:
            devices = self.allocations.get(claim_uid)
            if devices is None:
                return False
            for device in devices:
                check_device_type(device.device_type)
            del self.allocations[claim_uid]
            return True

    def get_allocated_as_cdi_devices(self, claim_uid: str) -> List[str]:
        """
        Qualified CDI names of the claim's devices

        Raises:
            NotFoundError: the claim has no allocation on this node
            CDIDeviceNotFoundError: a device is missing from the registry
        """
        with self._lock:
            devices = self.allocations.get(claim_uid)
            if not devices:
                raise NotFoundError(f"no devices allocated to claim {claim_uid}")

            names = []
            for device in devices:
                qualified = device.cdi_device()
                if self.cdi.get_device(qualified) is None:
                    raise CDIDeviceNotFoundError(
                        f"device {device.uid} of claim {claim_uid} not found in CDI registry")
                names.append(qualified)
            return names

    # =========================================================================
    # Allocation state sync
    # =========================================================================

    def get_updated_spec(self, spec: AllocationStateSpec) -> AllocationStateSpec:
        with self._lock:
            out = spec.deep_copy()
            self.sync_allocatable_devices_to_spec(out)
            self.sync_allocated_devices_to_spec(out)
            return out

    def sync_allocatable_devices_to_spec(self, spec: AllocationStateSpec):
        spec.allocatable_devices = {
            device.uid: AllocatableDevice(
                uid=device.uid, type=device.device_type, cdi_device=device.cdiname,
            )
            for device in self.allocatable.values()
        }

    def sync_allocated_devices_from_spec(self, spec: AllocationStateSpec):
        """
        Rebuild allocations from the state's committed allocations.

        Raises:
            InconsistentStateError: a committed device is not allocatable here
            UnsupportedDeviceTypeError: a committed device has an unknown type
        """
        logger.debug(f"Syncing {len(spec.claim_allocations)} claim allocation(s) from state")
        allocations = {}
        for claim_uid, devices in spec.claim_allocations.items():
            allocations[claim_uid] = []
            for allocated in devices:
                check_device_type(allocated.type)
                device = self.allocatable.get(allocated.uid)
                if device is None:
                    logger.error(f"Allocated device {allocated.uid} no longer available "
                                 f"for claim {claim_uid}")
                    raise InconsistentStateError(
                        f"could not find allocated device {allocated.uid} "
                        f"for claim allocation {claim_uid}")
                allocations[claim_uid].append(device)
        with self._lock:
            self.allocations = allocations

    def sync_allocated_devices_to_spec(self, spec: AllocationStateSpec):
        spec.claim_allocations = {
            claim_uid: [
                AllocatedDevice(uid=d.uid, type=d.device_type, cdi_device=d.cdiname)
                for d in devices
            ]
            for claim_uid, devices in self.allocations.items()
        }

    # =========================================================================
    # Hot-plug
    # =========================================================================

    def announce_new_devices(self, new_devices: Dict[str, DeviceInfo]):
        """Add devices; the state is updated on the next prepare/unprepare"""
        with self._lock:
            self.cdi.refresh()
            sync_detected_devices_with_cdi_registry(
                self.cdi, new_devices, remove_undetected=False)
            self.allocatable.update(new_devices)
        logger.info(f"Announced {len(new_devices)} new device(s)")

    def unannounce_device(self, device_uid: str):
        """Remove a device; the state is updated on the next prepare/unprepare"""
        with self._lock:
            device = self.allocatable.pop(device_uid, None)
            name = device.cdiname if device else device_uid
            remove_device_from_cdi_registry(self.cdi, name)
        logger.info(f"Unannounced device {device_uid}")

    def get_status(self) -> dict:
        with self._lock:
            return {
                "allocatable_devices": sorted(self.allocatable),
                "allocations": {
                    claim_uid: [d.uid for d in devices]
                    for claim_uid, devices in self.allocations.items()
                },
            }


__all__ = [
    "NodeState", "add_devices_to_cdi_spec", "sync_detected_devices_with_cdi_registry",
    "remove_device_from_cdi_registry",
]
