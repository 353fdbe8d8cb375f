"""
CRD Types - MydeviceAllocationState and parameter objects

Wire format follows the custom resource schema (camelCase JSON).
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import (
    API_GROUP_VERSION, CLAIM_PARAMETERS_KIND, CLASS_PARAMETERS_KIND
)
from ..errors import InvalidParametersError, UnsupportedDeviceTypeError, UnsupportedKindError

logger = logging.getLogger(__name__)

# Device types that can be allocated
MYDEVICE_TYPE0 = "type0"
UNKNOWN_DEVICE_TYPE = "unknown"
SUPPORTED_DEVICE_TYPES = (MYDEVICE_TYPE0,)

# Allocation state status
STATUS_READY = "Ready"
STATUS_NOT_READY = "NotReady"

MIN_DEVICE_COUNT = 1
MAX_DEVICE_COUNT = 8


def check_device_type(device_type: str):
    """Raise UnsupportedDeviceTypeError unless device_type is known"""
    if device_type not in SUPPORTED_DEVICE_TYPES:
        raise UnsupportedDeviceTypeError(f"unsupported device type: {device_type}")


# =============================================================================
# Devices
# =============================================================================

@dataclass(frozen=True)
class AllocatableDevice:
    """A device the node offers for allocation"""
    uid: str
    type: str = MYDEVICE_TYPE0
    cdi_device: str = ""

    def to_dict(self) -> dict:
        return {"uid": self.uid, "type": self.type, "cdiDevice": self.cdi_device}

    @classmethod
    def from_dict(cls, data: dict) -> "AllocatableDevice":
        return cls(
            uid=data.get('uid', ''),
            type=data.get('type', UNKNOWN_DEVICE_TYPE),
            cdi_device=data.get('cdiDevice', ''),
        )


@dataclass(frozen=True)
class AllocatedDevice:
    """A device committed to a claim"""
    uid: str
    type: str = MYDEVICE_TYPE0
    cdi_device: str = ""

    def to_dict(self) -> dict:
        return {"uid": self.uid, "type": self.type, "cdiDevice": self.cdi_device}

    @classmethod
    def from_dict(cls, data: dict) -> "AllocatedDevice":
        return cls(
            uid=data.get('uid', ''),
            type=data.get('type', UNKNOWN_DEVICE_TYPE),
            cdi_device=data.get('cdiDevice', ''),
        )


@dataclass(frozen=True)
class RequestedDevice:
    uid: str

    def to_dict(self) -> dict:
        return {"uid": self.uid}

    @classmethod
    def from_dict(cls, data: dict) -> "RequestedDevice":
        return cls(uid=data.get('uid', ''))


# =============================================================================
# Parameters
# =============================================================================

@dataclass(frozen=True)
class ClaimParametersSpec:
    """Spec of MydeviceClaimParameters"""
    count: int = 1
    type: str = MYDEVICE_TYPE0

    def validate(self):
        if not isinstance(self.count, int) or not MIN_DEVICE_COUNT <= self.count <= MAX_DEVICE_COUNT:
            raise InvalidParametersError(
                f"count must be between {MIN_DEVICE_COUNT} and {MAX_DEVICE_COUNT}, got {self.count}")
        if self.type not in SUPPORTED_DEVICE_TYPES:
            raise InvalidParametersError(f"unsupported device type: {self.type}")

    def to_dict(self) -> dict:
        return {"count": self.count, "type": self.type}

    @classmethod
    def from_dict(cls, data: dict) -> "ClaimParametersSpec":
        return cls(count=data.get('count', 1), type=data.get('type') or MYDEVICE_TYPE0)


@dataclass(frozen=True)
class DeviceSelector:
    type: str
    name: str


@dataclass(frozen=True)
class ClassParametersSpec:
    """Spec of MydeviceClassParameters"""
    selectors: tuple = ()

    def to_dict(self) -> dict:
        return {"mydeviceSelector": [{"type": s.type, "name": s.name} for s in self.selectors]}

    @classmethod
    def from_dict(cls, data: dict) -> "ClassParametersSpec":
        return cls(selectors=tuple(
            DeviceSelector(type=s.get('type', ''), name=s.get('name', ''))
            for s in data.get('mydeviceSelector') or []
        ))


def default_claim_parameters() -> ClaimParametersSpec:
    return ClaimParametersSpec(count=1, type=MYDEVICE_TYPE0)


def default_class_parameters() -> ClassParametersSpec:
    return ClassParametersSpec()


# Known parameter kinds (closed set)
PARAMETER_KINDS = {
    CLAIM_PARAMETERS_KIND: ClaimParametersSpec,
    CLASS_PARAMETERS_KIND: ClassParametersSpec,
}


def parse_parameters(kind: str, spec: Optional[dict]):
    """Typed spec of a parameters object; kinds outside PARAMETER_KINDS are rejected"""
    spec_type = PARAMETER_KINDS.get(kind)
    if spec_type is None:
        raise UnsupportedKindError(f"unsupported parameters kind: '{kind}'")
    return spec_type.from_dict(spec or {})


@dataclass(frozen=True)
class ParametersRef:
    """Reference from a claim or class to its parameters object"""
    name: str
    kind: str = ""
    api_group: str = API_GROUP_VERSION

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["ParametersRef"]:
        if not data:
            return None
        return cls(
            name=data.get('name', ''),
            kind=data.get('kind', ''),
            api_group=data.get('apiGroup', ''),
        )

    def to_dict(self) -> dict:
        return {"apiGroup": self.api_group, "kind": self.kind, "name": self.name}


# =============================================================================
# Allocation state spec
# =============================================================================

@dataclass
class RequestedDevices:
    """Request spec plus the devices selected for it"""
    spec: ClaimParametersSpec
    devices: List[RequestedDevice] = field(default_factory=list)

    def uids(self) -> List[str]:
        return [d.uid for d in self.devices]

    def to_dict(self) -> dict:
        return {
            "spec": self.spec.to_dict(),
            "mydevices": [d.to_dict() for d in self.devices],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RequestedDevices":
        return cls(
            spec=ClaimParametersSpec.from_dict(data.get('spec') or {}),
            devices=[RequestedDevice.from_dict(d) for d in data.get('mydevices') or []],
        )


@dataclass
class AllocationStateSpec:
    """Spec of MydeviceAllocationState"""
    allocatable_devices: Dict[str, AllocatableDevice] = field(default_factory=dict)
    claim_requests: Dict[str, RequestedDevices] = field(default_factory=dict)
    claim_allocations: Dict[str, List[AllocatedDevice]] = field(default_factory=dict)

    def deep_copy(self) -> "AllocationStateSpec":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        out = {}
        if self.allocatable_devices:
            out["allocatableMydevice"] = {
                uid: d.to_dict() for uid, d in self.allocatable_devices.items()
            }
        if self.claim_requests:
            out["resourceClaimRequests"] = {
                uid: r.to_dict() for uid, r in self.claim_requests.items()
            }
        if self.claim_allocations:
            out["resourceClaimAllocations"] = {
                uid: [d.to_dict() for d in devices]
                for uid, devices in self.claim_allocations.items()
            }
        return out

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AllocationStateSpec":
        data = data or {}
        return cls(
            allocatable_devices={
                uid: AllocatableDevice.from_dict(d)
                for uid, d in (data.get('allocatableMydevice') or {}).items()
            },
            claim_requests={
                uid: RequestedDevices.from_dict(r)
                for uid, r in (data.get('resourceClaimRequests') or {}).items()
            },
            claim_allocations={
                uid: [AllocatedDevice.from_dict(d) for d in devices or []]
                for uid, devices in (data.get('resourceClaimAllocations') or {}).items()
            },
        )


__all__ = [
    "MYDEVICE_TYPE0", "UNKNOWN_DEVICE_TYPE", "SUPPORTED_DEVICE_TYPES",
    "STATUS_READY", "STATUS_NOT_READY", "MIN_DEVICE_COUNT", "MAX_DEVICE_COUNT",
    "check_device_type", "AllocatableDevice", "AllocatedDevice", "RequestedDevice",
    "ClaimParametersSpec", "DeviceSelector", "ClassParametersSpec",
    "default_claim_parameters", "default_class_parameters", "PARAMETER_KINDS",
    "parse_parameters",
    "ParametersRef", "RequestedDevices", "AllocationStateSpec",
]
