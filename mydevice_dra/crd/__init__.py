"""
CRD Module

MydeviceAllocationState (per-node allocation record) and the claim/class
parameter objects, plus the API server client for them.
"""

from .types import (
    MYDEVICE_TYPE0, UNKNOWN_DEVICE_TYPE, SUPPORTED_DEVICE_TYPES,
    STATUS_READY, STATUS_NOT_READY, MIN_DEVICE_COUNT, MAX_DEVICE_COUNT,
    check_device_type, AllocatableDevice, AllocatedDevice, RequestedDevice,
    ClaimParametersSpec, DeviceSelector, ClassParametersSpec,
    default_claim_parameters, default_class_parameters, PARAMETER_KINDS, parse_parameters,
    ParametersRef, RequestedDevices, AllocationStateSpec,
)
from .client import new_custom_objects_api, AllocationStateClient, ParametersClient
from .allocation_state import AllocationState

__all__ = [
    "MYDEVICE_TYPE0", "UNKNOWN_DEVICE_TYPE", "SUPPORTED_DEVICE_TYPES",
    "STATUS_READY", "STATUS_NOT_READY", "MIN_DEVICE_COUNT", "MAX_DEVICE_COUNT",
    "check_device_type", "AllocatableDevice", "AllocatedDevice", "RequestedDevice",
    "ClaimParametersSpec", "DeviceSelector", "ClassParametersSpec",
    "default_claim_parameters", "default_class_parameters", "PARAMETER_KINDS",
    "parse_parameters",
    "ParametersRef", "RequestedDevices", "AllocationStateSpec",
    "new_custom_objects_api", "AllocationStateClient", "ParametersClient",
    "AllocationState",
]
