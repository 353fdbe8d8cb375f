"""
Error types raised by the controller and the kubelet plugin.

Callers (the reconciliation engine, the kubelet) own retry scheduling;
only ConflictError is retried inside the driver.
"""


class DriverError(Exception):
    """Base class for every driver failure"""


class NotReadyError(DriverError):
    """The node's allocation state has not been published yet"""


class InsufficientResourcesError(DriverError):
    """Not enough free devices to satisfy or re-validate a request"""


class NoSuitableNodeError(DriverError):
    """Immediate allocation found no node with enough free devices"""


class ConflictError(DriverError):
    """Optimistic-concurrency collision on a stored object"""


class NotFoundError(DriverError):
    """Stored object does not exist"""


class StoreError(DriverError):
    """Any other API server failure"""


class InconsistentStateError(DriverError):
    """A committed or requested device is not allocatable on the node"""


class UnsupportedKindError(DriverError):
    """Unknown parameters kind or API group"""


class UnsupportedDeviceTypeError(DriverError):
    """Unknown device type"""


class InvalidParametersError(DriverError):
    """Parameters failed validation"""


class PendingRequestMissingError(InsufficientResourcesError):
    """No selection for the claim on the node: filtering rejected the node or never ran"""


class CDIError(DriverError):
    """CDI spec files could not be read or written"""


class CDIDeviceNotFoundError(CDIError):
    """A device has no entry in the CDI registry"""


__all__ = [
    "DriverError", "NotReadyError", "InsufficientResourcesError",
    "NoSuitableNodeError", "ConflictError", "NotFoundError", "StoreError",
    "InconsistentStateError", "UnsupportedKindError",
    "UnsupportedDeviceTypeError", "InvalidParametersError",
    "PendingRequestMissingError", "CDIError", "CDIDeviceNotFoundError",
]
