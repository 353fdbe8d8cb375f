"""
Pending claim requests

Device selections made while filtering nodes, keyed by claim UID and node
name, waiting for the scheduler to bind the claim to one of those nodes:

    {claim_uid: {node_name: RequestedDevices}}
"""

import logging
import threading
from typing import Dict, Optional

from ..crd import AllocationState, RequestedDevices

logger = logging.getLogger(__name__)


class PerNodeClaimRequests:

    def __init__(self):
        self._lock = threading.RLock()
        self._requests: Dict[str, Dict[str, RequestedDevices]] = {}

    def exists(self, claim_uid: str, node: str) -> bool:
        with self._lock:
            return node in self._requests.get(claim_uid, {})

    def get(self, claim_uid: str, node: str) -> Optional[RequestedDevices]:
        with self._lock:
            return self._requests.get(claim_uid, {}).get(node)

    def set(self, claim_uid: str, node: str, devices: RequestedDevices):
        with self._lock:
            self._requests.setdefault(claim_uid, {})[node] = devices

    def remove(self, claim_uid: str):
        """Forget the claim on every node"""
        with self._lock:
            self._requests.pop(claim_uid, None)

    def cleanup_node(self, state: AllocationState):
        """
        Reconcile this node's pending entries with its allocation state.

        Claims already committed on the node are dropped from the table;
        the rest are copied into state.spec.claim_requests (in memory only)
        so that device selection can reuse them.
        """
        with self._lock:
            for claim_uid in list(self._requests):
                request = self._requests[claim_uid].get(state.name)
                if request is None:
                    continue
                if claim_uid in state.spec.claim_allocations:
                    logger.debug(f"Claim {claim_uid} already allocated on {state.name}, "
                                 f"dropping pending request")
                    del self._requests[claim_uid]
                else:
                    state.spec.claim_requests[claim_uid] = request

    def __len__(self):
        with self._lock:
            return len(self._requests)


__all__ = ["PerNodeClaimRequests"]
