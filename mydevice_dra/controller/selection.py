"""
Device selection

Picks devices for a batch of claims out of what is still free on a node.
Works on a copy of the available set; the allocation state is never
modified here.
"""

import logging
from typing import Dict, List

from ..crd import AllocationState, ClaimParametersSpec, RequestedDevice, RequestedDevices
from .claims import ClaimAllocation

logger = logging.getLogger(__name__)


def select_potential_devices(state: AllocationState,
                             claim_allocations: List[ClaimAllocation]) -> Dict[str, RequestedDevices]:
    """
    Select devices for every claim in the batch.

    A claim that already has a request on this node keeps it as long as all
    of its devices are still free. Otherwise devices of the requested type
    are taken first-come until the count is reached or the node runs out;
    a short list means the node cannot host the claim.

    Args:
        state: the node's allocation state (read only)
        claim_allocations: claims carrying ClaimParametersSpec parameters

    Returns:
        {claim_uid: RequestedDevices}
    """
    available = state.available()
    selected = {}

    for ca in claim_allocations:
        claim_uid = ca.claim.uid
        params: ClaimParametersSpec = ca.claim_parameters

        existing = state.spec.claim_requests.get(claim_uid)
        if existing is not None:
            uids = existing.uids()
            if all(uid in available for uid in uids):
                logger.debug(f"Reusing pending request for claim {claim_uid}: {uids}")
                for uid in uids:
                    del available[uid]
                selected[claim_uid] = RequestedDevices(spec=params, devices=list(existing.devices))
                continue
            logger.debug(f"Pending request for claim {claim_uid} is stale, reselecting")

        devices = []
        for uid in list(available):
            if len(devices) >= params.count:
                break
            if available[uid].type == params.type:
                devices.append(RequestedDevice(uid=uid))
                del available[uid]

        selected[claim_uid] = RequestedDevices(spec=params, devices=devices)

    return selected


__all__ = ["select_potential_devices"]
