"""
Resource claim / class objects handed over by the reconciliation engine

Parsed from Kubernetes-style dicts (metadata / spec / status).
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from ..crd import ParametersRef

ALLOCATION_MODE_IMMEDIATE = "Immediate"
ALLOCATION_MODE_WAIT_FOR_FIRST_CONSUMER = "WaitForFirstConsumer"


@dataclass(frozen=True)
class AllocationResult:
    """Claim bound to a node, surfaced as a node selector"""
    node_name: str

    def to_dict(self) -> dict:
        return {
            "availableOnNodes": {
                "nodeSelectorTerms": [{
                    "matchFields": [{
                        "key": "metadata.name",
                        "operator": "In",
                        "values": [self.node_name],
                    }],
                }],
            },
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["AllocationResult"]:
        """Node name from the first match field, None if absent"""
        try:
            terms = data['availableOnNodes']['nodeSelectorTerms']
            return cls(node_name=terms[0]['matchFields'][0]['values'][0])
        except (KeyError, IndexError, TypeError):
            return None


@dataclass
class ResourceClaim:
    uid: str
    name: str = ""
    namespace: str = "default"
    parameters_ref: Optional[ParametersRef] = None
    allocation_mode: str = ALLOCATION_MODE_WAIT_FOR_FIRST_CONSUMER
    allocation: Optional[AllocationResult] = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def selected_node(self) -> str:
        """Node recorded in the claim's allocation, '' if unallocated"""
        return self.allocation.node_name if self.allocation else ""

    @classmethod
    def from_dict(cls, data: dict) -> "ResourceClaim":
        metadata = data.get('metadata', {})
        spec = data.get('spec', {})
        status = data.get('status', {})
        return cls(
            uid=metadata.get('uid', ''),
            name=metadata.get('name', ''),
            namespace=metadata.get('namespace', 'default'),
            parameters_ref=ParametersRef.from_dict(spec.get('parametersRef')),
            allocation_mode=spec.get('allocationMode') or ALLOCATION_MODE_WAIT_FOR_FIRST_CONSUMER,
            allocation=AllocationResult.from_dict(status.get('allocation')),
        )


@dataclass
class ResourceClass:
    name: str
    parameters_ref: Optional[ParametersRef] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ResourceClass":
        return cls(
            name=data.get('metadata', {}).get('name', ''),
            parameters_ref=ParametersRef.from_dict(data.get('parametersRef')),
        )


@dataclass
class ClaimAllocation:
    """One claim of a co-scheduled batch, with its nodes found unsuitable"""
    claim: ResourceClaim
    claim_parameters: Any = None
    resource_class: Optional[ResourceClass] = None
    class_parameters: Any = None
    unsuitable_nodes: List[str] = field(default_factory=list)


__all__ = [
    "ALLOCATION_MODE_IMMEDIATE", "ALLOCATION_MODE_WAIT_FOR_FIRST_CONSUMER",
    "AllocationResult", "ResourceClaim", "ResourceClass", "ClaimAllocation",
]
