"""Dependency edges the declarative manager cannot see.

``EDGE_POLICIES`` is the single table of what the orchestrator does about
each kind of blocking relationship.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, NamedTuple, Optional

from .cleanup_action import CleanupOperation
from .resource import Resource


class EdgeKind(Enum):
    """Known blocking relationships."""

    INTERFACE_ATTACHED_TO_SUBNET = "interface-attached-to-subnet"
    INTERFACE_IN_USE = "interface-in-use"
    VERSIONED_OBJECT_IN_BUCKET = "versioned-object-in-bucket"
    TARGET_REGISTERED_IN_GROUP = "target-registered-in-group"
    NODE_GROUP_IN_CLUSTER = "node-group-in-cluster"
    SERVICE_PROVISIONED_NETWORKING = "service-provisioned-networking"
    NAT_GATEWAY_IN_SUBNET = "nat-gateway-in-subnet"


class EdgePolicy(NamedTuple):
    """How an edge kind is resolved.

    Attributes:
        operation: Cleanup operation that clears the blocker, None if the edge
            is resolved by destroy ordering or needs an operator
        operator_only: True when the edge must be reported, never auto-cleaned
        description: Short text shown in reports
    """

    operation: Optional[CleanupOperation]
    operator_only: bool
    description: str


EDGE_POLICIES: Dict[EdgeKind, EdgePolicy] = {
    EdgeKind.INTERFACE_ATTACHED_TO_SUBNET: EdgePolicy(
        CleanupOperation.DETACH_INTERFACE, False, "orphaned interface left in subnet"
    ),
    EdgeKind.INTERFACE_IN_USE: EdgePolicy(None, True, "interface attached to an active workload"),
    EdgeKind.VERSIONED_OBJECT_IN_BUCKET: EdgePolicy(
        CleanupOperation.PURGE_OBJECT_VERSIONS, False, "object version or delete marker in bucket"
    ),
    EdgeKind.TARGET_REGISTERED_IN_GROUP: EdgePolicy(
        CleanupOperation.DEREGISTER_TARGET, False, "target still registered in target group"
    ),
    EdgeKind.NODE_GROUP_IN_CLUSTER: EdgePolicy(None, False, "node group must be deleted before its cluster"),
    EdgeKind.SERVICE_PROVISIONED_NETWORKING: EdgePolicy(
        CleanupOperation.DELETE_MANAGED_SERVICE, False, "orchestrator service owns provider networking"
    ),
    EdgeKind.NAT_GATEWAY_IN_SUBNET: EdgePolicy(None, False, "NAT gateway must be deleted before its subnet"),
}


@dataclass(frozen=True)
class DependencyEdge:
    """Directed relation: ``blocker`` prevents deletion of ``blocked``.

    Attributes:
        blocker: Resource (or sub-entity such as an object version) in the way
        blocked: Resource that cannot be deleted yet
        kind: Relationship kind
        detail: Free-form qualifier (e.g. "cluster-managed")
    """

    blocker: Resource
    blocked: Resource
    kind: EdgeKind
    detail: str = ""

    @property
    def policy(self) -> EdgePolicy:
        return EDGE_POLICIES[self.kind]

    @property
    def auto_resolvable(self) -> bool:
        return self.policy.operation is not None and not self.policy.operator_only

    def describe(self) -> str:
        text = f"{self.blocker.resource_id} -> {self.blocked.resource_id} ({self.kind.value})"
        if self.detail:
            text += f" [{self.detail}]"
        return text
