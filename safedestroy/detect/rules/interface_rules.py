"""Network interface rules."""

from __future__ import annotations

from typing import Any, List

from ...models.dependency import DependencyEdge, EdgeKind
from ...models.inventory import InventorySnapshot
from ...models.resource import Resource, ResourceKind
from .base import BlockingRule

# Description prefixes of interfaces created by managed services
_MANAGED_PREFIXES = {
    "Amazon EKS": "cluster-managed",
    "aws-K8S": "cluster-managed",
    "ELB ": "load-balancer-managed",
}


def interface_owner(interface: Resource) -> str:
    """Classify who created an interface, from its description."""
    description = interface.attributes.get("description", "") or ""
    for prefix, owner in _MANAGED_PREFIXES.items():
        if description.startswith(prefix):
            return owner
    if interface.attributes.get("interface_type") in ("branch", "trunk"):
        return "cluster-managed"
    return ""


class InterfaceInSubnetRule(BlockingRule):
    """Interfaces left in a subnet block the subnet's deletion.

    An ``available`` interface is orphaned and is cleaned automatically.
    An ``in-use`` one is attached to a live workload and is only reported.
    """

    @property
    def rule_id(self) -> str:
        return "interface_in_subnet"

    @property
    def edge_kinds(self) -> tuple:
        return (EdgeKind.INTERFACE_ATTACHED_TO_SUBNET, EdgeKind.INTERFACE_IN_USE)

    def evaluate(self, snapshot: InventorySnapshot, provider: Any) -> List[DependencyEdge]:
        active = self.active_ids(snapshot)
        edges: List[DependencyEdge] = []

        for interface in snapshot.by_kind(ResourceKind.INTERFACE, active_only=True):
            subnet = active.get(interface.attributes.get("subnet_id", ""))
            if subnet is None:
                continue
            status = interface.attributes.get("status", "unknown")
            owner = interface_owner(interface)
            if status == "available":
                edges.append(self.edge(interface, subnet, EdgeKind.INTERFACE_ATTACHED_TO_SUBNET, owner))
            elif status == "in-use" and not self._released_by_owner(interface, owner, active):
                edges.append(self.edge(interface, subnet, EdgeKind.INTERFACE_IN_USE, owner))

        return edges

    @staticmethod
    def _released_by_owner(interface: Resource, owner: str, active: dict) -> bool:
        """True when deleting a deployment resource releases the interface."""
        if interface.attributes.get("interface_type") == "nat_gateway":
            return True
        if interface.attributes.get("interface_type") == "vpc_endpoint":
            return any(
                interface.resource_id in r.attributes.get("interface_ids", [])
                for r in active.values()
                if r.kind == ResourceKind.VPC_ENDPOINT
            )
        if owner == "load-balancer-managed":
            return True
        return interface.attributes.get("instance_id") in active
