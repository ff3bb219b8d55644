"""NAT gateway rules."""

from __future__ import annotations

from typing import Any, List

from ...models.dependency import DependencyEdge, EdgeKind
from ...models.inventory import InventorySnapshot
from ...models.resource import ResourceKind
from .base import BlockingRule


class NatGatewayRule(BlockingRule):
    """A NAT gateway keeps its subnet (and an interface in it) alive."""

    @property
    def rule_id(self) -> str:
        return "nat_gateway_in_subnet"

    @property
    def edge_kinds(self) -> tuple:
        return (EdgeKind.NAT_GATEWAY_IN_SUBNET,)

    def evaluate(self, snapshot: InventorySnapshot, provider: Any) -> List[DependencyEdge]:
        active = self.active_ids(snapshot)
        edges = []
        for nat in snapshot.by_kind(ResourceKind.NAT_GATEWAY, active_only=True):
            subnet = active.get(nat.attributes.get("subnet_id", ""))
            if subnet is not None:
                edges.append(self.edge(nat, subnet, EdgeKind.NAT_GATEWAY_IN_SUBNET))
        return edges
