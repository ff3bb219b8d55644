"""Managed cluster rules."""

from __future__ import annotations

from typing import Any, List

from ...models.dependency import DependencyEdge, EdgeKind
from ...models.inventory import InventorySnapshot
from ...models.resource import ResourceKind
from .base import BlockingRule


class NodeGroupRule(BlockingRule):
    """A cluster cannot be deleted while it still has node groups."""

    @property
    def rule_id(self) -> str:
        return "node_group_in_cluster"

    @property
    def edge_kinds(self) -> tuple:
        return (EdgeKind.NODE_GROUP_IN_CLUSTER,)

    def evaluate(self, snapshot: InventorySnapshot, provider: Any) -> List[DependencyEdge]:
        active = self.active_ids(snapshot)
        edges = []
        for nodegroup in snapshot.by_kind(ResourceKind.NODE_GROUP, active_only=True):
            for parent_id in sorted(nodegroup.parent_ids):
                cluster = active.get(parent_id)
                if cluster is not None and cluster.kind == ResourceKind.MANAGED_CLUSTER:
                    edges.append(self.edge(nodegroup, cluster, EdgeKind.NODE_GROUP_IN_CLUSTER))
        return edges


class ServiceNetworkingRule(BlockingRule):
    """LoadBalancer services own a balancer, target groups and ENIs.

    Terraform knows none of those, so the service must be deleted before the
    cluster and the balancer it provisioned can go.
    """

    @property
    def rule_id(self) -> str:
        return "service_provisioned_networking"

    @property
    def edge_kinds(self) -> tuple:
        return (EdgeKind.SERVICE_PROVISIONED_NETWORKING,)

    def evaluate(self, snapshot: InventorySnapshot, provider: Any) -> List[DependencyEdge]:
        active = self.active_ids(snapshot)
        edges = []
        for service in snapshot.by_kind(ResourceKind.ORCHESTRATOR_SERVICE, active_only=True):
            blocked_ids = sorted(service.parent_ids)
            balancer_arn = service.attributes.get("load_balancer_arn")
            if balancer_arn:
                blocked_ids.append(balancer_arn)
            for blocked_id in blocked_ids:
                blocked = active.get(blocked_id)
                if blocked is not None:
                    detail = service.attributes.get("hostname", "")
                    edges.append(self.edge(service, blocked, EdgeKind.SERVICE_PROVISIONED_NETWORKING, detail))
        return edges
