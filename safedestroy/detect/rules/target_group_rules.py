"""Target group rules."""

from __future__ import annotations

from typing import Any, List

from ...models.dependency import DependencyEdge, EdgeKind
from ...models.inventory import InventorySnapshot
from ...models.resource import ResourceKind
from .base import BlockingRule


class RegisteredTargetRule(BlockingRule):
    """Registered targets, in any health state, block target group deletion."""

    @property
    def rule_id(self) -> str:
        return "registered_target"

    @property
    def edge_kinds(self) -> tuple:
        return (EdgeKind.TARGET_REGISTERED_IN_GROUP,)

    def evaluate(self, snapshot: InventorySnapshot, provider: Any) -> List[DependencyEdge]:
        edges: List[DependencyEdge] = []

        for group in snapshot.by_kind(ResourceKind.TARGET_GROUP, active_only=True):
            for target in provider.list_registered_targets(group.resource_id):
                detail = {"target_id": target["target_id"], "port": target.get("port")}
                entity_id = f"{target['target_id']}:{target.get('port') or ''}"
                blocker = self.sub_entity(
                    group, ResourceKind.REGISTERED_TARGET, entity_id, detail, name=target["target_id"]
                )
                edges.append(
                    self.edge(blocker, group, EdgeKind.TARGET_REGISTERED_IN_GROUP, target.get("state", ""))
                )

        return edges
