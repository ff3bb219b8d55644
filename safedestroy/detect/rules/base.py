"""Base class for blocking rules."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ...models.dependency import DependencyEdge, EdgeKind
from ...models.inventory import InventorySnapshot
from ...models.resource import Resource, ResourceKind


class BlockingRule(ABC):
    """Abstract base class for all blocking rules.

    Each rule should:
    1. Have a unique rule_id
    2. Declare the edge kinds it can emit
    3. Implement evaluate() returning DependencyEdges for active resources only
    """

    @property
    @abstractmethod
    def rule_id(self) -> str:
        """Unique identifier for this rule (e.g. "orphaned_interface")."""

    @property
    @abstractmethod
    def edge_kinds(self) -> tuple:
        """EdgeKinds this rule emits."""

    @abstractmethod
    def evaluate(self, snapshot: InventorySnapshot, provider: Any) -> List[DependencyEdge]:
        """Evaluate the rule.

        Args:
            snapshot: Inventory snapshot (use ``snapshot.active()`` resources only)
            provider: Provider gateway for sub-entity lookups

        Returns:
            List of DependencyEdges (empty list if nothing blocks)
        """

    @staticmethod
    def active_ids(snapshot: InventorySnapshot) -> Dict[str, Resource]:
        return {r.resource_id: r for r in snapshot.active()}

    @staticmethod
    def sub_entity(
        parent: Resource,
        kind: ResourceKind,
        entity_id: str,
        detail: Dict[str, Any],
        name: Optional[str] = None,
    ) -> Resource:
        """Build a sub-entity (object version, target registration) of ``parent``.

        ``detail`` becomes the parameters of the cleanup action that removes it.
        """
        return Resource(
            resource_id=f"{parent.resource_id}#{entity_id}",
            kind=kind,
            deployment_tag=parent.deployment_tag,
            parent_ids=frozenset({parent.resource_id}),
            name=name or entity_id,
            region=parent.region,
            attributes={"detail": dict(detail)},
        )

    def edge(self, blocker: Resource, blocked: Resource, kind: EdgeKind, detail: str = "") -> DependencyEdge:
        if kind not in self.edge_kinds:
            raise ValueError(f"{self.rule_id} cannot emit {kind.value}")
        return DependencyEdge(blocker=blocker, blocked=blocked, kind=kind, detail=detail)
