"""Blocking-dependency detector.

Evaluates every blocking rule against a snapshot and turns the resulting
edges into cleanup actions (or operator reports) through EDGE_POLICIES.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set

from ..errors import PermissionDenied, ProviderUnavailable, TeardownError
from ..models.cleanup_action import CleanupAction
from ..models.dependency import DependencyEdge
from ..models.inventory import InventorySnapshot
from ..models.resource import Resource
from .rules.base import BlockingRule

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    """Edges found in one detector pass and what to do about them.

    Attributes:
        edges: Every DependencyEdge found
        actions: De-duplicated cleanup actions for auto-resolvable edges
        reported: Edges that need an operator (never auto-cleaned)
        errors: Non-fatal rule failures
    """

    edges: List[DependencyEdge] = field(default_factory=list)
    actions: List[CleanupAction] = field(default_factory=list)
    reported: List[DependencyEdge] = field(default_factory=list)
    errors: List[TeardownError] = field(default_factory=list)

    @property
    def resource_edges(self) -> List[DependencyEdge]:
        """Edges between real resources (sub-entity blockers excluded)."""
        return [e for e in self.edges if not e.blocker.kind.is_sub_entity]

    @property
    def blocked_ids(self) -> Set[str]:
        return {e.blocked.resource_id for e in self.edges}

    def deletable_now(self, snapshot: InventorySnapshot) -> List[Resource]:
        """Active resources nothing currently blocks."""
        blocked = self.blocked_ids
        return [r for r in snapshot.active() if r.resource_id not in blocked]

    def summary(self) -> str:
        return (
            f"{len(self.resource_edges)} resource edges, {len(self.edges) - len(self.resource_edges)} "
            f"sub-entity edges, {len(self.actions)} actions, {len(self.reported)} need an operator"
        )


def action_for(edge: DependencyEdge) -> Optional[CleanupAction]:
    """Cleanup action that resolves an edge, or None if the policy has none.

    Sub-entity blockers (object versions, target registrations) are removed
    through their parent resource; any other blocker is itself the target.
    """
    policy = edge.policy
    if policy.operation is None or policy.operator_only:
        return None
    if edge.blocker.kind.is_sub_entity:
        return CleanupAction(
            target=edge.blocked,
            operation=policy.operation,
            detail=dict(edge.blocker.attributes.get("detail", {})),
        )
    return CleanupAction(target=edge.blocker, operation=policy.operation)


class BlockingDependencyDetector:
    """Finds the dependencies Terraform cannot see.

    The detector automatically discovers all BlockingRule subclasses in the
    rules package unless an explicit rule list is given.
    """

    def __init__(self, provider: Any, rules: Optional[List[BlockingRule]] = None) -> None:
        self.provider = provider
        self.rules: List[BlockingRule] = list(rules) if rules is not None else []
        if rules is None:
            self._load_rules()

    def _load_rules(self) -> None:
        """Dynamically load all rule modules from the rules package."""
        from . import rules

        for _importer, modname, _ispkg in pkgutil.iter_modules(rules.__path__):
            if modname in ("base", "__init__"):
                continue
            try:
                module = importlib.import_module(f".rules.{modname}", package=__package__)
            except Exception as e:
                logger.error(f"Failed to load rule module {modname}: {e}")
                continue

            for _name, obj in inspect.getmembers(module, inspect.isclass):
                if issubclass(obj, BlockingRule) and obj is not BlockingRule and not inspect.isabstract(obj):
                    self.rules.append(obj())

        self.rules.sort(key=lambda rule: rule.rule_id)
        logger.debug(f"Loaded {len(self.rules)} blocking rules")

    def detect(self, snapshot: InventorySnapshot) -> DetectionResult:
        """Evaluate every rule against a snapshot.

        Args:
            snapshot: Inventory snapshot

        Returns:
            DetectionResult with edges, actions and operator reports

        Raises:
            PermissionDenied: If a rule's provider lookup is denied
            ProviderUnavailable: If the provider cannot be reached
        """
        result = DetectionResult()
        seen = set()

        for rule in self.rules:
            try:
                edges = rule.evaluate(snapshot, self.provider)
            except (PermissionDenied, ProviderUnavailable):
                raise
            except TeardownError as e:
                logger.warning(f"Rule {rule.rule_id} failed: {e}")
                result.errors.append(e)
                continue

            for edge in edges:
                result.edges.append(edge)
                if edge.policy.operator_only:
                    result.reported.append(edge)
                    continue
                action = action_for(edge)
                if action is not None and action.key not in seen:
                    seen.add(action.key)
                    result.actions.append(action)

        if snapshot.anomalies:
            logger.debug(f"Ignored {len(snapshot.anomalies)} anomalous resources")
        logger.info(f"Detected {result.summary()}")
        return result
