"""Data models for teardown orchestration."""

from __future__ import annotations

from .cleanup_action import ActionResult, CleanupAction, CleanupOperation
from .dependency import EDGE_POLICIES, DependencyEdge, EdgeKind, EdgePolicy
from .destroy_plan import DEFAULT_KIND_ORDER, DestroyPlan
from .detach_record import DetachRecord
from .inventory import InventorySnapshot
from .manifest import TF_TYPE_KINDS, ManifestEntry
from .resource import Resource, ResourceKind, ResourceStatus
from .retry_policy import RetryPolicy
from .teardown_operation import (
    CoordinatorState,
    OperationMode,
    Outcome,
    StageError,
    TeardownOperation,
)

__all__ = [
    "ActionResult",
    "CleanupAction",
    "CleanupOperation",
    "CoordinatorState",
    "DEFAULT_KIND_ORDER",
    "DependencyEdge",
    "DestroyPlan",
    "DetachRecord",
    "EDGE_POLICIES",
    "EdgeKind",
    "EdgePolicy",
    "InventorySnapshot",
    "ManifestEntry",
    "OperationMode",
    "Outcome",
    "Resource",
    "ResourceKind",
    "ResourceStatus",
    "RetryPolicy",
    "StageError",
    "TF_TYPE_KINDS",
    "TeardownOperation",
]
