"""Inventory snapshot: live resources plus the state manifest at one point in time."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .manifest import ManifestEntry
from .resource import Resource, ResourceKind


@dataclass
class InventorySnapshot:
    """Result of one scanner pass for a deployment.

    Snapshots are never persisted; a new one is taken on every pass.

    Attributes:
        deployment_tag: Deployment tag value (or prefix ending in ``*``)
        resources: Live resources found under the tag
        manifest: Entries in the Terraform state manifest
        anomalies: Ids of resources that reappeared after being marked gone
        captured_at: When the scan finished
    """

    deployment_tag: str
    resources: List[Resource] = field(default_factory=list)
    manifest: List[ManifestEntry] = field(default_factory=list)
    anomalies: List[str] = field(default_factory=list)
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def resource_count(self) -> int:
        return len(self.resources)

    @property
    def is_empty(self) -> bool:
        """True when nothing is live and the manifest is empty."""
        return not self.resources and not self.manifest

    def get(self, resource_id: str) -> Optional[Resource]:
        """Look up a live resource by id."""
        for resource in self.resources:
            if resource.resource_id == resource_id:
                return resource
        return None

    def active(self) -> List[Resource]:
        """Active resources that are not provider-consistency anomalies."""
        anomalies = set(self.anomalies)
        return [r for r in self.resources if r.is_active and r.resource_id not in anomalies]

    def by_kind(self, kind: ResourceKind, active_only: bool = False) -> List[Resource]:
        pool = self.active() if active_only else self.resources
        return [r for r in pool if r.kind == kind]

    def children_of(self, parent_id: str, kind: Optional[ResourceKind] = None) -> List[Resource]:
        """Resources that list ``parent_id`` among their parents."""
        return [
            r for r in self.resources if parent_id in r.parent_ids and (kind is None or r.kind == kind)
        ]

    def manifest_ids(self) -> set:
        return {e.resource_id for e in self.manifest if e.resource_id}

    def manifest_for_kind(self, kind: ResourceKind) -> List[ManifestEntry]:
        return [e for e in self.manifest if e.kind == kind]

    def untracked(self) -> List[Resource]:
        """Live resources the state manifest does not know about."""
        tracked = self.manifest_ids()
        return [r for r in self.resources if r.resource_id not in tracked]

    def manifest_only(self) -> List[ManifestEntry]:
        """Manifest entries with no matching live resource."""
        live = {r.resource_id for r in self.resources}
        return [e for e in self.manifest if e.resource_id not in live]

    def kind_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for resource in self.resources:
            counts[resource.kind.value] = counts.get(resource.kind.value, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        """Convert snapshot to dictionary for export."""
        return {
            "deployment_tag": self.deployment_tag,
            "captured_at": self.captured_at.isoformat(),
            "resource_count": self.resource_count,
            "kind_counts": self.kind_counts(),
            "anomalies": list(self.anomalies),
            "resources": [r.to_dict() for r in self.resources],
            "manifest": [e.to_dict() for e in self.manifest],
        }
