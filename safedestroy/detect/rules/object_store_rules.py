"""Object store rules."""

from __future__ import annotations

from typing import Any, List

from ...models.dependency import DependencyEdge, EdgeKind
from ...models.inventory import InventorySnapshot
from ...models.resource import ResourceKind
from .base import BlockingRule


class VersionedObjectRule(BlockingRule):
    """Every object version and delete marker blocks bucket deletion.

    Terraform's bucket delete only removes current objects; a versioned
    bucket keeps its history and the delete fails with BucketNotEmpty.
    """

    @property
    def rule_id(self) -> str:
        return "versioned_object"

    @property
    def edge_kinds(self) -> tuple:
        return (EdgeKind.VERSIONED_OBJECT_IN_BUCKET,)

    def evaluate(self, snapshot: InventorySnapshot, provider: Any) -> List[DependencyEdge]:
        edges: List[DependencyEdge] = []

        for bucket in snapshot.by_kind(ResourceKind.OBJECT_STORE, active_only=True):
            for version in provider.list_object_versions(bucket.resource_id):
                detail = {"key": version["key"], "version_id": version["version_id"]}
                blocker = self.sub_entity(
                    bucket,
                    ResourceKind.OBJECT_VERSION,
                    f"{version['key']}@{version['version_id']}",
                    detail,
                    name=version["key"],
                )
                marker = "delete-marker" if version.get("is_delete_marker") else "version"
                edges.append(self.edge(blocker, bucket, EdgeKind.VERSIONED_OBJECT_IN_BUCKET, marker))

        return edges
