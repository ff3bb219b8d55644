"""Resource model for cloud objects under teardown management."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class ResourceKind(Enum):
    """Kinds of cloud resources the orchestrator knows how to unwind."""

    NETWORK = "network"
    SUBNET = "subnet"
    INTERFACE = "interface"
    MANAGED_CLUSTER = "managed-cluster"
    NODE_GROUP = "node-group"
    LOAD_BALANCER = "load-balancer"
    TARGET_GROUP = "target-group"
    OBJECT_STORE = "object-store"
    NAT_GATEWAY = "nat-gateway"
    VPC_ENDPOINT = "vpc-endpoint"
    LOCK_TABLE = "lock-table"
    INTERNET_GATEWAY = "internet-gateway"
    ROUTE_TABLE = "route-table"
    SECURITY_GROUP = "security-group"
    INSTANCE = "instance"
    ORCHESTRATOR_SERVICE = "orchestrator-service"
    # Sub-entities: only ever appear as the blocker side of a DependencyEdge
    OBJECT_VERSION = "object-version"
    REGISTERED_TARGET = "registered-target"

    @property
    def is_sub_entity(self) -> bool:
        return self in (ResourceKind.OBJECT_VERSION, ResourceKind.REGISTERED_TARGET)


class ResourceStatus(Enum):
    """Lifecycle status of a resource as seen by the orchestrator."""

    ACTIVE = "active"
    DELETING = "deleting"
    GONE = "gone"


@dataclass(frozen=True)
class Resource:
    """A cloud object under lifecycle management.

    Resources are discovered read-only by the scanner and only change through
    cleanup/destroy calls. ``attributes`` carries provider details the
    blocking rules need (ENI attachment state, owning subnet, ...).

    Attributes:
        resource_id: Provider-assigned identifier (ENI id, bucket name, ARN, ...)
        kind: Resource kind
        status: Lifecycle status
        deployment_tag: Deployment the resource belongs to
        parent_ids: Ids of resources this one structurally depends on
        name: Display name (defaults to resource_id)
        arn: ARN when the provider has one
        region: AWS region
        tags: Resource tags
        attributes: Provider-specific details
    """

    resource_id: str
    kind: ResourceKind
    status: ResourceStatus = ResourceStatus.ACTIVE
    deployment_tag: str = ""
    parent_ids: FrozenSet[str] = field(default_factory=frozenset)
    name: str = ""
    arn: Optional[str] = None
    region: str = ""
    tags: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)
    attributes: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        if not self.resource_id:
            raise ValueError("resource_id cannot be empty")
        if not isinstance(self.kind, ResourceKind):
            raise ValueError(f"Invalid kind type: {type(self.kind)}. Must be ResourceKind enum.")
        if not self.name:
            object.__setattr__(self, "name", self.resource_id)
        if not isinstance(self.parent_ids, frozenset):
            object.__setattr__(self, "parent_ids", frozenset(self.parent_ids))

    @property
    def is_active(self) -> bool:
        return self.status == ResourceStatus.ACTIVE

    def with_status(self, status: ResourceStatus) -> "Resource":
        """Return a copy of this resource with a different status."""
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        """Convert resource to dictionary for serialization."""
        return {
            "resource_id": self.resource_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "deployment_tag": self.deployment_tag,
            "parent_ids": sorted(self.parent_ids),
            "name": self.name,
            "arn": self.arn,
            "region": self.region,
            "tags": dict(self.tags),
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Resource":
        """Create resource from dictionary representation."""
        return cls(
            resource_id=data["resource_id"],
            kind=ResourceKind(data["kind"]),
            status=ResourceStatus(data.get("status", "active")),
            deployment_tag=data.get("deployment_tag", ""),
            parent_ids=frozenset(data.get("parent_ids", [])),
            name=data.get("name", ""),
            arn=data.get("arn"),
            region=data.get("region", ""),
            tags=data.get("tags", {}),
            attributes=data.get("attributes", {}),
        )
