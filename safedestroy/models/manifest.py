"""State manifest model: the resources Terraform believes it owns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .resource import ResourceKind

# Terraform resource type -> orchestrator resource kind
TF_TYPE_KINDS: Dict[str, ResourceKind] = {
    "aws_vpc": ResourceKind.NETWORK,
    "aws_subnet": ResourceKind.SUBNET,
    "aws_network_interface": ResourceKind.INTERFACE,
    "aws_eks_cluster": ResourceKind.MANAGED_CLUSTER,
    "aws_eks_node_group": ResourceKind.NODE_GROUP,
    "aws_lb": ResourceKind.LOAD_BALANCER,
    "aws_alb": ResourceKind.LOAD_BALANCER,
    "aws_lb_target_group": ResourceKind.TARGET_GROUP,
    "aws_alb_target_group": ResourceKind.TARGET_GROUP,
    "aws_s3_bucket": ResourceKind.OBJECT_STORE,
    "aws_nat_gateway": ResourceKind.NAT_GATEWAY,
    "aws_vpc_endpoint": ResourceKind.VPC_ENDPOINT,
    "aws_dynamodb_table": ResourceKind.LOCK_TABLE,
    "aws_internet_gateway": ResourceKind.INTERNET_GATEWAY,
    "aws_route_table": ResourceKind.ROUTE_TABLE,
    "aws_security_group": ResourceKind.SECURITY_GROUP,
    "aws_instance": ResourceKind.INSTANCE,
}

# Types whose Terraform id differs from the id the provider APIs use
_ID_ATTRIBUTES: Dict[str, str] = {
    "aws_eks_cluster": "name",
    "aws_lb": "arn",
    "aws_alb": "arn",
    "aws_lb_target_group": "arn",
    "aws_alb_target_group": "arn",
    "aws_s3_bucket": "bucket",
    "aws_dynamodb_table": "name",
}


@dataclass(frozen=True)
class ManifestEntry:
    """A single resource recorded in the Terraform state manifest.

    Attributes:
        address: Terraform address (e.g. ``module.vpc.aws_subnet.private[0]``)
        tf_type: Terraform resource type (e.g. ``aws_subnet``)
        resource_id: Provider identifier normalised to match scanner ids
        kind: Mapped resource kind, None for types the orchestrator ignores
    """

    address: str
    tf_type: str
    resource_id: str = ""
    kind: Optional[ResourceKind] = None

    @classmethod
    def from_state_resource(cls, data: Dict[str, Any]) -> "ManifestEntry":
        """Build an entry from a ``terraform show -json`` resource object.

        Args:
            data: Resource object from ``values.root_module`` (or a child module)

        Returns:
            ManifestEntry with a normalised resource id
        """
        tf_type = data.get("type", "")
        values = data.get("values") or {}
        id_attr = _ID_ATTRIBUTES.get(tf_type, "id")
        resource_id = str(values.get(id_attr) or values.get("id") or "")

        # Node groups are "cluster:nodegroup" in Terraform, "cluster/nodegroup" here
        if tf_type == "aws_eks_node_group" and ":" in resource_id:
            resource_id = resource_id.replace(":", "/", 1)

        return cls(
            address=data["address"],
            tf_type=tf_type,
            resource_id=resource_id,
            kind=TF_TYPE_KINDS.get(tf_type),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "tf_type": self.tf_type,
            "resource_id": self.resource_id,
            "kind": self.kind.value if self.kind else None,
        }
