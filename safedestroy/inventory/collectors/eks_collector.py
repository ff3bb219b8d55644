"""EKS collector."""

from __future__ import annotations

from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from ...models.resource import Resource, ResourceKind
from .base import BaseResourceCollector, ScanContext


class EKSCollector(BaseResourceCollector):
    """Collector for EKS clusters and their node groups.

    Node groups of a deployment cluster are collected whether or not they
    carry the tag themselves.
    """

    @property
    def service_name(self) -> str:
        return "eks"

    def collect(self, context: ScanContext) -> List[Resource]:
        client = self._create_client()
        resources: List[Resource] = []

        try:
            for page in client.get_paginator("list_clusters").paginate():
                for cluster_name in page.get("clusters", []):
                    cluster = client.describe_cluster(name=cluster_name)["cluster"]
                    tags = cluster.get("tags", {}) or {}
                    deployment = context.match(tags)
                    if deployment is None:
                        continue

                    vpc_config = cluster.get("resourcesVpcConfig", {})
                    vpc_id = vpc_config.get("vpcId", "")
                    resources.append(
                        Resource(
                            resource_id=cluster_name,
                            kind=ResourceKind.MANAGED_CLUSTER,
                            status=self.status_for(cluster.get("status")),
                            deployment_tag=deployment,
                            parent_ids=frozenset({vpc_id}) if vpc_id else frozenset(),
                            arn=cluster.get("arn"),
                            region=self.region,
                            tags=tags,
                            attributes={
                                "vpc_id": vpc_id,
                                "subnet_ids": vpc_config.get("subnetIds", []),
                                "cluster_security_group_id": vpc_config.get("clusterSecurityGroupId"),
                                "security_group_ids": vpc_config.get("securityGroupIds", []),
                            },
                        )
                    )
                    resources.extend(self._collect_node_groups(client, cluster_name, deployment, context))
        except (ClientError, BotoCoreError) as e:
            raise self._raise(e, "EKS clusters") from e

        self.logger.debug(f"Collected {len(resources)} EKS resources in {self.region}")
        return resources

    def _collect_node_groups(self, client, cluster_name: str, deployment: str, context: ScanContext) -> List[Resource]:
        resources = []
        for page in client.get_paginator("list_nodegroups").paginate(clusterName=cluster_name):
            for nodegroup_name in page.get("nodegroups", []):
                nodegroup = client.describe_nodegroup(clusterName=cluster_name, nodegroupName=nodegroup_name)[
                    "nodegroup"
                ]
                tags = nodegroup.get("tags", {}) or {}
                if context.is_detached(tags):
                    continue
                resources.append(
                    Resource(
                        resource_id=f"{cluster_name}/{nodegroup_name}",
                        kind=ResourceKind.NODE_GROUP,
                        status=self.status_for(nodegroup.get("status")),
                        deployment_tag=deployment,
                        parent_ids=frozenset({cluster_name}),
                        name=nodegroup_name,
                        arn=nodegroup.get("nodegroupArn"),
                        region=self.region,
                        tags=tags,
                        attributes={"subnet_ids": nodegroup.get("subnets", [])},
                    )
                )
        return resources
