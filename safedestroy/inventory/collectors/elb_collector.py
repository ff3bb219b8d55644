"""ELBv2 collector."""

from __future__ import annotations

from typing import Any, Dict, List

from botocore.exceptions import BotoCoreError, ClientError

from ...models.resource import Resource, ResourceKind
from .base import BaseResourceCollector, ScanContext, tags_to_dict

# DescribeTags accepts at most 20 ARNs per call
_TAG_BATCH = 20


class ELBCollector(BaseResourceCollector):
    """Collector for ELBv2 load balancers and target groups.

    Balancers created by the Kubernetes load balancer controller are not
    tagged with the deployment, so anything living in a deployment VPC is
    collected too.
    """

    @property
    def service_name(self) -> str:
        return "elbv2"

    def collect(self, context: ScanContext) -> List[Resource]:
        client = self._create_client()
        vpc_tags = {r.resource_id: r.deployment_tag for r in context.of_kind(ResourceKind.NETWORK)}
        resources: List[Resource] = []

        try:
            balancers = self._paginate(client, "describe_load_balancers", "LoadBalancers")
            balancer_tags = self._tags(client, [lb["LoadBalancerArn"] for lb in balancers])
            for lb in balancers:
                arn = lb["LoadBalancerArn"]
                tags = balancer_tags.get(arn, {})
                deployment = self._deployment(context, tags, lb.get("VpcId"), vpc_tags)
                if deployment is None:
                    continue
                resources.append(
                    Resource(
                        resource_id=arn,
                        kind=ResourceKind.LOAD_BALANCER,
                        status=self.status_for(lb.get("State", {}).get("Code")),
                        deployment_tag=deployment,
                        parent_ids=frozenset({lb["VpcId"]}) if lb.get("VpcId") else frozenset(),
                        name=lb.get("LoadBalancerName", arn),
                        arn=arn,
                        region=self.region,
                        tags=tags,
                        attributes={
                            "vpc_id": lb.get("VpcId"),
                            "dns_name": lb.get("DNSName", ""),
                            "type": lb.get("Type"),
                        },
                    )
                )

            groups = self._paginate(client, "describe_target_groups", "TargetGroups")
            group_tags = self._tags(client, [tg["TargetGroupArn"] for tg in groups])
            for tg in groups:
                arn = tg["TargetGroupArn"]
                tags = group_tags.get(arn, {})
                deployment = self._deployment(context, tags, tg.get("VpcId"), vpc_tags)
                if deployment is None:
                    continue
                resources.append(
                    Resource(
                        resource_id=arn,
                        kind=ResourceKind.TARGET_GROUP,
                        deployment_tag=deployment,
                        parent_ids=frozenset({tg["VpcId"]}) if tg.get("VpcId") else frozenset(),
                        name=tg.get("TargetGroupName", arn),
                        arn=arn,
                        region=self.region,
                        tags=tags,
                        attributes={
                            "vpc_id": tg.get("VpcId"),
                            "target_type": tg.get("TargetType"),
                            "load_balancer_arns": tg.get("LoadBalancerArns", []),
                        },
                    )
                )
        except (ClientError, BotoCoreError) as e:
            raise self._raise(e, "load balancers") from e

        self.logger.debug(f"Collected {len(resources)} ELBv2 resources in {self.region}")
        return resources

    @staticmethod
    def _deployment(context: ScanContext, tags: Dict[str, str], vpc_id: Any, vpc_tags: Dict[str, str]):
        if context.is_detached(tags):
            return None
        deployment = context.match(tags)
        if deployment is None and vpc_id in vpc_tags:
            deployment = vpc_tags[vpc_id]
        return deployment

    @staticmethod
    def _paginate(client: Any, operation: str, key: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for page in client.get_paginator(operation).paginate():
            items.extend(page.get(key, []))
        return items

    @staticmethod
    def _tags(client: Any, arns: List[str]) -> Dict[str, Dict[str, str]]:
        tags: Dict[str, Dict[str, str]] = {}
        for start in range(0, len(arns), _TAG_BATCH):
            response = client.describe_tags(ResourceArns=arns[start : start + _TAG_BATCH])
            for description in response.get("TagDescriptions", []):
                tags[description["ResourceArn"]] = tags_to_dict(description.get("Tags"))
        return tags
