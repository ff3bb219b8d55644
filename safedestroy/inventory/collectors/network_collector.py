"""VPC networking collector.

Tagged VPCs define the deployment's networks. Everything placed inside them
(subnets, gateways, endpoints, route tables, security groups, instances and
ENIs) belongs to the deployment even when untagged: EKS and the load
balancer controller create ENIs without copying the deployment tag.
"""

from __future__ import annotations

from typing import Any, Dict, List, Set

from botocore.exceptions import BotoCoreError, ClientError

from ...models.resource import Resource, ResourceKind, ResourceStatus
from .base import BaseResourceCollector, ScanContext, tags_to_dict


class NetworkCollector(BaseResourceCollector):
    """Collector for VPCs and everything placed in them."""

    @property
    def service_name(self) -> str:
        return "ec2"

    def collect(self, context: ScanContext) -> List[Resource]:
        """Collect networking resources.

        Returns:
            List of network, subnet, gateway, endpoint, routing, security
            group, instance and interface resources
        """
        client = self._create_client()
        resources: List[Resource] = []

        try:
            vpcs = self._collect_vpcs(client, context)
            resources.extend(vpcs)
            vpc_tags = {v.resource_id: v.deployment_tag for v in vpcs}
            vpc_ids = list(vpc_tags)

            subnets = self._collect_subnets(client, context, vpc_tags)
            resources.extend(subnets)
            subnet_tags = {s.resource_id: s.deployment_tag for s in subnets}

            if vpc_ids:
                resources.extend(self._collect_nat_gateways(client, context, vpc_tags))
                resources.extend(self._collect_vpc_endpoints(client, context, vpc_tags))
                resources.extend(self._collect_internet_gateways(client, context, vpc_tags))
                resources.extend(self._collect_route_tables(client, context, vpc_tags))
                resources.extend(self._collect_security_groups(client, context, vpc_tags))
            if subnet_tags:
                resources.extend(self._collect_instances(client, context, subnet_tags))
                resources.extend(self._collect_interfaces(client, context, subnet_tags))
        except (ClientError, BotoCoreError) as e:
            raise self._raise(e, "network resources") from e

        self.logger.debug(f"Collected {len(resources)} network resources in {self.region}")
        return resources

    def _paginate(self, client: Any, operation: str, key: str, **params: Any) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for page in client.get_paginator(operation).paginate(**params):
            items.extend(page.get(key, []))
        return items

    def _collect_vpcs(self, client: Any, context: ScanContext) -> List[Resource]:
        resources = []
        for vpc in self._paginate(
            client, "describe_vpcs", "Vpcs", Filters=[{"Name": "tag-key", "Values": [context.tag_key]}]
        ):
            tags = tags_to_dict(vpc.get("Tags"))
            deployment = context.match(tags)
            if deployment is None:
                continue
            resources.append(
                Resource(
                    resource_id=vpc["VpcId"],
                    kind=ResourceKind.NETWORK,
                    status=self.status_for(vpc.get("State")),
                    deployment_tag=deployment,
                    name=tags.get("Name", vpc["VpcId"]),
                    region=self.region,
                    tags=tags,
                    attributes={"cidr_block": vpc.get("CidrBlock")},
                )
            )
        return resources

    def _collect_subnets(self, client: Any, context: ScanContext, vpc_tags: Dict[str, str]) -> List[Resource]:
        found: Dict[str, Dict[str, Any]] = {}
        for subnet in self._paginate(
            client, "describe_subnets", "Subnets", Filters=[{"Name": "tag-key", "Values": [context.tag_key]}]
        ):
            if context.match(tags_to_dict(subnet.get("Tags"))) is not None:
                found[subnet["SubnetId"]] = subnet
        if vpc_tags:
            for subnet in self._paginate(
                client, "describe_subnets", "Subnets", Filters=[{"Name": "vpc-id", "Values": list(vpc_tags)}]
            ):
                found.setdefault(subnet["SubnetId"], subnet)

        resources = []
        for subnet_id, subnet in found.items():
            tags = tags_to_dict(subnet.get("Tags"))
            if context.is_detached(tags):
                continue
            vpc_id = subnet.get("VpcId", "")
            resources.append(
                Resource(
                    resource_id=subnet_id,
                    kind=ResourceKind.SUBNET,
                    deployment_tag=context.match(tags) or vpc_tags.get(vpc_id, context.deployment_tag),
                    parent_ids=frozenset({vpc_id}) if vpc_id else frozenset(),
                    name=tags.get("Name", subnet_id),
                    region=self.region,
                    tags=tags,
                    attributes={"vpc_id": vpc_id, "cidr_block": subnet.get("CidrBlock")},
                )
            )
        return resources

    def _collect_nat_gateways(self, client: Any, context: ScanContext, vpc_tags: Dict[str, str]) -> List[Resource]:
        resources = []
        for nat in self._paginate(
            client,
            "describe_nat_gateways",
            "NatGateways",
            Filter=[{"Name": "vpc-id", "Values": list(vpc_tags)}],
        ):
            status = self.status_for(nat.get("State"))
            tags = tags_to_dict(nat.get("Tags"))
            if status == ResourceStatus.GONE or context.is_detached(tags):
                continue
            subnet_id = nat.get("SubnetId", "")
            vpc_id = nat.get("VpcId", "")
            resources.append(
                Resource(
                    resource_id=nat["NatGatewayId"],
                    kind=ResourceKind.NAT_GATEWAY,
                    status=status,
                    deployment_tag=vpc_tags.get(vpc_id, context.deployment_tag),
                    parent_ids=frozenset(p for p in (vpc_id, subnet_id) if p),
                    name=tags.get("Name", nat["NatGatewayId"]),
                    region=self.region,
                    tags=tags,
                    attributes={"subnet_id": subnet_id, "vpc_id": vpc_id, "state": nat.get("State")},
                )
            )
        return resources

    def _collect_vpc_endpoints(self, client: Any, context: ScanContext, vpc_tags: Dict[str, str]) -> List[Resource]:
        resources = []
        for endpoint in self._paginate(
            client,
            "describe_vpc_endpoints",
            "VpcEndpoints",
            Filters=[{"Name": "vpc-id", "Values": list(vpc_tags)}],
        ):
            state = endpoint.get("State")
            status = self.status_for(state)
            tags = tags_to_dict(endpoint.get("Tags"))
            if status == ResourceStatus.GONE or context.is_detached(tags):
                continue
            vpc_id = endpoint.get("VpcId", "")
            subnet_ids = list(endpoint.get("SubnetIds", []))
            resources.append(
                Resource(
                    resource_id=endpoint["VpcEndpointId"],
                    kind=ResourceKind.VPC_ENDPOINT,
                    status=status,
                    deployment_tag=vpc_tags.get(vpc_id, context.deployment_tag),
                    parent_ids=frozenset(p for p in [vpc_id, *subnet_ids] if p),
                    name=tags.get("Name", endpoint.get("ServiceName") or endpoint["VpcEndpointId"]),
                    region=self.region,
                    tags=tags,
                    attributes={
                        "vpc_id": vpc_id,
                        "endpoint_type": endpoint.get("VpcEndpointType", ""),
                        "service_name": endpoint.get("ServiceName", ""),
                        "subnet_ids": subnet_ids,
                        "interface_ids": list(endpoint.get("NetworkInterfaceIds", [])),
                        "state": state,
                    },
                )
            )
        return resources

    def _collect_internet_gateways(
        self, client: Any, context: ScanContext, vpc_tags: Dict[str, str]
    ) -> List[Resource]:
        resources = []
        for igw in self._paginate(
            client,
            "describe_internet_gateways",
            "InternetGateways",
            Filters=[{"Name": "attachment.vpc-id", "Values": list(vpc_tags)}],
        ):
            tags = tags_to_dict(igw.get("Tags"))
            if context.is_detached(tags):
                continue
            attached = [a["VpcId"] for a in igw.get("Attachments", []) if a.get("VpcId") in vpc_tags]
            resources.append(
                Resource(
                    resource_id=igw["InternetGatewayId"],
                    kind=ResourceKind.INTERNET_GATEWAY,
                    deployment_tag=vpc_tags.get(attached[0], context.deployment_tag) if attached else "",
                    parent_ids=frozenset(attached),
                    name=tags.get("Name", igw["InternetGatewayId"]),
                    region=self.region,
                    tags=tags,
                    attributes={"vpc_ids": attached},
                )
            )
        return resources

    def _collect_route_tables(self, client: Any, context: ScanContext, vpc_tags: Dict[str, str]) -> List[Resource]:
        resources = []
        for table in self._paginate(
            client,
            "describe_route_tables",
            "RouteTables",
            Filters=[{"Name": "vpc-id", "Values": list(vpc_tags)}],
        ):
            associations = table.get("Associations", [])
            # The main route table goes away with its VPC
            if any(a.get("Main") for a in associations):
                continue
            tags = tags_to_dict(table.get("Tags"))
            if context.is_detached(tags):
                continue
            vpc_id = table.get("VpcId", "")
            resources.append(
                Resource(
                    resource_id=table["RouteTableId"],
                    kind=ResourceKind.ROUTE_TABLE,
                    deployment_tag=vpc_tags.get(vpc_id, context.deployment_tag),
                    parent_ids=frozenset({vpc_id}) if vpc_id else frozenset(),
                    name=tags.get("Name", table["RouteTableId"]),
                    region=self.region,
                    tags=tags,
                    attributes={
                        "vpc_id": vpc_id,
                        "association_ids": [
                            a["RouteTableAssociationId"] for a in associations if "RouteTableAssociationId" in a
                        ],
                    },
                )
            )
        return resources

    def _collect_security_groups(
        self, client: Any, context: ScanContext, vpc_tags: Dict[str, str]
    ) -> List[Resource]:
        resources = []
        for group in self._paginate(
            client,
            "describe_security_groups",
            "SecurityGroups",
            Filters=[{"Name": "vpc-id", "Values": list(vpc_tags)}],
        ):
            if group.get("GroupName") == "default":
                continue
            tags = tags_to_dict(group.get("Tags"))
            if context.is_detached(tags):
                continue
            vpc_id = group.get("VpcId", "")
            resources.append(
                Resource(
                    resource_id=group["GroupId"],
                    kind=ResourceKind.SECURITY_GROUP,
                    deployment_tag=vpc_tags.get(vpc_id, context.deployment_tag),
                    parent_ids=frozenset({vpc_id}) if vpc_id else frozenset(),
                    name=group.get("GroupName", group["GroupId"]),
                    region=self.region,
                    tags=tags,
                    attributes={"vpc_id": vpc_id},
                )
            )
        return resources

    def _collect_instances(self, client: Any, context: ScanContext, subnet_tags: Dict[str, str]) -> List[Resource]:
        resources = []
        for reservation in self._paginate(
            client,
            "describe_instances",
            "Reservations",
            Filters=[{"Name": "subnet-id", "Values": list(subnet_tags)}],
        ):
            for instance in reservation.get("Instances", []):
                state = instance.get("State", {}).get("Name")
                status = self.status_for(state)
                tags = tags_to_dict(instance.get("Tags"))
                if status == ResourceStatus.GONE or context.is_detached(tags):
                    continue
                subnet_id = instance.get("SubnetId", "")
                resources.append(
                    Resource(
                        resource_id=instance["InstanceId"],
                        kind=ResourceKind.INSTANCE,
                        status=status,
                        deployment_tag=subnet_tags.get(subnet_id, context.deployment_tag),
                        parent_ids=frozenset({subnet_id}) if subnet_id else frozenset(),
                        name=tags.get("Name", instance["InstanceId"]),
                        region=self.region,
                        tags=tags,
                        attributes={"subnet_id": subnet_id, "state": state},
                    )
                )
        return resources

    def _collect_interfaces(self, client: Any, context: ScanContext, subnet_tags: Dict[str, str]) -> List[Resource]:
        resources = []
        seen: Set[str] = set()
        for eni in self._paginate(
            client,
            "describe_network_interfaces",
            "NetworkInterfaces",
            Filters=[{"Name": "subnet-id", "Values": list(subnet_tags)}],
        ):
            eni_id = eni["NetworkInterfaceId"]
            tags = tags_to_dict(eni.get("TagSet"))
            if eni_id in seen or context.is_detached(tags):
                continue
            seen.add(eni_id)
            subnet_id = eni.get("SubnetId", "")
            attachment = eni.get("Attachment") or {}
            resources.append(
                Resource(
                    resource_id=eni_id,
                    kind=ResourceKind.INTERFACE,
                    deployment_tag=subnet_tags.get(subnet_id, context.deployment_tag),
                    parent_ids=frozenset({subnet_id}) if subnet_id else frozenset(),
                    name=eni.get("Description") or eni_id,
                    region=self.region,
                    tags=tags,
                    attributes={
                        "status": eni.get("Status", "unknown"),
                        "subnet_id": subnet_id,
                        "vpc_id": eni.get("VpcId", ""),
                        "interface_type": eni.get("InterfaceType", "interface"),
                        "requester_managed": eni.get("RequesterManaged", False),
                        "requester_id": eni.get("RequesterId", ""),
                        "description": eni.get("Description", ""),
                        "attachment_id": attachment.get("AttachmentId"),
                        "instance_id": attachment.get("InstanceId"),
                        "instance_owner_id": attachment.get("InstanceOwnerId"),
                    },
                )
            )
        return resources
