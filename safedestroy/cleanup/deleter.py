"""Direct provider deletion of resources.

Maps each resource kind to the boto3 call that deletes it. Used by the
targeted destroy phase for live resources the state manifest does not
track, and by the manual console.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from ..aws.provider import AwsProvider
from ..errors import CallTimeout, classify_client_error, is_not_found
from ..models.resource import Resource, ResourceKind
from ..models.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT = 1200
DEFAULT_WAIT_DELAY = 15


class ResourceDeleter:
    """Provider-side deletion of individual resources.

    Retries DependencyBlocked and throttling through the RetryPolicy; any
    other failure is raised as a TeardownError subclass.
    """

    # Deletion method mapping: kind -> (service, method, id_field)
    DELETION_METHODS: Dict[ResourceKind, Tuple[str, str, str]] = {
        ResourceKind.INSTANCE: ("ec2", "terminate_instances", "InstanceIds"),
        ResourceKind.SECURITY_GROUP: ("ec2", "delete_security_group", "GroupId"),
        ResourceKind.NETWORK: ("ec2", "delete_vpc", "VpcId"),
        ResourceKind.SUBNET: ("ec2", "delete_subnet", "SubnetId"),
        ResourceKind.INTERNET_GATEWAY: ("ec2", "delete_internet_gateway", "InternetGatewayId"),
        ResourceKind.ROUTE_TABLE: ("ec2", "delete_route_table", "RouteTableId"),
        ResourceKind.INTERFACE: ("ec2", "delete_network_interface", "NetworkInterfaceId"),
        ResourceKind.NAT_GATEWAY: ("ec2", "delete_nat_gateway", "NatGatewayId"),
        ResourceKind.VPC_ENDPOINT: ("ec2", "delete_vpc_endpoints", "VpcEndpointIds"),
        ResourceKind.OBJECT_STORE: ("s3", "delete_bucket", "Bucket"),
        ResourceKind.LOCK_TABLE: ("dynamodb", "delete_table", "TableName"),
        ResourceKind.MANAGED_CLUSTER: ("eks", "delete_cluster", "name"),
        ResourceKind.NODE_GROUP: ("eks", "delete_nodegroup", "nodegroupName"),
        ResourceKind.LOAD_BALANCER: ("elbv2", "delete_load_balancer", "LoadBalancerArn"),
        ResourceKind.TARGET_GROUP: ("elbv2", "delete_target_group", "TargetGroupArn"),
    }

    # Kinds whose delete call only starts the deletion: kind -> (service, waiter, id_field)
    DELETION_WAITERS: Dict[ResourceKind, Tuple[str, str, str]] = {
        ResourceKind.INSTANCE: ("ec2", "instance_terminated", "InstanceIds"),
        ResourceKind.NAT_GATEWAY: ("ec2", "nat_gateway_deleted", "NatGatewayIds"),
        ResourceKind.NODE_GROUP: ("eks", "nodegroup_deleted", "nodegroupName"),
        ResourceKind.MANAGED_CLUSTER: ("eks", "cluster_deleted", "name"),
        ResourceKind.LOAD_BALANCER: ("elbv2", "load_balancers_deleted", "LoadBalancerArns"),
        ResourceKind.LOCK_TABLE: ("dynamodb", "table_not_exists", "TableName"),
    }

    def __init__(
        self,
        provider: AwsProvider,
        retry_policy: Optional[RetryPolicy] = None,
        wait_timeout: int = DEFAULT_WAIT_TIMEOUT,
        wait_delay: int = DEFAULT_WAIT_DELAY,
    ):
        """Initialize resource deleter.

        Args:
            provider: Provider gateway supplying boto3 clients
            retry_policy: Retry policy (default: 3 attempts)
            wait_timeout: Seconds to wait for an asynchronous delete to finish
            wait_delay: Seconds between waiter polls
        """
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.wait_timeout = wait_timeout
        self.wait_delay = wait_delay

    def supports(self, kind: ResourceKind) -> bool:
        return kind in self.DELETION_METHODS or kind == ResourceKind.ORCHESTRATOR_SERVICE

    def delete(self, resource: Resource) -> bool:
        """Delete a resource at the provider.

        Blocks until the deletion has finished for kinds whose delete call
        returns before the resource is gone.

        Args:
            resource: Resource to delete

        Returns:
            True if deleted, False if it was already gone

        Raises:
            ValueError: If the kind has no deletion method
            TeardownError: If deletion fails after retries
            CallTimeout: If an asynchronous delete outlasts the wait timeout
        """
        if resource.kind == ResourceKind.ORCHESTRATOR_SERVICE:
            namespace, _, name = resource.resource_id.partition("/")
            return self.retry_policy.run(
                lambda: self.provider.delete_orchestrator_service(namespace, name),
                description=f"delete service {resource.resource_id}",
            )

        if resource.kind not in self.DELETION_METHODS:
            raise ValueError(f"Unsupported resource kind: {resource.kind.value}")

        deleted = self.retry_policy.run(
            lambda: self._attempt_deletion(resource),
            description=f"delete {resource.kind.value} {resource.resource_id}",
        )
        if deleted:
            self._wait_deleted(resource)
            logger.info(f"Deleted {resource.kind.value}: {resource.resource_id}")
        else:
            logger.info(f"{resource.kind.value} {resource.resource_id} already deleted")
        return deleted

    def _attempt_deletion(self, resource: Resource) -> bool:
        service, method, id_field = self.DELETION_METHODS[resource.kind]
        client = self.provider.client(service)
        try:
            self._prepare(client, resource)
            response = getattr(client, method)(**self._build_deletion_params(resource, id_field))
            if resource.kind == ResourceKind.VPC_ENDPOINT:
                # Batch call: failures come back in the response, not as an exception
                for failure in response.get("Unsuccessful", []):
                    raise ClientError({"Error": failure.get("Error", {})}, method)
            return True
        except ClientError as e:
            if is_not_found(e):
                return False
            raise classify_client_error(e, [resource.resource_id], self.manual_command(resource)) from e
        except BotoCoreError as e:
            raise classify_client_error(e, [resource.resource_id], self.manual_command(resource)) from e

    def _wait_deleted(self, resource: Resource) -> None:
        if resource.kind not in self.DELETION_WAITERS:
            return
        service, waiter_name, id_field = self.DELETION_WAITERS[resource.kind]
        logger.info(f"Waiting for {resource.kind.value} {resource.resource_id} to finish deleting")
        waiter = self.provider.client(service).get_waiter(waiter_name)
        try:
            waiter.wait(
                **self._build_deletion_params(resource, id_field),
                WaiterConfig={
                    "Delay": self.wait_delay,
                    "MaxAttempts": max(1, self.wait_timeout // max(self.wait_delay, 1)),
                },
            )
        except WaiterError as e:
            raise CallTimeout(
                f"{resource.kind.value} {resource.resource_id} still deleting after {self.wait_timeout}s: {e}",
                [resource.resource_id],
                self.manual_command(resource),
            ) from e

    def _prepare(self, client: Any, resource: Resource) -> None:
        """Detach what must be detached before the delete call."""
        if resource.kind == ResourceKind.INTERNET_GATEWAY:
            for vpc_id in resource.attributes.get("vpc_ids", []):
                try:
                    client.detach_internet_gateway(InternetGatewayId=resource.resource_id, VpcId=vpc_id)
                except ClientError as e:
                    if not is_not_found(e) and "Gateway.NotAttached" not in str(e):
                        raise
        elif resource.kind == ResourceKind.ROUTE_TABLE:
            for association_id in resource.attributes.get("association_ids", []):
                try:
                    client.disassociate_route_table(AssociationId=association_id)
                except ClientError as e:
                    if not is_not_found(e):
                        raise

    def _build_deletion_params(self, resource: Resource, id_field: str) -> Dict[str, Any]:
        # Plural form indicates list
        if id_field.endswith("Ids"):
            return {id_field: [resource.resource_id]}
        if id_field.endswith("Arns"):
            return {id_field: [resource.arn or resource.resource_id]}

        if resource.kind == ResourceKind.NODE_GROUP:
            cluster, _, nodegroup = resource.resource_id.partition("/")
            return {"clusterName": cluster, "nodegroupName": nodegroup}

        if "Arn" in id_field:
            return {id_field: resource.arn or resource.resource_id}

        return {id_field: resource.resource_id}

    @staticmethod
    def manual_command(resource: Resource) -> str:
        """AWS CLI command an operator could run to delete the resource by hand."""
        rid = resource.resource_id
        commands = {
            ResourceKind.INSTANCE: f"aws ec2 terminate-instances --instance-ids {rid}",
            ResourceKind.SECURITY_GROUP: f"aws ec2 delete-security-group --group-id {rid}",
            ResourceKind.NETWORK: f"aws ec2 delete-vpc --vpc-id {rid}",
            ResourceKind.SUBNET: f"aws ec2 delete-subnet --subnet-id {rid}",
            ResourceKind.INTERNET_GATEWAY: f"aws ec2 delete-internet-gateway --internet-gateway-id {rid}",
            ResourceKind.ROUTE_TABLE: f"aws ec2 delete-route-table --route-table-id {rid}",
            ResourceKind.INTERFACE: f"aws ec2 delete-network-interface --network-interface-id {rid}",
            ResourceKind.NAT_GATEWAY: f"aws ec2 delete-nat-gateway --nat-gateway-id {rid}",
            ResourceKind.VPC_ENDPOINT: f"aws ec2 delete-vpc-endpoints --vpc-endpoint-ids {rid}",
            ResourceKind.OBJECT_STORE: f"aws s3 rb s3://{rid} --force",
            ResourceKind.LOCK_TABLE: f"aws dynamodb delete-table --table-name {rid}",
            ResourceKind.MANAGED_CLUSTER: f"aws eks delete-cluster --name {rid}",
            ResourceKind.LOAD_BALANCER: f"aws elbv2 delete-load-balancer --load-balancer-arn {resource.arn or rid}",
            ResourceKind.TARGET_GROUP: f"aws elbv2 delete-target-group --target-group-arn {resource.arn or rid}",
        }
        if resource.kind == ResourceKind.NODE_GROUP:
            cluster, _, nodegroup = rid.partition("/")
            return f"aws eks delete-nodegroup --cluster-name {cluster} --nodegroup-name {nodegroup}"
        if resource.kind == ResourceKind.ORCHESTRATOR_SERVICE:
            namespace, _, name = rid.partition("/")
            return f"kubectl delete svc {name} -n {namespace} --timeout=60s"
        return commands.get(resource.kind, f"# delete {resource.kind.value} {rid} in the AWS console")
