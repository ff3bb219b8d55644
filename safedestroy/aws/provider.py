"""Provider gateway used by the detector, executor and console.

Wraps the boto3 (and kubectl) calls that inspect sub-entities of a resource
or mutate it. Every botocore error leaves this module already translated
into the teardown taxonomy; "not found" on a delete is reported as a False
return value, never as an error.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, TypeVar

from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from ..errors import CallTimeout, TeardownError, classify_client_error, is_not_found
from ..kube.kubectl import KubectlClient, annotation_key
from ..models.resource import Resource, ResourceKind
from .client import DEFAULT_CALL_TIMEOUT, create_boto_client

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Kinds tagged through the EC2 API rather than the resource groups tagging API
EC2_TAGGED_KINDS = {
    ResourceKind.NETWORK,
    ResourceKind.SUBNET,
    ResourceKind.INTERFACE,
    ResourceKind.NAT_GATEWAY,
    ResourceKind.VPC_ENDPOINT,
    ResourceKind.INTERNET_GATEWAY,
    ResourceKind.ROUTE_TABLE,
    ResourceKind.SECURITY_GROUP,
    ResourceKind.INSTANCE,
}


class AwsProvider:
    """Thin, thread-safe gateway over the AWS APIs the orchestrator mutates.

    Attributes:
        region: AWS region
        profile_name: AWS profile name (optional)
        call_timeout: Per-call timeout in seconds
        kubectl: kubectl client for orchestrator services (optional)
    """

    def __init__(
        self,
        region: Optional[str] = None,
        profile_name: Optional[str] = None,
        call_timeout: int = DEFAULT_CALL_TIMEOUT,
        kubectl: Optional[KubectlClient] = None,
    ) -> None:
        self.region = region
        self.profile_name = profile_name
        self.call_timeout = call_timeout
        self.kubectl = kubectl
        self._clients: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def client(self, service_name: str) -> Any:
        """Return a cached boto3 client (clients are thread-safe, creation is not)."""
        with self._lock:
            if service_name not in self._clients:
                self._clients[service_name] = create_boto_client(
                    service_name=service_name,
                    region_name=self.region,
                    profile_name=self.profile_name,
                    call_timeout=self.call_timeout,
                )
            return self._clients[service_name]

    def _call(
        self,
        func: Callable[[], T],
        resource_ids: List[str],
        remediation: Optional[str] = None,
    ) -> T:
        try:
            return func()
        except (ClientError, BotoCoreError) as e:
            raise classify_client_error(e, resource_ids, remediation) from e

    def _delete(self, func: Callable[[], Any], resource_id: str, remediation: str) -> bool:
        try:
            func()
            return True
        except ClientError as e:
            if is_not_found(e):
                logger.debug(f"{resource_id} already gone")
                return False
            raise classify_client_error(e, [resource_id], remediation) from e
        except BotoCoreError as e:
            raise classify_client_error(e, [resource_id], remediation) from e

    # ------------------------------------------------------------------
    # Object store versions
    # ------------------------------------------------------------------

    def list_object_versions(self, bucket: str, prefix: Optional[str] = None) -> List[Dict[str, Any]]:
        """List every object version and delete marker in a bucket.

        Args:
            bucket: Bucket name
            prefix: Restrict to keys starting with this prefix (optional)

        Returns:
            List of dicts with key, version_id and is_delete_marker
        """
        s3 = self.client("s3")

        def _list() -> List[Dict[str, Any]]:
            entries: List[Dict[str, Any]] = []
            paginator = s3.get_paginator("list_object_versions")
            params: Dict[str, Any] = {"Bucket": bucket}
            if prefix is not None:
                params["Prefix"] = prefix
            for page in paginator.paginate(**params):
                for version in page.get("Versions", []) or []:
                    entries.append(
                        {"key": version["Key"], "version_id": version["VersionId"], "is_delete_marker": False}
                    )
                for marker in page.get("DeleteMarkers", []) or []:
                    entries.append(
                        {"key": marker["Key"], "version_id": marker["VersionId"], "is_delete_marker": True}
                    )
            return entries

        try:
            return _list()
        except ClientError as e:
            if is_not_found(e):
                return []
            raise classify_client_error(e, [bucket], f"aws s3api list-object-versions --bucket {bucket}") from e
        except BotoCoreError as e:
            raise classify_client_error(e, [bucket]) from e

    def object_version_exists(self, bucket: str, key: str, version_id: str) -> bool:
        for entry in self.list_object_versions(bucket, prefix=key):
            if entry["key"] == key and entry["version_id"] == version_id:
                return True
        return False

    def delete_object_version(self, bucket: str, key: str, version_id: str) -> bool:
        s3 = self.client("s3")
        return self._delete(
            lambda: s3.delete_object(Bucket=bucket, Key=key, VersionId=version_id),
            bucket,
            f"aws s3api delete-object --bucket {bucket} --key '{key}' --version-id {version_id}",
        )

    def list_current_keys(self, bucket: str) -> List[str]:
        """List keys of current (unversioned view) objects in a bucket."""
        s3 = self.client("s3")

        def _list() -> List[str]:
            keys: List[str] = []
            paginator = s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket):
                keys.extend(obj["Key"] for obj in page.get("Contents", []) or [])
            return keys

        try:
            return _list()
        except ClientError as e:
            if is_not_found(e):
                return []
            raise classify_client_error(e, [bucket], f"aws s3 ls s3://{bucket} --recursive") from e

    def delete_keys(self, bucket: str, keys: List[str]) -> None:
        """Delete current objects in batches of 1000 (the DeleteObjects limit)."""
        s3 = self.client("s3")
        for start in range(0, len(keys), 1000):
            batch = keys[start : start + 1000]
            self._call(
                lambda: s3.delete_objects(
                    Bucket=bucket, Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True}
                ),
                [bucket],
                f"aws s3 rm s3://{bucket} --recursive",
            )

    # ------------------------------------------------------------------
    # Target groups
    # ------------------------------------------------------------------

    def list_registered_targets(self, target_group_arn: str) -> List[Dict[str, Any]]:
        """List targets registered in a target group, in any health state.

        Targets already draining are included; they still block deletion
        until the drain completes.
        """
        elbv2 = self.client("elbv2")
        try:
            response = elbv2.describe_target_health(TargetGroupArn=target_group_arn)
        except ClientError as e:
            if is_not_found(e):
                return []
            raise classify_client_error(e, [target_group_arn]) from e
        except BotoCoreError as e:
            raise classify_client_error(e, [target_group_arn]) from e

        targets = []
        for description in response.get("TargetHealthDescriptions", []):
            target = description.get("Target", {})
            targets.append(
                {
                    "target_id": target.get("Id"),
                    "port": target.get("Port"),
                    "state": description.get("TargetHealth", {}).get("State", "unknown"),
                }
            )
        return targets

    def deregister_target(self, target_group_arn: str, target_id: str, port: Optional[int] = None) -> bool:
        target: Dict[str, Any] = {"Id": target_id}
        if port:
            target["Port"] = port
        elbv2 = self.client("elbv2")
        return self._delete(
            lambda: elbv2.deregister_targets(TargetGroupArn=target_group_arn, Targets=[target]),
            target_group_arn,
            f"aws elbv2 deregister-targets --target-group-arn {target_group_arn} --targets Id={target_id}",
        )

    def wait_target_deregistered(
        self,
        target_group_arn: str,
        target_id: str,
        port: Optional[int] = None,
        timeout: int = 300,
        delay: int = 15,
    ) -> None:
        """Block until a target finishes draining.

        Raises:
            CallTimeout: If the drain outlasts ``timeout`` seconds
        """
        target: Dict[str, Any] = {"Id": target_id}
        if port:
            target["Port"] = port
        waiter = self.client("elbv2").get_waiter("target_deregistered")
        try:
            waiter.wait(
                TargetGroupArn=target_group_arn,
                Targets=[target],
                WaiterConfig={"Delay": delay, "MaxAttempts": max(1, timeout // max(delay, 1))},
            )
        except WaiterError as e:
            raise CallTimeout(
                f"Target {target_id} still draining after {timeout}s: {e}",
                [target_group_arn],
                f"aws elbv2 describe-target-health --target-group-arn {target_group_arn}",
            ) from e

    # ------------------------------------------------------------------
    # Network interfaces
    # ------------------------------------------------------------------

    def describe_interface(self, interface_id: str) -> Optional[Dict[str, Any]]:
        """Describe an ENI, or return None when it no longer exists."""
        ec2 = self.client("ec2")
        try:
            response = ec2.describe_network_interfaces(NetworkInterfaceIds=[interface_id])
        except ClientError as e:
            if is_not_found(e):
                return None
            raise classify_client_error(e, [interface_id]) from e
        except BotoCoreError as e:
            raise classify_client_error(e, [interface_id]) from e
        interfaces = response.get("NetworkInterfaces", [])
        return interfaces[0] if interfaces else None

    def delete_interface(self, interface_id: str) -> bool:
        ec2 = self.client("ec2")
        return self._delete(
            lambda: ec2.delete_network_interface(NetworkInterfaceId=interface_id),
            interface_id,
            f"aws ec2 delete-network-interface --network-interface-id {interface_id}",
        )

    def count_available_interfaces(self, subnet_ids: List[str]) -> int:
        """Count unattached ENIs left in the given subnets."""
        if not subnet_ids:
            return 0
        ec2 = self.client("ec2")
        response = self._call(
            lambda: ec2.describe_network_interfaces(
                Filters=[
                    {"Name": "subnet-id", "Values": list(subnet_ids)},
                    {"Name": "status", "Values": ["available"]},
                ]
            ),
            list(subnet_ids),
        )
        return len(response.get("NetworkInterfaces", []))

    # ------------------------------------------------------------------
    # Orchestrator services
    # ------------------------------------------------------------------

    def orchestrator_service_exists(self, namespace: str, name: str) -> bool:
        if self.kubectl is None:
            return False
        return self.kubectl.service_exists(namespace, name)

    def delete_orchestrator_service(self, namespace: str, name: str) -> bool:
        if self.kubectl is None:
            return False
        return self.kubectl.delete_service(namespace, name)

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def replace_deployment_tag(self, resource: Resource, tag_key: str, marker_key: str) -> None:
        """Swap the deployment tag for a detach marker tag.

        The resource keeps existing; it simply stops matching the deployment.
        Kubernetes services get the marker as an annotation instead of a tag.

        Args:
            resource: Resource being detached
            tag_key: Deployment tag key to remove
            marker_key: Tag key recording which deployment it was detached from

        Raises:
            TeardownError: If the resource cannot carry a marker (no ARN, or a
                service without kubectl)
        """
        marker = {marker_key: resource.deployment_tag or "unknown"}
        if resource.kind in EC2_TAGGED_KINDS:
            ec2 = self.client("ec2")
            self._call(
                lambda: ec2.create_tags(
                    Resources=[resource.resource_id], Tags=[{"Key": k, "Value": v} for k, v in marker.items()]
                ),
                [resource.resource_id],
            )
            self._call(
                lambda: ec2.delete_tags(Resources=[resource.resource_id], Tags=[{"Key": tag_key}]),
                [resource.resource_id],
                f"aws ec2 delete-tags --resources {resource.resource_id} --tags Key={tag_key}",
            )
            return

        if resource.kind == ResourceKind.ORCHESTRATOR_SERVICE:
            if self.kubectl is None:
                raise TeardownError(
                    f"Cannot mark {resource.resource_id} as detached: kubectl is not configured",
                    [resource.resource_id],
                )
            namespace, _, name = resource.resource_id.partition("/")
            key = annotation_key(marker_key)
            self.kubectl.annotate_service(namespace, name, key, marker[marker_key])
            return

        if not resource.arn:
            raise TeardownError(
                f"Cannot mark {resource.resource_id} as detached: no ARN known", [resource.resource_id]
            )

        tagging = self.client("resourcegroupstaggingapi")
        self._call(lambda: tagging.tag_resources(ResourceARNList=[resource.arn], Tags=marker), [resource.resource_id])
        self._call(
            lambda: tagging.untag_resources(ResourceARNList=[resource.arn], TagKeys=[tag_key]),
            [resource.resource_id],
            f"aws resourcegroupstaggingapi untag-resources --resource-arn-list {resource.arn} --tag-keys {tag_key}",
        )
