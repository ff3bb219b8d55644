"""In-memory stand-ins for AWS, terraform and the state lock.

The fakes keep one shared view of "the cloud" so that cleanup, destroy and
rescans observe each other's effects, the way the real provider does.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from safedestroy.audit import AuditStorage
from safedestroy.cleanup.deleter import ResourceDeleter
from safedestroy.cleanup.executor import CleanupExecutor
from safedestroy.cli.config import Config
from safedestroy.cli.runtime import Runtime
from safedestroy.detect.detector import BlockingDependencyDetector
from safedestroy.errors import DependencyBlocked, PermissionDenied
from safedestroy.inventory.collectors.base import BaseResourceCollector, ScanContext
from safedestroy.inventory.scanner import InventoryScanner
from safedestroy.models.manifest import ManifestEntry, TF_TYPE_KINDS
from safedestroy.models.resource import Resource, ResourceKind
from safedestroy.models.retry_policy import RetryPolicy
from safedestroy.terraform.runner import TerraformResult

TAG = "demo-v1"
TAG_KEY = "Deployment"
MARKER_KEY = "safedestroy:detached-from"


def no_sleep(seconds: float) -> None:
    """Sleep replacement for tests."""


def fast_policy(max_attempts: int = 3) -> RetryPolicy:
    """Retry policy that never waits."""
    return RetryPolicy(max_attempts=max_attempts, base_delay=0.0, max_delay=0.0, jitter=False, sleep=no_sleep)


def make_resource(
    resource_id: str,
    kind: ResourceKind,
    tag: str = TAG,
    parent_ids: Iterable[str] = (),
    arn: Optional[str] = None,
    **attributes: Any,
) -> Resource:
    """Create a tagged resource for testing.

    Args:
        resource_id: Provider id
        kind: Resource kind
        tag: Deployment tag value
        parent_ids: Structural parents
        arn: ARN (optional)
        **attributes: Provider attributes (status, subnet_id, vpc_id, ...)

    Returns:
        Resource carrying the deployment tag
    """
    return Resource(
        resource_id=resource_id,
        kind=kind,
        deployment_tag=tag,
        parent_ids=frozenset(parent_ids),
        arn=arn,
        region="us-east-1",
        tags={TAG_KEY: tag},
        attributes=dict(attributes),
    )


# Terraform type for each kind, used to build manifest entries
_KIND_TF_TYPES = {}
for _tf_type, _kind in TF_TYPE_KINDS.items():
    _KIND_TF_TYPES.setdefault(_kind, _tf_type)


def manifest_entry(address: str, resource_id: str, kind: ResourceKind) -> ManifestEntry:
    return ManifestEntry(address=address, tf_type=_KIND_TF_TYPES[kind], resource_id=resource_id, kind=kind)


class FakeProvider:
    """Provider gateway backed by dictionaries.

    Attributes:
        resources: Live resources by id
        versions: Object versions and delete markers per bucket
        current_keys: Current (unversioned view) object keys per bucket
        targets: Registered targets per target group
        denied: Resource ids whose mutating calls raise PermissionDenied
        calls: Every mutating call, in order
    """

    def __init__(self, region: str = "us-east-1") -> None:
        self.region = region
        self.kubectl = None
        self.resources: Dict[str, Resource] = {}
        self.versions: Dict[str, List[Dict[str, Any]]] = {}
        self.current_keys: Dict[str, List[str]] = {}
        self.targets: Dict[str, List[Dict[str, Any]]] = {}
        self.denied: Set[str] = set()
        self.calls: List[Tuple[Any, ...]] = []
        self._lock = threading.Lock()

    def add(self, *resources: Resource) -> None:
        for resource in resources:
            self.resources[resource.resource_id] = resource

    def _record(self, *call: Any) -> None:
        with self._lock:
            self.calls.append(call)

    def _check_allowed(self, resource_id: str) -> None:
        if resource_id in self.denied:
            raise PermissionDenied(f"AccessDenied: not allowed to modify {resource_id}", [resource_id])

    def calls_of(self, name: str) -> List[Tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]

    # Object store

    def list_object_versions(self, bucket: str, prefix: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            dict(v) for v in self.versions.get(bucket, []) if prefix is None or v["key"].startswith(prefix)
        ]

    def object_version_exists(self, bucket: str, key: str, version_id: str) -> bool:
        return any(v["key"] == key and v["version_id"] == version_id for v in self.versions.get(bucket, []))

    def delete_object_version(self, bucket: str, key: str, version_id: str) -> bool:
        self._record("delete_object_version", bucket, key, version_id)
        self._check_allowed(bucket)
        with self._lock:
            before = len(self.versions.get(bucket, []))
            self.versions[bucket] = [
                v for v in self.versions.get(bucket, []) if not (v["key"] == key and v["version_id"] == version_id)
            ]
            return len(self.versions[bucket]) < before

    def list_current_keys(self, bucket: str) -> List[str]:
        return list(self.current_keys.get(bucket, []))

    def delete_keys(self, bucket: str, keys: List[str]) -> None:
        self._record("delete_keys", bucket, tuple(keys))
        self._check_allowed(bucket)
        self.current_keys[bucket] = [k for k in self.current_keys.get(bucket, []) if k not in keys]

    # Target groups

    def list_registered_targets(self, target_group_arn: str) -> List[Dict[str, Any]]:
        return [dict(t) for t in self.targets.get(target_group_arn, [])]

    def deregister_target(self, target_group_arn: str, target_id: str, port: Optional[int] = None) -> bool:
        self._record("deregister_target", target_group_arn, target_id)
        self._check_allowed(target_group_arn)
        for target in self.targets.get(target_group_arn, []):
            if target["target_id"] == target_id:
                target["state"] = "draining"
                return True
        return False

    def wait_target_deregistered(self, target_group_arn: str, target_id: str, port=None, timeout=300, delay=15):
        self._record("wait_target_deregistered", target_group_arn, target_id)
        self.targets[target_group_arn] = [
            t for t in self.targets.get(target_group_arn, []) if t["target_id"] != target_id
        ]

    # Network interfaces

    def describe_interface(self, interface_id: str) -> Optional[Dict[str, Any]]:
        resource = self.resources.get(interface_id)
        if resource is None or resource.kind != ResourceKind.INTERFACE:
            return None
        return {"NetworkInterfaceId": interface_id, "Status": resource.attributes.get("status", "available")}

    def delete_interface(self, interface_id: str) -> bool:
        self._record("delete_interface", interface_id)
        self._check_allowed(interface_id)
        resource = self.resources.get(interface_id)
        if resource is None:
            return False
        if resource.attributes.get("status") == "in-use":
            raise DependencyBlocked(f"InvalidNetworkInterface.InUse: {interface_id}", [interface_id])
        del self.resources[interface_id]
        return True

    def count_available_interfaces(self, subnet_ids: List[str]) -> int:
        return sum(
            1
            for r in self.resources.values()
            if r.kind == ResourceKind.INTERFACE
            and r.attributes.get("subnet_id") in subnet_ids
            and r.attributes.get("status") == "available"
        )

    # Orchestrator services

    def orchestrator_service_exists(self, namespace: str, name: str) -> bool:
        return f"{namespace}/{name}" in self.resources

    def delete_orchestrator_service(self, namespace: str, name: str) -> bool:
        self._record("delete_orchestrator_service", f"{namespace}/{name}")
        return self.resources.pop(f"{namespace}/{name}", None) is not None

    # Tags

    def replace_deployment_tag(self, resource: Resource, tag_key: str, marker_key: str) -> None:
        self._record("replace_deployment_tag", resource.resource_id)
        self._check_allowed(resource.resource_id)
        current = self.resources[resource.resource_id]
        tags = dict(current.tags)
        tags.pop(tag_key, None)
        tags[marker_key] = current.deployment_tag
        self.resources[resource.resource_id] = replace(current, tags=tags)

    # Dependencies as the real provider enforces them

    def blockers(self, resource_id: str) -> List[str]:
        """Ids of whatever still prevents deleting ``resource_id``."""
        resource = self.resources.get(resource_id)
        if resource is None:
            return []
        found = []
        for other in self.resources.values():
            if other.resource_id == resource_id:
                continue
            if resource.kind == ResourceKind.SUBNET and other.attributes.get("subnet_id") == resource_id:
                found.append(other.resource_id)
            elif resource.kind == ResourceKind.NETWORK and other.attributes.get("vpc_id") == resource_id:
                found.append(other.resource_id)
            elif resource_id in other.parent_ids:
                found.append(other.resource_id)
        if resource.kind == ResourceKind.OBJECT_STORE:
            found.extend(f"{resource_id}#{v['key']}@{v['version_id']}" for v in self.versions.get(resource_id, []))
            found.extend(f"{resource_id}/{k}" for k in self.current_keys.get(resource_id, []))
        if resource.kind == ResourceKind.TARGET_GROUP:
            found.extend(t["target_id"] for t in self.targets.get(resource_id, []))
        return found

    def remove(self, resource_id: str) -> bool:
        """Delete a resource the way the provider would, honouring dependencies."""
        self._record("remove", resource_id)
        self._check_allowed(resource_id)
        resource = self.resources.get(resource_id)
        if resource is None:
            return False
        if resource.kind == ResourceKind.INTERFACE and resource.attributes.get("status") == "in-use":
            raise DependencyBlocked(f"InvalidNetworkInterface.InUse: {resource_id}", [resource_id])
        blocking = self.blockers(resource_id)
        if blocking:
            raise DependencyBlocked(f"DependencyViolation: {resource_id} blocked by {blocking}", [resource_id])
        del self.resources[resource_id]
        return True


class FakeCollector(BaseResourceCollector):
    """Collector that reads the FakeProvider's resources."""

    @property
    def service_name(self) -> str:
        return "fake"

    def collect(self, context: ScanContext) -> List[Resource]:
        found = []
        for resource in list(self.provider.resources.values()):
            if resource.resource_id in context.excluded_ids:
                continue
            if context.match(resource.tags) is None:
                continue
            found.append(resource)
        return found


class FakeLock:
    """Lock recording every hold; nested holds are a test failure."""

    def __init__(self) -> None:
        self.held = False
        self.operations: List[str] = []

    @contextmanager
    def hold(self, operation: str = "destroy"):
        assert not self.held, "lock acquired twice"
        self.held = True
        self.operations.append(operation)
        try:
            yield ["-lock=false"]
        finally:
            self.held = False


class FakeTerraform:
    """terraform stand-in that destroys FakeProvider resources in dependency order.

    Attributes:
        entries: Current state manifest
        calls: (command, targets, lock held) for every destroy/state rm
        fail_full: Make every untargeted destroy fail
    """

    def __init__(
        self,
        provider: FakeProvider,
        entries: Optional[List[ManifestEntry]] = None,
        lock: Optional[FakeLock] = None,
    ) -> None:
        self.provider = provider
        self.entries = list(entries or [])
        self.lock = lock
        self.calls: List[Tuple[str, Optional[List[str]], bool]] = []
        self.fail_full = False

    def _lock_held(self) -> bool:
        return self.lock.held if self.lock is not None else False

    def show_json(self) -> Dict[str, Any]:
        return {
            "values": {
                "root_module": {
                    "resources": [
                        {"address": e.address, "mode": "managed", "type": e.tf_type, "values": {"id": e.resource_id}}
                        for e in self.entries
                    ]
                }
            }
        }

    def destroy(self, targets: Optional[Sequence[str]] = None, lock_args: Sequence[str] = ()) -> TerraformResult:
        self.calls.append(("destroy", list(targets) if targets else None, self._lock_held()))
        if targets is None and self.fail_full:
            raise DependencyBlocked("terraform destroy failed (rc=1): DependencyViolation")

        pending = [e for e in self.entries if targets is None or e.address in targets]
        progress = True
        while pending and progress:
            progress = False
            for entry in list(pending):
                if self.provider.blockers(entry.resource_id):
                    continue
                self.provider.resources.pop(entry.resource_id, None)
                self.entries.remove(entry)
                pending.remove(entry)
                progress = True

        if pending:
            addresses = [e.address for e in pending]
            raise DependencyBlocked(f"terraform destroy failed (rc=1): DependencyViolation on {addresses}", addresses)
        return TerraformResult(0, "Destroy complete!", "")

    def state_list(self) -> List[str]:
        return [e.address for e in self.entries]

    def state_rm(self, addresses: Sequence[str], lock_args: Sequence[str] = ()) -> TerraformResult:
        self.calls.append(("state-rm", list(addresses), self._lock_held()))
        self.entries = [e for e in self.entries if e.address not in addresses]
        return TerraformResult(0, "", "")


class FakeDeleter:
    """Deleter that removes resources from the FakeProvider."""

    def __init__(self, provider: FakeProvider) -> None:
        self.provider = provider
        self.deleted: List[str] = []

    def supports(self, kind: ResourceKind) -> bool:
        return True

    def delete(self, resource: Resource) -> bool:
        deleted = self.provider.remove(resource.resource_id)
        self.deleted.append(resource.resource_id)
        return deleted

    manual_command = staticmethod(ResourceDeleter.manual_command)


def build_scanner(provider: FakeProvider, terraform: Optional[FakeTerraform] = None) -> InventoryScanner:
    return InventoryScanner(
        provider=provider,
        terraform=terraform,
        tag_key=TAG_KEY,
        marker_key=MARKER_KEY,
        excluded_ids=["tf-state-bucket"],
        collectors=[FakeCollector],
    )


def demo_v1_cloud(lock: Optional[FakeLock] = None) -> Tuple[FakeProvider, FakeTerraform]:
    """The demo-v1 deployment.

    One network, one subnet holding two orphaned interfaces, and one
    versioned bucket with three versions across two keys.
    """
    provider = FakeProvider()
    provider.add(
        make_resource("vpc-1", ResourceKind.NETWORK),
        make_resource("subnet-1", ResourceKind.SUBNET, parent_ids=["vpc-1"], vpc_id="vpc-1"),
        make_resource(
            "eni-1",
            ResourceKind.INTERFACE,
            status="available",
            subnet_id="subnet-1",
            vpc_id="vpc-1",
            description="aws-K8S-i-0abc",
        ),
        make_resource(
            "eni-2",
            ResourceKind.INTERFACE,
            status="available",
            subnet_id="subnet-1",
            vpc_id="vpc-1",
            description="aws-K8S-i-0def",
        ),
        make_resource("demo-v1-artifacts", ResourceKind.OBJECT_STORE, versioning="Enabled"),
    )
    provider.versions["demo-v1-artifacts"] = [
        {"key": "app.tar.gz", "version_id": "v1", "is_delete_marker": False},
        {"key": "app.tar.gz", "version_id": "v2", "is_delete_marker": False},
        {"key": "config.json", "version_id": "v1", "is_delete_marker": True},
    ]
    terraform = FakeTerraform(
        provider,
        [
            manifest_entry("aws_vpc.main", "vpc-1", ResourceKind.NETWORK),
            manifest_entry("aws_subnet.private", "subnet-1", ResourceKind.SUBNET),
            manifest_entry("aws_s3_bucket.artifacts", "demo-v1-artifacts", ResourceKind.OBJECT_STORE),
        ],
        lock=lock,
    )
    return provider, terraform


def fake_runtime(
    provider: FakeProvider,
    terraform: FakeTerraform,
    lock: FakeLock,
    audit_dir: str,
    dry_run: bool = False,
    config: Optional[Config] = None,
) -> Runtime:
    """Runtime wired to the fakes, as build_runtime would wire the real thing."""
    config = config or Config(max_attempts=2, eni_wait_timeout=0)
    return Runtime(
        config=config,
        provider=provider,
        terraform=terraform,
        scanner=build_scanner(provider, terraform),
        detector=BlockingDependencyDetector(provider),
        executor=CleanupExecutor(provider, retry_policy=fast_policy(), dry_run=dry_run),
        deleter=FakeDeleter(provider),
        lock=lock,
        audit=AuditStorage(audit_dir),
        retry_policy=fast_policy(max_attempts=config.max_attempts),
    )
