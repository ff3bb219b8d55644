"""Cleanup action model: one unit of idempotent remedial work."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .resource import Resource


class CleanupOperation(Enum):
    """Remedial operations, listed in the order the executor runs them."""

    DELETE_MANAGED_SERVICE = "delete-managed-service"
    DEREGISTER_TARGET = "deregister-target"
    DETACH_INTERFACE = "detach-interface"
    PURGE_OBJECT_VERSIONS = "purge-object-versions"


class ActionResult(Enum):
    """Outcome of applying a cleanup action."""

    SUCCESS = "success"
    ALREADY_CLEAN = "already-clean"
    BLOCKED = "blocked"
    PERMISSION_DENIED = "permission-denied"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self in (ActionResult.SUCCESS, ActionResult.ALREADY_CLEAN)


@dataclass
class CleanupAction:
    """A unit of remedial work against one resource.

    Every action is idempotent: applying it again after success yields
    ALREADY_CLEAN instead of an error.

    Attributes:
        target: Resource the action unblocks
        operation: What to do
        detail: Operation parameters (object key/version id, target id/port)
        result: Outcome once applied (None while planned)
        error: Error text when the result is not ok
    """

    target: Resource
    operation: CleanupOperation
    detail: Dict[str, Any] = field(default_factory=dict)
    result: Optional[ActionResult] = None
    error: Optional[str] = None

    @property
    def idempotent(self) -> bool:
        return True

    @property
    def key(self) -> tuple:
        """Identity used to de-duplicate actions emitted by several edges."""
        return (self.operation, self.target.resource_id, tuple(sorted(self.detail.items())))

    def describe(self) -> str:
        if self.operation == CleanupOperation.PURGE_OBJECT_VERSIONS and self.detail:
            return (
                f"{self.operation.value} {self.target.resource_id} "
                f"key={self.detail.get('key')} version={self.detail.get('version_id')}"
            )
        if self.operation == CleanupOperation.DEREGISTER_TARGET and self.detail:
            return f"{self.operation.value} {self.target.resource_id} target={self.detail.get('target_id')}"
        return f"{self.operation.value} {self.target.resource_id}"

    def remediation_command(self) -> str:
        """Exact command an operator could run to perform this action by hand."""
        target = self.target
        if self.operation == CleanupOperation.DETACH_INTERFACE:
            return f"aws ec2 delete-network-interface --network-interface-id {target.resource_id}"
        if self.operation == CleanupOperation.PURGE_OBJECT_VERSIONS:
            if self.detail.get("version_id"):
                return (
                    f"aws s3api delete-object --bucket {target.resource_id} "
                    f"--key '{self.detail.get('key')}' --version-id {self.detail.get('version_id')}"
                )
            return f"aws s3 rm s3://{target.resource_id} --recursive"
        if self.operation == CleanupOperation.DEREGISTER_TARGET:
            target_spec = f"Id={self.detail.get('target_id')}"
            if self.detail.get("port"):
                target_spec += f",Port={self.detail['port']}"
            return (
                f"aws elbv2 deregister-targets --target-group-arn {target.resource_id} "
                f"--targets {target_spec}"
            )
        if self.operation == CleanupOperation.DELETE_MANAGED_SERVICE:
            namespace, _, name = target.resource_id.partition("/")
            return f"kubectl delete svc {name} -n {namespace} --timeout=60s"
        return f"# no manual command known for {self.operation.value}"
