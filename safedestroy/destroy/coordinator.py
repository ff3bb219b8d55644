"""Destroy coordinator.

Drives ``terraform destroy`` through an explicit state machine:

    PLANNING -> FULL_DESTROY_ATTEMPT -> TARGETED_DESTROY_ATTEMPT -> ESCALATED -> VERIFIED

Every full attempt is preceded by a scan/detect/cleanup pass. Targeted
destroy walks the DestroyPlan one kind at a time; kind K+1 never starts
before kind K has returned. Every terraform invocation runs under the state
manifest lock.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Optional

from ..cleanup.deleter import ResourceDeleter
from ..cleanup.executor import CleanupExecutor
from ..detect.detector import BlockingDependencyDetector
from ..errors import PermissionDenied, ProviderUnavailable, TeardownError
from ..inventory.scanner import InventoryScanner
from ..models.cleanup_action import ActionResult, CleanupOperation
from ..models.destroy_plan import DestroyPlan
from ..models.inventory import InventorySnapshot
from ..models.resource import ResourceKind
from ..models.retry_policy import RetryPolicy
from ..models.teardown_operation import (
    CoordinatorState,
    OperationMode,
    StageError,
    TeardownOperation,
)
from ..terraform.runner import TerraformRunner

logger = logging.getLogger(__name__)

FATAL_ERRORS = (PermissionDenied, ProviderUnavailable)


def stage_error(stage: str, error: TeardownError) -> StageError:
    """Build a StageError from a taxonomy exception."""
    return StageError(
        stage=stage,
        error_type=type(error).__name__,
        message=str(error),
        resource_ids=list(error.resource_ids),
        remediation=error.remediation,
        fatal=isinstance(error, FATAL_ERRORS),
    )


class DestroyCoordinator:
    """Runs the teardown state machine for one deployment.

    Attributes:
        scanner: Inventory scanner
        detector: Blocking-dependency detector
        executor: Cleanup executor
        terraform: Terraform runner
        lock: State manifest lock (ManifestLock or TerraformBuiltinLock)
        deleter: Direct provider deleter for untracked resources
        retry_policy: Policy for full attempts and per-kind targeted destroys
        console: Manual resolution console used on escalation (optional)
        eni_wait_timeout: Seconds to wait for orphaned interfaces after cleanup
        eni_wait_interval: Poll interval while waiting
    """

    def __init__(
        self,
        scanner: InventoryScanner,
        detector: BlockingDependencyDetector,
        executor: CleanupExecutor,
        terraform: TerraformRunner,
        lock: Any,
        deleter: ResourceDeleter,
        retry_policy: Optional[RetryPolicy] = None,
        console: Optional[Any] = None,
        eni_wait_timeout: int = 120,
        eni_wait_interval: int = 10,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.scanner = scanner
        self.detector = detector
        self.executor = executor
        self.terraform = terraform
        self.lock = lock
        self.deleter = deleter
        self.retry_policy = retry_policy or RetryPolicy()
        self.console = console
        self.eni_wait_timeout = eni_wait_timeout
        self.eni_wait_interval = eni_wait_interval
        self.sleep = sleep or self.retry_policy.sleep
        self.plan: Optional[DestroyPlan] = None

    @property
    def dry_run(self) -> bool:
        return self.executor.dry_run

    def run(self, deployment_tag: str) -> TeardownOperation:
        """Tear down a deployment.

        Args:
            deployment_tag: Deployment tag value or prefix

        Returns:
            TeardownOperation with the state history; the outcome is filled in
            by the verification reporter
        """
        operation = TeardownOperation(
            operation_id=f"teardown-{uuid.uuid4().hex[:12]}",
            deployment_tag=deployment_tag,
            mode=OperationMode.DRY_RUN if self.dry_run else OperationMode.EXECUTE,
        )

        try:
            self._run(operation, deployment_tag)
        except FATAL_ERRORS as e:
            logger.error(f"Fatal error during {operation.state.value}: {e.describe()}")
            operation.add_error(stage_error(operation.state.value, e))
            operation.transition(CoordinatorState.FAILED)

        logger.info(f"Teardown {operation.operation_id} ended in {operation.state.value}")
        return operation

    def _run(self, operation: TeardownOperation, deployment_tag: str) -> None:
        snapshot = self.scanner.scan(deployment_tag)
        present = {r.kind for r in snapshot.resources} | {e.kind for e in snapshot.manifest if e.kind}
        self.plan = DestroyPlan.for_kinds(present)
        operation.plan = self.plan.describe()
        logger.info(f"Destroy plan: {' -> '.join(operation.plan) or '(nothing)'}")

        if snapshot.is_empty:
            operation.transition(CoordinatorState.VERIFIED)
            return

        if self.dry_run:
            self._cleanup_pass(operation, snapshot)
            logger.info("[dry-run] would run terraform destroy, then targeted destroy per kind if it stalls")
            return

        operation.transition(CoordinatorState.FULL_DESTROY_ATTEMPT)
        if self._full_destroy_attempts(operation, deployment_tag):
            operation.transition(CoordinatorState.VERIFIED)
            return

        operation.transition(CoordinatorState.TARGETED_DESTROY_ATTEMPT)
        if self._targeted_destroy(operation, deployment_tag):
            operation.transition(CoordinatorState.VERIFIED)
            return

        operation.transition(CoordinatorState.ESCALATED)
        if self.console is None:
            logger.warning("Residual resources remain; re-run with --interactive or use 'safedestroy manual'")
            return

        self.console.run()
        if self.scanner.scan(deployment_tag).is_empty:
            operation.transition(CoordinatorState.VERIFIED)
        else:
            operation.transition(CoordinatorState.ABORTED)

    def _cleanup_pass(self, operation: TeardownOperation, snapshot: InventorySnapshot) -> None:
        """Detect blockers in ``snapshot`` and clear what can be cleared."""
        detection = self.detector.detect(snapshot)
        for edge in detection.reported:
            logger.warning(f"Needs an operator: {edge.describe()}")
        for error in detection.errors:
            operation.add_error(stage_error("detect", error))

        report = self.executor.execute(detection.actions)
        operation.errors.extend(report.errors)

        cleared = [
            a.target.resource_id
            for a in report.actions
            if a.operation == CleanupOperation.DETACH_INTERFACE and a.result == ActionResult.SUCCESS
        ]
        if cleared:
            self.scanner.mark_gone(cleared)
            subnets = [r.resource_id for r in snapshot.by_kind(ResourceKind.SUBNET, active_only=True)]
            self.executor.wait_for_interfaces(
                subnets, self.eni_wait_timeout, self.eni_wait_interval, sleep=self.sleep
            )

    def _destroy(self, operation: TeardownOperation, stage: str, targets=None) -> bool:
        """One terraform destroy under the manifest lock; False on a non-fatal failure."""
        try:
            with self.lock.hold("destroy") as lock_args:
                self.terraform.destroy(targets=targets, lock_args=lock_args)
            return True
        except FATAL_ERRORS:
            raise
        except TeardownError as e:
            logger.warning(f"{stage} failed: {e}")
            operation.add_error(stage_error(stage, e))
            return False

    def _full_destroy_attempts(self, operation: TeardownOperation, deployment_tag: str) -> bool:
        max_attempts = self.retry_policy.max_attempts
        for attempt in range(1, max_attempts + 1):
            operation.full_attempts = attempt
            logger.info(f"Full destroy attempt {attempt}/{max_attempts}")

            snapshot = self.scanner.scan(deployment_tag)
            if snapshot.is_empty:
                return True
            self._cleanup_pass(operation, snapshot)
            self._destroy(operation, f"full-destroy-{attempt}")

            if self.scanner.scan(deployment_tag).is_empty:
                return True
            if attempt < max_attempts:
                delay = self.retry_policy.delay_for(attempt)
                logger.info(f"Residual resources remain; next attempt in {delay:.0f}s")
                self.sleep(delay)
        return False

    def _targeted_destroy(self, operation: TeardownOperation, deployment_tag: str) -> bool:
        """Destroy kind by kind in plan order.

        A kind or resource that fails, including one that is denied, is recorded
        on the operation and the next kind proceeds. Only ProviderUnavailable
        ends the pass.
        """
        snapshot = self.scanner.scan(deployment_tag)
        self._cleanup_pass(operation, snapshot)
        anomalies = set(snapshot.anomalies)

        for kind in self.plan or []:
            operation.targeted_kinds.append(kind.value)
            stage = f"targeted:{kind.value}"

            addresses = [e.address for e in snapshot.manifest_for_kind(kind)]
            if addresses:
                logger.info(f"Targeted destroy of {len(addresses)} {kind.value} resources")
                self._targeted_kind(operation, stage, addresses)

            untracked = [
                r
                for r in snapshot.untracked()
                if r.kind == kind and r.is_active and r.resource_id not in anomalies
            ]
            for resource in untracked:
                self._delete_untracked(operation, stage, resource)

        logger.info("Final full destroy after targeted pass")
        self._destroy(operation, "final-destroy")
        return self.scanner.scan(deployment_tag).is_empty

    def _targeted_kind(self, operation: TeardownOperation, stage: str, addresses) -> None:
        def attempt() -> None:
            with self.lock.hold("destroy") as lock_args:
                self.terraform.destroy(targets=addresses, lock_args=lock_args)

        try:
            self.retry_policy.run(attempt, description=stage)
        except ProviderUnavailable:
            raise
        except TeardownError as e:
            logger.warning(f"{stage} failed: {e}")
            operation.add_error(stage_error(stage, e))

    def _delete_untracked(self, operation: TeardownOperation, stage: str, resource) -> None:
        if not self.deleter.supports(resource.kind):
            return
        logger.info(f"Deleting untracked {resource.kind.value} {resource.resource_id}")
        try:
            if resource.kind == ResourceKind.OBJECT_STORE:
                purge = self.executor.purge_store(resource)
                operation.errors.extend(purge.errors)
            self.deleter.delete(resource)
            self.scanner.mark_gone([resource.resource_id])
        except ProviderUnavailable:
            raise
        except TeardownError as e:
            if not e.remediation:
                e.remediation = self.deleter.manual_command(resource)
            operation.add_error(stage_error(stage, e))
