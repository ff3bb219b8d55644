"""Cleanup executor.

Applies idempotent cleanup actions stage by stage. Within a stage, actions
are grouped by target resource; groups run in parallel on a bounded thread
pool and the actions of one group (e.g. the versions of one bucket) run
sequentially.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from ..aws.provider import AwsProvider
from ..errors import (
    CallTimeout,
    DependencyBlocked,
    PermissionDenied,
    ProviderUnavailable,
    TeardownError,
)
from ..models.cleanup_action import ActionResult, CleanupAction, CleanupOperation
from ..models.resource import Resource, ResourceKind
from ..models.retry_policy import RetryPolicy
from ..models.teardown_operation import StageError

logger = logging.getLogger(__name__)

# Stage order; a stage starts only after the previous one has finished
STAGE_ORDER = list(CleanupOperation)


@dataclass
class StageReport:
    """Outcome of one executor stage (all actions of one operation)."""

    operation: CleanupOperation
    actions: List[CleanupAction] = field(default_factory=list)
    errors: List[StageError] = field(default_factory=list)

    def count(self, result: ActionResult) -> int:
        return sum(1 for a in self.actions if a.result == result)


@dataclass
class CleanupReport:
    """Aggregated executor outcome.

    Attributes:
        stages: Per-stage reports, in execution order
        dry_run: True when no mutating call was made
    """

    stages: List[StageReport] = field(default_factory=list)
    dry_run: bool = False

    @property
    def actions(self) -> List[CleanupAction]:
        return [a for stage in self.stages for a in stage.actions]

    @property
    def errors(self) -> List[StageError]:
        return [e for stage in self.stages for e in stage.errors]

    def count(self, result: ActionResult) -> int:
        return sum(stage.count(result) for stage in self.stages)

    @property
    def ok(self) -> bool:
        """True when every action succeeded or was already clean."""
        return all(a.result is not None and a.result.ok for a in self.actions)

    @property
    def exit_code(self) -> int:
        """0 all clean, 1 some actions still blocked/failed, 3 permission denied."""
        if self.dry_run:
            return 0
        if self.count(ActionResult.PERMISSION_DENIED):
            return 3
        return 0 if self.ok else 1

    def summary(self) -> Dict[str, int]:
        counts = {result.value: self.count(result) for result in ActionResult}
        counts["total"] = len(self.actions)
        return counts


class CleanupExecutor:
    """Applies CleanupActions against the provider.

    Attributes:
        provider: Provider gateway
        retry_policy: Retries for throttling, timeouts and transient dependency errors
        max_workers: Parallel groups within a stage
        drain_timeout: Seconds to wait for a deregistered target to drain
        dry_run: Log actions without making mutating calls
    """

    def __init__(
        self,
        provider: AwsProvider,
        retry_policy: Optional[RetryPolicy] = None,
        max_workers: int = 4,
        drain_timeout: int = 300,
        dry_run: bool = False,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_workers = max_workers
        self.drain_timeout = drain_timeout
        self.dry_run = dry_run

    def execute(self, actions: Iterable[CleanupAction]) -> CleanupReport:
        """Apply actions stage by stage.

        Args:
            actions: Actions to apply (any order)

        Returns:
            CleanupReport with every action's result

        Raises:
            ProviderUnavailable: If the provider cannot be reached (stops the run)
        """
        report = CleanupReport(dry_run=self.dry_run)
        pending = list(actions)

        for operation in STAGE_ORDER:
            stage_actions = [a for a in pending if a.operation == operation]
            if not stage_actions:
                continue
            report.stages.append(self._run_stage(operation, stage_actions))

        logger.info(f"Cleanup finished: {report.summary()}")
        return report

    def _run_stage(self, operation: CleanupOperation, actions: List[CleanupAction]) -> StageReport:
        stage = StageReport(operation=operation, actions=actions)
        groups: Dict[str, List[CleanupAction]] = {}
        for action in actions:
            groups.setdefault(action.target.resource_id, []).append(action)

        logger.info(f"Stage {operation.value}: {len(actions)} actions on {len(groups)} resources")

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(groups))) as pool:
            futures = {pool.submit(self._run_group, group): target for target, group in groups.items()}
            for future in as_completed(futures):
                stage.errors.extend(future.result())

        return stage

    def _run_group(self, actions: List[CleanupAction]) -> List[StageError]:
        errors = []
        for action in actions:
            error = self.apply(action)
            if error is not None:
                errors.append(error)
        return errors

    def apply(self, action: CleanupAction) -> Optional[StageError]:
        """Apply one action, setting its result.

        Returns:
            StageError when the action did not succeed, else None

        Raises:
            ProviderUnavailable: If the provider cannot be reached
        """
        if self.dry_run:
            logger.info(f"[dry-run] would {action.describe()}")
            return None

        try:
            action.result = self.retry_policy.run(
                lambda: self._perform(action),
                retry_on=(CallTimeout, DependencyBlocked),
                description=action.describe(),
            )
            logger.debug(f"{action.describe()}: {action.result.value}")
            return None
        except ProviderUnavailable:
            raise
        except PermissionDenied as e:
            action.result = ActionResult.PERMISSION_DENIED
            action.error = str(e)
            logger.error(f"Permission denied: {action.describe()}; run manually: {action.remediation_command()}")
            return self._stage_error(action, e, fatal=True)
        except DependencyBlocked as e:
            action.result = ActionResult.BLOCKED
            action.error = str(e)
            logger.warning(f"Still blocked: {action.describe()}: {e}")
            return self._stage_error(action, e)
        except TeardownError as e:
            action.result = ActionResult.FAILED
            action.error = str(e)
            logger.warning(f"Failed: {action.describe()}: {e}")
            return self._stage_error(action, e)

    @staticmethod
    def _stage_error(action: CleanupAction, error: TeardownError, fatal: bool = False) -> StageError:
        return StageError(
            stage=action.operation.value,
            error_type=type(error).__name__,
            message=str(error),
            resource_ids=error.resource_ids or [action.target.resource_id],
            remediation=error.remediation or action.remediation_command(),
            fatal=fatal,
        )

    def _perform(self, action: CleanupAction) -> ActionResult:
        handlers: Dict[CleanupOperation, Callable[[CleanupAction], ActionResult]] = {
            CleanupOperation.DETACH_INTERFACE: self._detach_interface,
            CleanupOperation.PURGE_OBJECT_VERSIONS: self._purge_version,
            CleanupOperation.DEREGISTER_TARGET: self._deregister_target,
            CleanupOperation.DELETE_MANAGED_SERVICE: self._delete_service,
        }
        return handlers[action.operation](action)

    def _detach_interface(self, action: CleanupAction) -> ActionResult:
        interface_id = action.target.resource_id
        interface = self.provider.describe_interface(interface_id)
        if interface is None:
            return ActionResult.ALREADY_CLEAN
        if interface.get("Status") == "in-use":
            raise DependencyBlocked(
                f"Interface {interface_id} is attached to a workload",
                [interface_id],
                action.remediation_command(),
            )
        deleted = self.provider.delete_interface(interface_id)
        return ActionResult.SUCCESS if deleted else ActionResult.ALREADY_CLEAN

    def _purge_version(self, action: CleanupAction) -> ActionResult:
        bucket = action.target.resource_id
        key = action.detail.get("key")
        version_id = action.detail.get("version_id")
        if not key or not version_id:
            return self._purge_current_objects(bucket)
        if not self.provider.object_version_exists(bucket, key, version_id):
            return ActionResult.ALREADY_CLEAN
        deleted = self.provider.delete_object_version(bucket, key, version_id)
        return ActionResult.SUCCESS if deleted else ActionResult.ALREADY_CLEAN

    def _purge_current_objects(self, bucket: str) -> ActionResult:
        keys = self.provider.list_current_keys(bucket)
        if not keys:
            return ActionResult.ALREADY_CLEAN
        self.provider.delete_keys(bucket, keys)
        return ActionResult.SUCCESS

    def _deregister_target(self, action: CleanupAction) -> ActionResult:
        group_arn = action.target.resource_id
        target_id = action.detail.get("target_id")
        port = action.detail.get("port")
        registered = [
            t
            for t in self.provider.list_registered_targets(group_arn)
            if t["target_id"] == target_id and (not port or t.get("port") == port)
        ]
        if not registered:
            return ActionResult.ALREADY_CLEAN
        if registered[0].get("state") != "draining":
            self.provider.deregister_target(group_arn, target_id, port)
        self.provider.wait_target_deregistered(group_arn, target_id, port, timeout=self.drain_timeout)
        return ActionResult.SUCCESS

    def _delete_service(self, action: CleanupAction) -> ActionResult:
        namespace, _, name = action.target.resource_id.partition("/")
        if not self.provider.orchestrator_service_exists(namespace, name):
            return ActionResult.ALREADY_CLEAN
        deleted = self.provider.delete_orchestrator_service(namespace, name)
        return ActionResult.SUCCESS if deleted else ActionResult.ALREADY_CLEAN

    def purge_store(self, bucket: Resource) -> StageReport:
        """Empty a bucket completely: every version, every delete marker, then current objects.

        Args:
            bucket: ObjectStore resource

        Returns:
            StageReport for the purge
        """
        if bucket.kind != ResourceKind.OBJECT_STORE:
            raise ValueError(f"{bucket.resource_id} is not an object store")

        actions = [
            CleanupAction(
                target=bucket,
                operation=CleanupOperation.PURGE_OBJECT_VERSIONS,
                detail={"key": v["key"], "version_id": v["version_id"]},
            )
            for v in self.provider.list_object_versions(bucket.resource_id)
        ]
        # Whatever survived version deletion (the "s3 rm --recursive" step)
        actions.append(CleanupAction(target=bucket, operation=CleanupOperation.PURGE_OBJECT_VERSIONS))

        logger.info(f"Purging bucket {bucket.resource_id}: {len(actions) - 1} versions and delete markers")
        stage = StageReport(operation=CleanupOperation.PURGE_OBJECT_VERSIONS, actions=actions)
        stage.errors.extend(self._run_group(actions))
        return stage

    def wait_for_interfaces(
        self,
        subnet_ids: List[str],
        timeout: int = 120,
        interval: int = 10,
        sleep: Callable[[float], None] = time.sleep,
    ) -> bool:
        """Poll until no unattached interfaces remain in the subnets.

        Returns:
            True if the subnets are free of orphaned interfaces before the timeout
        """
        if self.dry_run or not subnet_ids:
            return True
        waited = 0
        while True:
            remaining = self.provider.count_available_interfaces(subnet_ids)
            if remaining == 0:
                return True
            if waited >= timeout:
                logger.warning(f"{remaining} orphaned interfaces still present after {timeout}s")
                return False
            logger.info(f"Waiting for {remaining} interfaces to be released ({waited}/{timeout}s)")
            sleep(interval)
            waited += interval
