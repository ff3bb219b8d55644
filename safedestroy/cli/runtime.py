"""Wiring of the orchestrator components from a Config."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from rich.console import Console

from ..audit import AuditStorage
from ..aws.provider import AwsProvider
from ..cleanup.deleter import ResourceDeleter
from ..cleanup.executor import CleanupExecutor
from ..console.manual import ManualResolutionConsole
from ..destroy.coordinator import DestroyCoordinator
from ..destroy.lock import ManifestLock, TerraformBuiltinLock
from ..detect.detector import BlockingDependencyDetector
from ..inventory.scanner import InventoryScanner
from ..kube.kubectl import KubectlClient
from ..models.retry_policy import RetryPolicy
from ..report.verifier import VerificationReporter
from ..terraform.runner import TerraformRunner
from .config import Config


@dataclass
class Runtime:
    """Every collaborator a command needs, built once per invocation."""

    config: Config
    provider: AwsProvider
    terraform: TerraformRunner
    scanner: InventoryScanner
    detector: BlockingDependencyDetector
    executor: CleanupExecutor
    deleter: ResourceDeleter
    lock: Any
    audit: AuditStorage
    retry_policy: RetryPolicy

    def console(self, deployment_tag: str, rich_console: Optional[Console] = None) -> ManualResolutionConsole:
        return ManualResolutionConsole(
            deployment_tag=deployment_tag,
            scanner=self.scanner,
            detector=self.detector,
            executor=self.executor,
            terraform=self.terraform,
            lock=self.lock,
            deleter=self.deleter,
            provider=self.provider,
            audit=self.audit,
            tag_key=self.config.deployment_tag_key,
            marker_key=self.config.detach_marker_key,
            console=rich_console,
        )

    def coordinator(self, console: Optional[ManualResolutionConsole] = None) -> DestroyCoordinator:
        return DestroyCoordinator(
            scanner=self.scanner,
            detector=self.detector,
            executor=self.executor,
            terraform=self.terraform,
            lock=self.lock,
            deleter=self.deleter,
            retry_policy=self.retry_policy,
            console=console,
            eni_wait_timeout=self.config.eni_wait_timeout,
            eni_wait_interval=self.config.eni_wait_interval,
        )

    def reporter(self) -> VerificationReporter:
        return VerificationReporter(self.scanner)


def build_runtime(config: Config, dry_run: bool = False) -> Runtime:
    """Build the orchestrator components for one CLI invocation.

    Args:
        config: Loaded configuration (CLI overrides already applied)
        dry_run: Make the executor log actions instead of applying them

    Returns:
        Runtime
    """
    kubectl = KubectlClient(context=config.kubectl_context, timeout=config.kubectl_timeout)
    provider = AwsProvider(
        region=config.region,
        profile_name=config.aws_profile,
        call_timeout=config.call_timeout,
        kubectl=kubectl,
    )
    terraform = TerraformRunner(Path(config.terraform_dir).expanduser(), timeout=config.terraform_timeout)
    retry_policy = RetryPolicy(
        max_attempts=config.max_attempts,
        base_delay=config.base_delay,
        max_delay=config.max_delay,
    )

    if config.lock_table and config.lock_id:
        lock: Any = ManifestLock(provider.client("dynamodb"), config.lock_table, config.lock_id)
    else:
        lock = TerraformBuiltinLock(lock_timeout=config.lock_timeout)

    scanner = InventoryScanner(
        provider=provider,
        terraform=terraform,
        tag_key=config.deployment_tag_key,
        marker_key=config.detach_marker_key,
        excluded_ids=[config.state_bucket, config.lock_table],
    )

    return Runtime(
        config=config,
        provider=provider,
        terraform=terraform,
        scanner=scanner,
        detector=BlockingDependencyDetector(provider),
        executor=CleanupExecutor(
            provider,
            retry_policy=RetryPolicy(max_attempts=config.max_attempts, base_delay=2.0, max_delay=30.0),
            max_workers=config.max_workers,
            drain_timeout=config.drain_timeout,
            dry_run=dry_run,
        ),
        deleter=ResourceDeleter(
            provider,
            retry_policy=RetryPolicy(max_attempts=config.max_attempts),
            wait_timeout=config.delete_wait_timeout,
        ),
        lock=lock,
        audit=AuditStorage(str(config.audit_path)),
        retry_policy=retry_policy,
    )
