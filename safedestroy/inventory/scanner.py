"""Resource inventory scanner.

Runs the per-kind collectors and reads the Terraform state manifest to
build an InventorySnapshot. The scanner never mutates anything and never
retries: a provider outage surfaces immediately as ProviderUnavailable.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set, Type

from ..aws.provider import AwsProvider
from ..models.inventory import InventorySnapshot
from ..models.resource import ResourceStatus
from ..terraform.manifest import read_manifest
from ..terraform.runner import TerraformRunner
from .collectors import DEFAULT_COLLECTORS, BaseResourceCollector, ScanContext

logger = logging.getLogger(__name__)


class InventoryScanner:
    """Builds inventory snapshots for a deployment.

    The scanner remembers, for the duration of a run, which resources were
    deleted or detached. Such a resource showing up again is a provider
    consistency anomaly: it is recorded on the snapshot and logged, and the
    detector ignores it.

    Attributes:
        provider: Provider gateway
        terraform: Terraform runner used to read the manifest (optional)
        tag_key: Tag key carrying the deployment name
        marker_key: Detach marker tag key
        excluded_ids: Backend bucket/table names never reported
    """

    def __init__(
        self,
        provider: AwsProvider,
        terraform: Optional[TerraformRunner] = None,
        tag_key: str = "Deployment",
        marker_key: str = "safedestroy:detached-from",
        excluded_ids: Optional[Iterable[str]] = None,
        collectors: Optional[List[Type[BaseResourceCollector]]] = None,
    ) -> None:
        self.provider = provider
        self.terraform = terraform
        self.tag_key = tag_key
        self.marker_key = marker_key
        self.excluded_ids = {i for i in (excluded_ids or []) if i}
        self.collector_classes = collectors or DEFAULT_COLLECTORS
        self._gone: Set[str] = set()

    def mark_gone(self, resource_ids: Iterable[str]) -> None:
        """Record resources that were deleted or detached during this run."""
        self._gone.update(resource_ids)

    @property
    def gone_ids(self) -> Set[str]:
        return set(self._gone)

    def scan(self, deployment_tag: str) -> InventorySnapshot:
        """Take a snapshot of the deployment.

        Args:
            deployment_tag: Tag value, or a prefix ending in ``*``

        Returns:
            InventorySnapshot with live resources and the state manifest

        Raises:
            ProviderUnavailable: If AWS (or terraform) cannot be reached
            PermissionDenied: If a collector is denied access
        """
        if not deployment_tag:
            raise ValueError("deployment_tag cannot be empty")

        context = ScanContext(
            deployment_tag=deployment_tag,
            tag_key=self.tag_key,
            marker_key=self.marker_key,
            excluded_ids=set(self.excluded_ids),
        )

        for collector_class in self.collector_classes:
            collector = collector_class(self.provider)
            found = collector.collect(context)
            context.resources.extend(r for r in found if r.status != ResourceStatus.GONE)

        anomalies = [r.resource_id for r in context.resources if r.resource_id in self._gone]
        for resource_id in anomalies:
            logger.warning(f"Provider consistency anomaly: {resource_id} reappeared after being removed")

        manifest = read_manifest(self.terraform) if self.terraform else []

        snapshot = InventorySnapshot(
            deployment_tag=deployment_tag,
            resources=list(context.resources),
            manifest=manifest,
            anomalies=anomalies,
        )
        logger.info(
            f"Scanned {deployment_tag}: {snapshot.resource_count} live resources, "
            f"{len(manifest)} manifest entries"
        )
        return snapshot
