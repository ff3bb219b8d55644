"""Verification reporter.

Rescans the deployment after the coordinator stops and classifies what is
left. Each classification maps to its own process exit code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from ..cleanup.deleter import ResourceDeleter
from ..inventory.scanner import InventoryScanner
from ..models.inventory import InventorySnapshot
from ..models.manifest import ManifestEntry
from ..models.resource import Resource
from ..models.teardown_operation import Outcome

logger = logging.getLogger(__name__)


@dataclass
class VerificationReport:
    """Final classification of a deployment.

    Attributes:
        outcome: Clean, ManifestOnly or ResourcesRemain
        snapshot: Snapshot the classification was made from
    """

    outcome: Outcome
    snapshot: InventorySnapshot

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code

    @property
    def residual_resources(self) -> List[Resource]:
        return list(self.snapshot.resources)

    @property
    def residual_manifest(self) -> List[ManifestEntry]:
        return list(self.snapshot.manifest)


def classify(snapshot: InventorySnapshot) -> Outcome:
    """Classify a snapshot.

    Live resources always mean ResourcesRemain, whatever the manifest says.
    """
    if snapshot.resources:
        return Outcome.RESOURCES_REMAIN
    if snapshot.manifest:
        return Outcome.MANIFEST_ONLY
    return Outcome.CLEAN


class VerificationReporter:
    """Rescans and reports residuals with the commands that would remove them."""

    def __init__(self, scanner: InventoryScanner) -> None:
        self.scanner = scanner

    def verify(self, deployment_tag: str) -> VerificationReport:
        """Rescan the deployment and classify the result.

        Raises:
            ProviderUnavailable: If the provider cannot be reached
        """
        snapshot = self.scanner.scan(deployment_tag)
        report = VerificationReport(outcome=classify(snapshot), snapshot=snapshot)
        logger.info(f"Verification of {deployment_tag}: {report.outcome.value}")
        return report

    def format_terminal(self, report: VerificationReport, width: Optional[int] = None) -> str:
        """Format residuals for terminal output using Rich.

        Args:
            report: Verification report
            width: Render width (terminal width when None)

        Returns:
            Formatted string for terminal display
        """
        if report.outcome == Outcome.CLEAN:
            return f"Deployment {report.snapshot.deployment_tag} is clean: no live resources, empty state."

        table = Table(title=f"Residuals for {report.snapshot.deployment_tag} ({report.outcome.value})")
        table.add_column("Kind", style="cyan")
        table.add_column("Resource")
        table.add_column("Status")
        table.add_column("Manual command", style="yellow")

        for resource in report.residual_resources:
            status = resource.status.value
            if resource.resource_id in report.snapshot.anomalies:
                status = "[red]anomaly[/red]"
            table.add_row(
                resource.kind.value,
                resource.name if resource.name == resource.resource_id else f"{resource.name} ({resource.resource_id})",
                status,
                ResourceDeleter.manual_command(resource),
            )

        for entry in report.residual_manifest:
            if report.snapshot.get(entry.resource_id) is not None:
                continue
            table.add_row(
                entry.kind.value if entry.kind else entry.tf_type,
                entry.address,
                "[magenta]state only[/magenta]",
                f"terraform state rm '{entry.address}'",
            )

        console = Console(width=width)
        with console.capture() as capture:
            console.print(table)
        return capture.get()
