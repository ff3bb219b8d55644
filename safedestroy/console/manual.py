"""Manual resolution console.

Interactive, operator-gated menu used when automatic teardown is exhausted
(or entered directly with ``safedestroy manual``). Every action asks for a
confirmation; detaching from state asks the operator to type the
deployment tag.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional

import typer
import yaml
from rich.console import Console
from rich.panel import Panel

from ..audit import AuditStorage
from ..aws.provider import AwsProvider
from ..cleanup.deleter import ResourceDeleter
from ..cleanup.executor import CleanupExecutor
from ..detect.detector import BlockingDependencyDetector
from ..errors import ProviderUnavailable, TeardownError
from ..inventory.scanner import InventoryScanner
from ..models.cleanup_action import CleanupOperation
from ..models.destroy_plan import DestroyPlan
from ..models.detach_record import DetachRecord
from ..models.inventory import InventorySnapshot
from ..models.resource import ResourceKind
from ..report.inventory import format_inventory
from ..terraform.runner import TerraformRunner

logger = logging.getLogger(__name__)

MENU = """\
1) Show inventory and blocking dependencies
2) Run cleanup for one operation
3) Targeted destroy of one kind
4) Dump full inventory (YAML)
5) Purge an object store
6) Detach resources from the state manifest
7) Exit"""


class ManualResolutionConsole:
    """Interactive menu for residual resources.

    Attributes:
        deployment_tag: Deployment under repair
        scanner, detector, executor, terraform, lock, deleter, provider: Collaborators
        audit: Ledger for detach records
        tag_key: Deployment tag key (replaced on detach)
        marker_key: Detach marker tag key
        console: Rich console for output
        prompt: Text prompt function (typer.prompt by default)
        confirm: Yes/no prompt function (typer.confirm by default)
    """

    def __init__(
        self,
        deployment_tag: str,
        scanner: InventoryScanner,
        detector: BlockingDependencyDetector,
        executor: CleanupExecutor,
        terraform: TerraformRunner,
        lock: Any,
        deleter: ResourceDeleter,
        provider: AwsProvider,
        audit: AuditStorage,
        tag_key: str = "Deployment",
        marker_key: str = "safedestroy:detached-from",
        console: Optional[Console] = None,
        prompt: Optional[Callable[..., str]] = None,
        confirm: Optional[Callable[..., bool]] = None,
    ) -> None:
        self.deployment_tag = deployment_tag
        self.scanner = scanner
        self.detector = detector
        self.executor = executor
        self.terraform = terraform
        self.lock = lock
        self.deleter = deleter
        self.provider = provider
        self.audit = audit
        self.tag_key = tag_key
        self.marker_key = marker_key
        self.console = console or Console()
        self.prompt = prompt or typer.prompt
        self.confirm = confirm or typer.confirm
        self.detached: List[DetachRecord] = []

    def run(self) -> None:
        """Show the menu until the operator exits."""
        handlers = {
            "1": self.show_inventory,
            "2": self.cleanup_operation,
            "3": self.targeted_destroy,
            "4": self.dump_inventory,
            "5": self.purge_store,
            "6": self.detach,
        }
        while True:
            self.console.print(Panel(MENU, title=f"Manual resolution: {self.deployment_tag}"))
            choice = str(self.prompt("Select an option", default="7")).strip()
            if choice == "7":
                return
            handler = handlers.get(choice)
            if handler is None:
                self.console.print(f"Unknown option: {choice}", style="red")
                continue
            try:
                handler()
            except ProviderUnavailable:
                raise
            except TeardownError as e:
                self.console.print(f"✗ {e.describe()}", style="bold red")

    def _scan(self) -> InventorySnapshot:
        return self.scanner.scan(self.deployment_tag)

    def _choose(self, label: str, options: List[str]) -> Optional[str]:
        if not options:
            self.console.print(f"No {label} available.", style="yellow")
            return None
        for index, option in enumerate(options, start=1):
            self.console.print(f"  {index}) {option}")
        answer = str(self.prompt(f"Choose {label} (number)")).strip()
        if not answer.isdigit() or not 1 <= int(answer) <= len(options):
            self.console.print(f"Invalid choice: {answer}", style="red")
            return None
        return options[int(answer) - 1]

    def show_inventory(self) -> None:
        snapshot = self._scan()
        detection = self.detector.detect(snapshot)
        self.console.print(format_inventory(snapshot, detection.edges, width=self.console.width))
        for edge in detection.reported:
            self.console.print(f"⚠ {edge.describe()}", style="yellow")
        self.console.print(detection.summary())

    def cleanup_operation(self) -> None:
        """Run the detected cleanup actions of one operation."""
        snapshot = self._scan()
        detection = self.detector.detect(snapshot)
        available = [op.value for op in CleanupOperation if any(a.operation == op for a in detection.actions)]
        choice = self._choose("operation", available)
        if choice is None:
            return
        actions = [a for a in detection.actions if a.operation.value == choice]
        for action in actions[:10]:
            self.console.print(f"  {action.describe()}")
        if len(actions) > 10:
            self.console.print(f"  ... and {len(actions) - 10} more")
        if not self.confirm(f"Apply {len(actions)} {choice} actions?", default=False):
            return
        report = self.executor.execute(actions)
        self.console.print(f"Cleanup: {report.summary()}")
        for error in report.errors:
            self.console.print(f"✗ {error.message}\n  manual: {error.remediation}", style="red")

    def targeted_destroy(self) -> None:
        """Targeted terraform destroy (and direct deletion of untracked resources) of one kind."""
        snapshot = self._scan()
        present = {r.kind for r in snapshot.resources} | {e.kind for e in snapshot.manifest if e.kind}
        plan = DestroyPlan.for_kinds(present)
        choice = self._choose("kind", plan.describe())
        if choice is None:
            return
        kind = ResourceKind(choice)
        addresses = [e.address for e in snapshot.manifest_for_kind(kind)]
        untracked = [r for r in snapshot.untracked() if r.kind == kind and r.is_active]
        self.console.print(f"{len(addresses)} state addresses, {len(untracked)} untracked resources")
        if not self.confirm(f"Destroy all {choice} resources?", default=False):
            return

        if addresses:
            with self.lock.hold("destroy") as lock_args:
                self.terraform.destroy(targets=addresses, lock_args=lock_args)
            self.console.print(f"✓ Destroyed {len(addresses)} {choice} state addresses", style="green")
        for resource in untracked:
            if not self.deleter.supports(kind):
                break
            if kind == ResourceKind.OBJECT_STORE:
                self.executor.purge_store(resource)
            self.deleter.delete(resource)
            self.scanner.mark_gone([resource.resource_id])
            self.console.print(f"✓ Deleted {resource.resource_id}", style="green")

    def dump_inventory(self) -> None:
        """Write the full inventory as YAML to a file, or print it."""
        snapshot = self._scan()
        data = yaml.safe_dump(snapshot.to_dict(), default_flow_style=False, sort_keys=False)
        target = str(self.prompt("Output file (blank for screen)", default="")).strip()
        if not target:
            self.console.print(data)
            return
        path = Path(target).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(data)
        self.console.print(f"✓ Inventory written to {path}", style="green")

    def purge_store(self) -> None:
        """Empty one bucket completely, including every version and delete marker."""
        snapshot = self._scan()
        buckets = [r.resource_id for r in snapshot.by_kind(ResourceKind.OBJECT_STORE, active_only=True)]
        choice = self._choose("bucket", buckets)
        if choice is None:
            return
        if not self.confirm(f"Permanently delete every object version in {choice}?", default=False):
            return
        stage = self.executor.purge_store(snapshot.get(choice))
        self.console.print(f"✓ Purged {len(stage.actions)} entries from {choice}", style="green")
        for error in stage.errors:
            self.console.print(f"✗ {error.message}\n  manual: {error.remediation}", style="red")

    def detach(self) -> Optional[DetachRecord]:
        """Remove resources from the state manifest without deleting them.

        The resources keep existing at the provider. Their deployment tag is
        swapped for a detach marker so later scans ignore them, and a
        DetachRecord is written to the audit ledger.
        """
        snapshot = self._scan()
        raw = str(self.prompt("Resource ids or state addresses to detach (comma-separated)")).strip()
        requested = [item.strip() for item in raw.split(",") if item.strip()]
        if not requested:
            return None

        addresses: List[str] = []
        resources = []
        for item in requested:
            entries = [e for e in snapshot.manifest if e.address == item or e.resource_id == item]
            addresses.extend(e.address for e in entries if e.address not in addresses)
            resource_ids = {item} | {e.resource_id for e in entries}
            resources.extend(r for r in snapshot.resources if r.resource_id in resource_ids and r not in resources)

        if not addresses and not resources:
            self.console.print("Nothing matched in the inventory or state manifest.", style="yellow")
            return None

        self.console.print(
            Panel(
                "Detached resources are NOT deleted. They keep running and billing until removed by hand.\n"
                + "\n".join(f"  state: {a}" for a in addresses)
                + ("\n" if addresses and resources else "")
                + "\n".join(f"  live:  {r.kind.value} {r.resource_id}" for r in resources),
                title="Detach from state manifest",
                style="bold red",
            )
        )
        typed = str(self.prompt(f"Type the deployment tag ({self.deployment_tag}) to confirm")).strip()
        if typed != self.deployment_tag:
            self.console.print("Confirmation did not match; nothing detached.", style="yellow")
            return None
        reason = str(self.prompt("Reason (optional)", default="")).strip() or None

        unmarked = set()
        for resource in resources:
            try:
                self.provider.replace_deployment_tag(resource, self.tag_key, self.marker_key)
            except ProviderUnavailable:
                raise
            except TeardownError as e:
                self.console.print(f"✗ {e}; {resource.resource_id} stays in the deployment", style="red")
                unmarked.add(resource.resource_id)
        resources = [r for r in resources if r.resource_id not in unmarked]
        addresses = [
            e.address for e in snapshot.manifest if e.address in addresses and e.resource_id not in unmarked
        ]
        if not addresses and not resources:
            self.console.print("Nothing could be detached.", style="yellow")
            return None

        if addresses:
            with self.lock.hold("state-rm") as lock_args:
                self.terraform.state_rm(addresses, lock_args=lock_args)

        record = DetachRecord(
            deployment_tag=self.deployment_tag,
            resource_ids=[r.resource_id for r in resources],
            manifest_addresses=addresses,
            reason=reason,
        )
        self.audit.log_detach(record)
        self.scanner.mark_gone(record.resource_ids)
        self.detached.append(record)
        logger.warning(
            f"Detached {len(resources)} resources and {len(addresses)} state entries from "
            f"{self.deployment_tag} (record {record.record_id}); they still exist at the provider"
        )
        self.console.print(f"✓ Detached; ledger record {record.record_id}", style="green")
        return record
