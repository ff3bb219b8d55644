"""Inventory tables for the scan command and the manual console."""

from __future__ import annotations

from typing import Dict, List, Optional

from rich.console import Console
from rich.table import Table

from ..models.dependency import DependencyEdge
from ..models.inventory import InventorySnapshot
from ..models.resource import Resource, ResourceKind

# Kinds shown under their VPC, in display order
VPC_SCOPED_KINDS = (
    ResourceKind.SUBNET,
    ResourceKind.INTERFACE,
    ResourceKind.INSTANCE,
    ResourceKind.NAT_GATEWAY,
    ResourceKind.VPC_ENDPOINT,
    ResourceKind.INTERNET_GATEWAY,
    ResourceKind.ROUTE_TABLE,
    ResourceKind.SECURITY_GROUP,
    ResourceKind.LOAD_BALANCER,
    ResourceKind.TARGET_GROUP,
)


def _vpc_of(resource: Resource, snapshot: InventorySnapshot) -> str:
    if resource.kind == ResourceKind.NETWORK:
        return resource.resource_id
    vpc_id = resource.attributes.get("vpc_id")
    if vpc_id:
        return vpc_id
    for parent_id in resource.parent_ids:
        parent = snapshot.get(parent_id)
        if parent is not None and parent.kind == ResourceKind.NETWORK:
            return parent_id
        if parent is not None and parent.attributes.get("vpc_id"):
            return parent.attributes["vpc_id"]
    return ""


def build_inventory_table(snapshot: InventorySnapshot, edges: Optional[List[DependencyEdge]] = None) -> Table:
    """Build a table of the snapshot grouped by VPC, with blocking edges."""
    blockers: Dict[str, List[str]] = {}
    for edge in edges or []:
        if not edge.blocker.kind.is_sub_entity:
            blockers.setdefault(edge.blocker.resource_id, []).append(f"blocks {edge.blocked.resource_id}")
        else:
            blockers.setdefault(edge.blocked.resource_id, []).append(f"{edge.blocker.kind.value}: {edge.blocker.name}")

    table = Table(title=f"Inventory for {snapshot.deployment_tag}")
    table.add_column("VPC", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Resource")
    table.add_column("Status")
    table.add_column("Tracked")
    table.add_column("Blocking", style="yellow")

    tracked = snapshot.manifest_ids()
    order = {kind: i for i, kind in enumerate((ResourceKind.NETWORK,) + VPC_SCOPED_KINDS)}
    rows = sorted(
        snapshot.resources,
        key=lambda r: (_vpc_of(r, snapshot) or r.resource_id, order.get(r.kind, 99), r.resource_id),
    )
    for resource in rows:
        status = resource.status.value
        if resource.resource_id in snapshot.anomalies:
            status = "[red]anomaly[/red]"
        notes = blockers.get(resource.resource_id, [])
        table.add_row(
            _vpc_of(resource, snapshot) or "-",
            resource.kind.value,
            resource.name if resource.name == resource.resource_id else f"{resource.name} ({resource.resource_id})",
            status,
            "yes" if resource.resource_id in tracked else "[magenta]no[/magenta]",
            "\n".join(notes[:3]) + (f"\n(+{len(notes) - 3} more)" if len(notes) > 3 else ""),
        )
    return table


def format_inventory(
    snapshot: InventorySnapshot,
    edges: Optional[List[DependencyEdge]] = None,
    width: Optional[int] = None,
) -> str:
    """Render the inventory table to a string."""
    if not snapshot.resources and not snapshot.manifest:
        return f"No resources found for {snapshot.deployment_tag}."
    console = Console(width=width)
    with console.capture() as capture:
        console.print(build_inventory_table(snapshot, edges))
        manifest_only = snapshot.manifest_only()
        if manifest_only:
            console.print(f"{len(manifest_only)} state entries without a live resource:")
            for entry in manifest_only:
                console.print(f"  {entry.address}")
    return capture.get()
