"""Read the Terraform state manifest into ManifestEntry objects."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..models.manifest import ManifestEntry
from .runner import TerraformRunner

logger = logging.getLogger(__name__)


def parse_state(data: Dict[str, Any]) -> List[ManifestEntry]:
    """Flatten a ``terraform show -json`` document into manifest entries.

    Data sources are skipped; child modules are walked recursively.

    Args:
        data: Parsed JSON output of ``terraform show -json``

    Returns:
        Manifest entries for every managed resource
    """
    root = (data.get("values") or {}).get("root_module") or {}
    entries: List[ManifestEntry] = []
    _walk_module(root, entries)
    return entries


def _walk_module(module: Dict[str, Any], entries: List[ManifestEntry]) -> None:
    for resource in module.get("resources", []) or []:
        if resource.get("mode", "managed") != "managed":
            continue
        entries.append(ManifestEntry.from_state_resource(resource))
    for child in module.get("child_modules", []) or []:
        _walk_module(child, entries)


def read_manifest(runner: TerraformRunner) -> List[ManifestEntry]:
    """Read the current state manifest through ``terraform show -json``."""
    entries = parse_state(runner.show_json())
    unmapped = [e.address for e in entries if e.kind is None]
    if unmapped:
        logger.debug(f"{len(unmapped)} manifest entries of unmanaged types: {', '.join(unmapped[:5])}")
    return entries
