"""Detach record model.

A detach removes resources from the state manifest without deleting them.
Each record is a reconciliation debt: the resources still exist at the
provider and only manual provider-console cleanup can settle it.
"""

from __future__ import annotations

import getpass
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


def current_operator() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


@dataclass
class DetachRecord:
    """Detach record entity.

    Validation rules:
        - at least one resource id or manifest address
        - deployment_tag must not be empty

    Attributes:
        deployment_tag: Deployment the resources were detached from
        resource_ids: Provider ids of the detached resources
        manifest_addresses: Terraform addresses removed from state
        reason: Operator-supplied reason (optional)
        operator: OS user who confirmed the detach
        record_id: Unique identifier for this record
        timestamp: When the detach happened (UTC)
    """

    deployment_tag: str
    resource_ids: List[str]
    manifest_addresses: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    operator: str = field(default_factory=current_operator)
    record_id: str = field(default_factory=lambda: f"detach_{uuid.uuid4()}")
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def validate(self) -> bool:
        """Validate record invariants.

        Returns:
            True if validation passes

        Raises:
            ValueError: If any validation rule fails
        """
        if not self.resource_ids and not self.manifest_addresses:
            raise ValueError("Detach record requires at least one resource id or manifest address")
        if not self.deployment_tag:
            raise ValueError("Detach record requires a deployment tag")
        return True

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "timestamp": self.timestamp.isoformat(),
            "deployment_tag": self.deployment_tag,
            "operator": self.operator,
            "reason": self.reason,
            "resource_ids": list(self.resource_ids),
            "manifest_addresses": list(self.manifest_addresses),
        }
