"""Audit storage for teardown operations and detach records.

Detach records are reconciliation debt: resources that still exist at the
provider but were removed from the state manifest. Keeping them in a
durable ledger is what lets an operator find and settle them later.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import yaml

from .models.detach_record import DetachRecord
from .models.teardown_operation import TeardownOperation


class AuditStorage:
    """Audit log storage and retrieval.

    Storage structure:
        ~/.safedestroy/audit-logs/
            2026/
                10/
                    operation-teardown-1a2b3c.yaml
                    detach-detach_4d5e6f.yaml

    Attributes:
        storage_dir: Base directory for audit logs
    """

    def __init__(self, storage_dir: Optional[str] = None) -> None:
        """Initialize audit storage.

        Args:
            storage_dir: Base directory for audit logs (default: ~/.safedestroy/audit-logs)
        """
        if storage_dir is None:
            storage_dir = str(Path.home() / ".safedestroy" / "audit-logs")

        self.storage_dir = Path(storage_dir).expanduser()
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _month_dir(self, timestamp: datetime) -> Path:
        path = self.storage_dir / str(timestamp.year) / f"{timestamp.month:02d}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def _metadata(log_type: str) -> dict:
        return {
            "version": "1.0",
            "log_type": log_type,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

    def log_operation(self, operation: TeardownOperation) -> Path:
        """Write (or overwrite) the audit log of a teardown operation.

        Returns:
            Path of the written file
        """
        audit_file = self._month_dir(operation.timestamp) / f"operation-{operation.operation_id}.yaml"
        audit_data = {"metadata": self._metadata("teardown_operation"), "operation": operation.to_dict()}
        with open(audit_file, "w") as f:
            yaml.safe_dump(audit_data, f, default_flow_style=False, sort_keys=False)
        return audit_file

    def log_detach(self, record: DetachRecord) -> Path:
        """Append a detach record to the ledger.

        Raises:
            ValueError: If the record is invalid
        """
        record.validate()
        audit_file = self._month_dir(record.timestamp) / f"detach-{record.record_id}.yaml"
        audit_data = {"metadata": self._metadata("detach_record"), "detach": record.to_dict()}
        with open(audit_file, "w") as f:
            yaml.safe_dump(audit_data, f, default_flow_style=False, sort_keys=False)
        return audit_file

    def _iter_files(self, pattern: str) -> List[Path]:
        files: List[Path] = []
        for year_dir in sorted(self.storage_dir.glob("*")):
            if not year_dir.is_dir():
                continue
            for month_dir in sorted(year_dir.glob("*")):
                if month_dir.is_dir():
                    files.extend(sorted(month_dir.glob(pattern)))
        return files

    def get_operation(self, operation_id: str) -> Optional[dict]:
        """Retrieve an operation audit log by ID."""
        for audit_file in self._iter_files(f"operation-{operation_id}.yaml"):
            with open(audit_file, "r") as f:
                return yaml.safe_load(f)
        return None

    def query_operations(
        self,
        deployment_tag: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[dict]:
        """Query operation logs by deployment and start time.

        Args:
            deployment_tag: Only this deployment (None for all)
            since: Only operations started at or after this time (timezone-aware)
        """
        results = []
        for audit_file in self._iter_files("operation-*.yaml"):
            with open(audit_file, "r") as f:
                audit_data = yaml.safe_load(f)
            operation = audit_data["operation"]
            if deployment_tag and operation["deployment_tag"] != deployment_tag:
                continue
            if since and datetime.fromisoformat(operation["timestamp"]) < since:
                continue
            results.append(audit_data)
        return results

    def detach_records(self, deployment_tag: Optional[str] = None) -> List[dict]:
        """Every detach record, optionally for one deployment."""
        results = []
        for audit_file in self._iter_files("detach-*.yaml"):
            with open(audit_file, "r") as f:
                record = yaml.safe_load(f)["detach"]
            if deployment_tag and record["deployment_tag"] != deployment_tag:
                continue
            results.append(record)
        return results
