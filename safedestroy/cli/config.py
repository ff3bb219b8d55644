"""Configuration loading.

Values come from, in increasing precedence: built-in defaults, the first
YAML file found (``./.safedestroy.yaml`` then
``~/.safedestroy/config.yaml``), ``SAFEDESTROY_*`` / ``AWS_*`` environment
variables, and finally CLI options applied by the command layer.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = [Path(".safedestroy.yaml"), Path("~/.safedestroy/config.yaml")]

# Environment variable -> config attribute
ENV_OVERRIDES: Dict[str, str] = {
    "AWS_PROFILE": "aws_profile",
    "AWS_REGION": "region",
    "AWS_DEFAULT_REGION": "region",
    "SAFEDESTROY_PROFILE": "aws_profile",
    "SAFEDESTROY_REGION": "region",
    "SAFEDESTROY_LOG_LEVEL": "log_level",
    "SAFEDESTROY_TAG_KEY": "deployment_tag_key",
    "SAFEDESTROY_DEPLOYMENT_TAG": "deployment_tag",
    "SAFEDESTROY_TERRAFORM_DIR": "terraform_dir",
    "SAFEDESTROY_STATE_BUCKET": "state_bucket",
    "SAFEDESTROY_STATE_KEY": "state_key",
    "SAFEDESTROY_LOCK_TABLE": "lock_table",
    "SAFEDESTROY_MAX_ATTEMPTS": "max_attempts",
    "SAFEDESTROY_MAX_WORKERS": "max_workers",
    "SAFEDESTROY_DELETE_WAIT_TIMEOUT": "delete_wait_timeout",
    "SAFEDESTROY_AUDIT_DIR": "audit_dir",
    "SAFEDESTROY_KUBECTL_CONTEXT": "kubectl_context",
}


@dataclass
class Config:
    """Runtime configuration.

    Attributes:
        aws_profile: AWS profile name
        region: AWS region
        log_level: Default log level
        deployment_tag: Deployment tag value or prefix (``demo-*``)
        deployment_tag_key: Tag key carrying the deployment name
        detach_marker_key: Tag key written on resources detached from state
        terraform_dir: Terraform working directory
        terraform_timeout: Seconds allowed for a single terraform invocation
        state_bucket: Terraform backend bucket (excluded from inventory)
        state_key: Terraform backend state key
        lock_table: Terraform backend DynamoDB lock table (excluded from inventory)
        lock_timeout: Seconds terraform waits for its own lock
        max_attempts: Full destroy attempts before targeted destroy
        base_delay: First backoff delay in seconds
        max_delay: Backoff ceiling in seconds
        max_workers: Cleanup worker threads within a stage
        call_timeout: Per-call AWS timeout in seconds
        drain_timeout: Seconds to wait for a target to finish draining
        delete_wait_timeout: Seconds to wait for an asynchronous delete (cluster, node group, ...) to finish
        eni_wait_timeout: Seconds to wait for orphaned ENIs to disappear
        eni_wait_interval: Poll interval while waiting for ENIs
        kubectl_context: kubeconfig context for orchestrator services
        kubectl_timeout: Seconds allowed for a single kubectl call
        audit_dir: Audit ledger directory
        log_file: Copy log records to this file (optional)
    """

    aws_profile: Optional[str] = None
    region: Optional[str] = None
    log_level: str = "INFO"
    deployment_tag: Optional[str] = None
    deployment_tag_key: str = "Deployment"
    detach_marker_key: str = "safedestroy:detached-from"
    terraform_dir: str = "."
    terraform_timeout: int = 1800
    state_bucket: Optional[str] = None
    state_key: str = "terraform.tfstate"
    lock_table: Optional[str] = None
    lock_timeout: int = 300
    max_attempts: int = 3
    base_delay: float = 30.0
    max_delay: float = 120.0
    max_workers: int = 4
    call_timeout: int = 30
    drain_timeout: int = 300
    delete_wait_timeout: int = 1200
    eni_wait_timeout: int = 120
    eni_wait_interval: int = 10
    kubectl_context: Optional[str] = None
    kubectl_timeout: int = 60
    audit_dir: str = "~/.safedestroy/audit-logs"
    log_file: Optional[str] = None
    sources: List[str] = field(default_factory=list, repr=False)

    @classmethod
    def load(cls, path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> "Config":
        """Load configuration from file and environment.

        Args:
            path: Explicit YAML file (skips the default search)
            environ: Environment mapping (defaults to ``os.environ``)

        Returns:
            Config instance
        """
        config = cls()
        candidates = [path] if path else DEFAULT_CONFIG_PATHS
        for candidate in candidates:
            resolved = Path(candidate).expanduser()
            if resolved.is_file():
                config.apply(cls._read_yaml(resolved))
                config.sources.append(str(resolved))
                break

        env = os.environ if environ is None else environ
        overrides = {attr: env[name] for name, attr in ENV_OVERRIDES.items() if env.get(name)}
        if overrides:
            config.apply(overrides)
            config.sources.append("environment")
        return config

    @staticmethod
    def _read_yaml(path: Path) -> Dict[str, Any]:
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid configuration file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        return data

    def apply(self, values: Dict[str, Any]) -> None:
        """Apply overrides, coercing strings to the field's type.

        Unknown keys are ignored with a warning; None values are skipped.
        """
        known = {f.name: f for f in fields(self) if f.name != "sources"}
        for key, value in values.items():
            key = key.replace("-", "_")
            if key not in known:
                logger.warning(f"Ignoring unknown configuration key: {key}")
                continue
            if value is None:
                continue
            current = getattr(self, key)
            if isinstance(current, bool):
                value = str(value).lower() in ("1", "true", "yes")
            elif isinstance(current, int):
                value = int(value)
            elif isinstance(current, float):
                value = float(value)
            setattr(self, key, value)

    @property
    def audit_path(self) -> Path:
        return Path(self.audit_dir).expanduser()

    @property
    def lock_id(self) -> Optional[str]:
        """Terraform S3-backend lock id: ``<state_bucket>/<state_key>``."""
        if not self.state_bucket:
            return None
        return f"{self.state_bucket}/{self.state_key}"
