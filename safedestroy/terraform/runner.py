"""Terraform subprocess runner.

Every invocation has its own timeout and its failure output is translated
into the teardown error taxonomy.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..errors import (
    CallTimeout,
    DependencyBlocked,
    LockConflict,
    PermissionDenied,
    ProviderUnavailable,
    TeardownError,
)

logger = logging.getLogger(__name__)

DEFAULT_TERRAFORM_TIMEOUT = 1800

_LOCK_MARKERS = ("Error acquiring the state lock", "ConditionalCheckFailedException")
_PERMISSION_MARKERS = ("AccessDenied", "UnauthorizedOperation", "not authorized to perform")
_DEPENDENCY_MARKERS = (
    "DependencyViolation",
    "has dependencies",
    "BucketNotEmpty",
    "ResourceInUse",
    "InvalidNetworkInterface.InUse",
    "is currently in use",
)
_TIMEOUT_MARKERS = ("timeout while waiting", "RequestError", "context deadline exceeded")


@dataclass
class TerraformResult:
    """Captured output of one terraform invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def tail(self, lines: int = 20) -> str:
        """Last lines of combined output, for log messages."""
        output = (self.stderr or self.stdout).strip().splitlines()
        return "\n".join(output[-lines:])


class TerraformRunner:
    """Runs terraform commands in a working directory.

    Attributes:
        working_dir: Directory containing the Terraform configuration
        timeout: Timeout for each invocation in seconds
        binary: terraform executable name or path
    """

    def __init__(
        self,
        working_dir: Path,
        timeout: int = DEFAULT_TERRAFORM_TIMEOUT,
        binary: str = "terraform",
    ) -> None:
        self.working_dir = Path(working_dir)
        self.timeout = timeout
        self.binary = binary

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def run(self, args: Sequence[str], timeout: Optional[int] = None) -> TerraformResult:
        """Run terraform with ``args`` and return its output without raising on rc != 0.

        Raises:
            ProviderUnavailable: If terraform is not installed or the directory is missing
            CallTimeout: If the invocation outlasts its timeout
        """
        command = [self.binary, *args]
        logger.debug(f"Running: {' '.join(command)} (cwd={self.working_dir})")

        if not self.working_dir.is_dir():
            raise ProviderUnavailable(f"Terraform directory not found: {self.working_dir}")

        try:
            completed = subprocess.run(
                command,
                cwd=self.working_dir,
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ProviderUnavailable(f"terraform not installed: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise CallTimeout(f"terraform {args[0]} timed out after {e.timeout}s") from e

        return TerraformResult(completed.returncode, completed.stdout, completed.stderr)

    @staticmethod
    def check(result: TerraformResult, description: str, targets: Optional[Sequence[str]] = None) -> None:
        """Raise the taxonomy error matching a failed result.

        Args:
            result: Result to check
            description: Command description for the error message
            targets: Addresses involved, reported as resource ids

        Raises:
            LockConflict, PermissionDenied, DependencyBlocked, CallTimeout or TeardownError
        """
        if result.ok:
            return
        output = f"{result.stderr}\n{result.stdout}"
        ids = list(targets or [])
        message = f"{description} failed (rc={result.returncode}): {result.tail(5)}"

        if any(marker in output for marker in _LOCK_MARKERS):
            raise LockConflict(message, ids, "terraform force-unlock <LOCK_ID>")
        if any(marker in output for marker in _PERMISSION_MARKERS):
            raise PermissionDenied(message, ids)
        if any(marker in output for marker in _DEPENDENCY_MARKERS):
            raise DependencyBlocked(message, ids)
        if any(marker in output for marker in _TIMEOUT_MARKERS):
            raise CallTimeout(message, ids)
        raise TeardownError(message, ids)

    def destroy(self, targets: Optional[Sequence[str]] = None, lock_args: Sequence[str] = ()) -> TerraformResult:
        """Run ``terraform destroy -auto-approve``, optionally restricted to targets.

        Raises:
            TeardownError subclass when the destroy fails
        """
        args = ["destroy", "-auto-approve", "-input=false", "-no-color", *lock_args]
        for target in targets or []:
            args.append(f"-target={target}")
        label = "terraform destroy" + (f" ({len(targets)} targets)" if targets else "")
        logger.info(f"Running {label}")
        result = self.run(args)
        self.check(result, label, targets)
        return result

    def state_list(self) -> List[str]:
        """Addresses currently recorded in the state manifest."""
        result = self.run(["state", "list"])
        if not result.ok:
            if "No state file was found" in result.stderr:
                return []
            self.check(result, "terraform state list")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def state_rm(self, addresses: Sequence[str], lock_args: Sequence[str] = ()) -> TerraformResult:
        """Remove addresses from the state manifest without touching the resources."""
        if not addresses:
            raise ValueError("state_rm requires at least one address")
        result = self.run(["state", "rm", *lock_args, *addresses])
        self.check(result, "terraform state rm", addresses)
        return result

    def show_json(self) -> Dict[str, Any]:
        """Return ``terraform show -json`` as a dict ({} when there is no state)."""
        result = self.run(["show", "-json", "-no-color"])
        if not result.ok:
            if "No state" in result.stderr:
                return {}
            self.check(result, "terraform show")
        if not result.stdout.strip():
            return {}
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise TeardownError(f"Cannot parse terraform show output: {e}") from e
