"""kubectl wrapper for Kubernetes services that own provider networking.

A Service of type LoadBalancer makes the AWS load balancer controller
create an ELB, target groups and ENIs that Terraform never sees. Deleting
the Service is the only clean way to make those go away.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from typing import Any, Dict, List, Optional

from ..errors import CallTimeout, PermissionDenied, ProviderUnavailable, TeardownError

logger = logging.getLogger(__name__)

DEFAULT_KUBECTL_TIMEOUT = 60


def annotation_key(marker_key: str) -> str:
    """Kubernetes annotation key for a detach marker tag key (``a:b`` becomes ``a/b``)."""
    return marker_key.replace(":", "/", 1)


class KubectlClient:
    """Runs kubectl with a per-call timeout.

    Attributes:
        context: kubeconfig context to use (optional, current context if None)
        timeout: Subprocess timeout in seconds
        binary: kubectl executable name or path
    """

    def __init__(
        self,
        context: Optional[str] = None,
        timeout: int = DEFAULT_KUBECTL_TIMEOUT,
        binary: str = "kubectl",
    ) -> None:
        self.context = context
        self.timeout = timeout
        self.binary = binary

    def available(self) -> bool:
        """Return True when kubectl is installed and can reach a cluster."""
        if shutil.which(self.binary) is None:
            logger.debug("kubectl not found on PATH")
            return False
        try:
            self._run(["cluster-info"], timeout=min(self.timeout, 15))
        except TeardownError as e:
            logger.debug(f"kubectl cannot reach a cluster: {e}")
            return False
        return True

    def _run(self, args: List[str], timeout: Optional[int] = None) -> str:
        command = [self.binary]
        if self.context:
            command.extend(["--context", self.context])
        command.extend(args)
        printable = " ".join(command)
        logger.debug(f"Running: {printable}")

        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ProviderUnavailable(f"kubectl not installed: {e}", remediation=printable) from e
        except subprocess.TimeoutExpired as e:
            raise CallTimeout(f"kubectl timed out after {e.timeout}s", remediation=printable) from e

        if completed.returncode != 0:
            stderr = completed.stderr.strip()
            if "forbidden" in stderr.lower():
                raise PermissionDenied(f"kubectl: {stderr}", remediation=printable)
            raise TeardownError(f"kubectl failed (rc={completed.returncode}): {stderr}", remediation=printable)
        return completed.stdout

    def list_load_balancer_services(self) -> List[Dict[str, Any]]:
        """List Services of type LoadBalancer across all namespaces.

        Returns:
            List of dicts with namespace, name, hostname (ELB DNS name, may be
            empty) and annotations
        """
        output = self._run(["get", "svc", "--all-namespaces", "-o", "json"])
        data = json.loads(output or "{}")

        services = []
        for item in data.get("items", []):
            if item.get("spec", {}).get("type") != "LoadBalancer":
                continue
            ingress = item.get("status", {}).get("loadBalancer", {}).get("ingress", []) or []
            services.append(
                {
                    "namespace": item["metadata"]["namespace"],
                    "name": item["metadata"]["name"],
                    "hostname": ingress[0].get("hostname", "") if ingress else "",
                    "annotations": dict(item["metadata"].get("annotations") or {}),
                }
            )
        return services

    def service_exists(self, namespace: str, name: str) -> bool:
        try:
            self._run(["get", "svc", name, "-n", namespace, "-o", "name"])
        except TeardownError as e:
            if "notfound" in str(e).lower().replace(" ", ""):
                return False
            raise
        return True

    def delete_service(self, namespace: str, name: str) -> bool:
        """Delete a Service; returns False if it was already gone."""
        output = self._run(
            ["delete", "svc", name, "-n", namespace, "--ignore-not-found", f"--timeout={self.timeout}s"],
            timeout=self.timeout + 15,
        )
        deleted = bool(output.strip())
        if deleted:
            logger.info(f"Deleted service {namespace}/{name}")
        return deleted

    def annotate_service(self, namespace: str, name: str, key: str, value: str) -> None:
        """Set (or overwrite) one annotation on a Service."""
        self._run(["annotate", "svc", name, "-n", namespace, f"{key}={value}", "--overwrite"])
        logger.info(f"Annotated service {namespace}/{name} with {key}={value}")
