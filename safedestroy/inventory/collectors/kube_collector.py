"""Kubernetes LoadBalancer service collector."""

from __future__ import annotations

from typing import List

from ...kube.kubectl import annotation_key
from ...models.resource import Resource, ResourceKind
from .base import BaseResourceCollector, ScanContext


class KubeServiceCollector(BaseResourceCollector):
    """Collector for Services of type LoadBalancer.

    Only runs when kubectl is configured and reachable and the deployment
    has an active cluster; each service is linked to the deployment's
    clusters and, through its hostname, to the balancer it provisioned.
    Services annotated with the detach marker are skipped.
    """

    @property
    def service_name(self) -> str:
        return "kubectl"

    def collect(self, context: ScanContext) -> List[Resource]:
        kubectl = self.provider.kubectl
        clusters = [r for r in context.of_kind(ResourceKind.MANAGED_CLUSTER) if r.is_active]
        if kubectl is None or not clusters:
            return []
        if not kubectl.available():
            self.logger.info("kubectl unavailable; skipping orchestrator services")
            return []

        balancers_by_dns = {
            r.attributes.get("dns_name"): r.resource_id
            for r in context.of_kind(ResourceKind.LOAD_BALANCER)
            if r.attributes.get("dns_name")
        }
        cluster_ids = frozenset(c.resource_id for c in clusters)
        marker = annotation_key(context.marker_key)

        resources = []
        for service in kubectl.list_load_balancer_services():
            if marker in service.get("annotations", {}):
                self.logger.debug(f"Skipping detached service {service['namespace']}/{service['name']}")
                continue
            hostname = service.get("hostname", "")
            resources.append(
                Resource(
                    resource_id=f"{service['namespace']}/{service['name']}",
                    kind=ResourceKind.ORCHESTRATOR_SERVICE,
                    deployment_tag=clusters[0].deployment_tag,
                    parent_ids=cluster_ids,
                    name=service["name"],
                    region=self.region,
                    attributes={
                        "namespace": service["namespace"],
                        "hostname": hostname,
                        "load_balancer_arn": balancers_by_dns.get(hostname),
                    },
                )
            )

        self.logger.debug(f"Collected {len(resources)} LoadBalancer services")
        return resources
