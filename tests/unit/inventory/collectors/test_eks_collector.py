"""Tests for EKSCollector."""

from __future__ import annotations

from typing import Any, Dict
from unittest.mock import MagicMock, Mock, patch

import pytest

from safedestroy.inventory.collectors.base import ScanContext
from safedestroy.inventory.collectors.eks_collector import EKSCollector
from safedestroy.models.resource import ResourceKind, ResourceStatus

CLUSTERS: Dict[str, Dict[str, Any]] = {
    "demo": {
        "name": "demo",
        "arn": "arn:aws:eks:us-east-1:123456789012:cluster/demo",
        "status": "ACTIVE",
        "tags": {"Deployment": "demo-v1"},
        "resourcesVpcConfig": {
            "vpcId": "vpc-1",
            "subnetIds": ["subnet-1", "subnet-2"],
            "clusterSecurityGroupId": "sg-cluster",
            "securityGroupIds": ["sg-1"],
        },
    },
    "prod": {"name": "prod", "status": "ACTIVE", "tags": {"Deployment": "prod"}},
}

NODE_GROUPS: Dict[str, Dict[str, Any]] = {
    "workers": {"nodegroupArn": "arn:ng/workers", "status": "DELETING", "subnets": ["subnet-1"], "tags": {}},
    "spare": {"status": "ACTIVE", "tags": {"safedestroy:detached-from": "demo-v1"}},
}


class TestEKSCollector:
    """Tests for EKSCollector."""

    @pytest.fixture
    def collector(self) -> EKSCollector:
        provider = Mock()
        provider.region = "us-east-1"
        return EKSCollector(provider)

    @pytest.fixture
    def mock_client(self) -> MagicMock:
        client = MagicMock()
        pages = {
            "list_clusters": [{"clusters": ["demo", "prod"]}],
            "list_nodegroups": [{"nodegroups": ["workers", "spare"]}],
        }

        def get_paginator(operation: str) -> MagicMock:
            paginator = MagicMock()
            paginator.paginate.return_value = pages[operation]
            return paginator

        client.get_paginator.side_effect = get_paginator
        client.describe_cluster.side_effect = lambda name: {"cluster": CLUSTERS[name]}
        client.describe_nodegroup.side_effect = lambda clusterName, nodegroupName: {
            "nodegroup": NODE_GROUPS[nodegroupName]
        }
        return client

    def test_service_name(self, collector: EKSCollector) -> None:
        """Test that service_name returns 'eks'."""
        assert collector.service_name == "eks"

    def test_collects_cluster_and_node_groups(self, collector: EKSCollector, mock_client: MagicMock) -> None:
        """Test that a tagged cluster is collected with its untagged node groups."""
        with patch.object(collector, "_create_client", return_value=mock_client):
            resources = collector.collect(ScanContext(deployment_tag="demo-v1"))

        by_id = {r.resource_id: r for r in resources}
        assert set(by_id) == {"demo", "demo/workers"}

        cluster = by_id["demo"]
        assert cluster.kind == ResourceKind.MANAGED_CLUSTER
        assert cluster.parent_ids == frozenset({"vpc-1"})
        assert cluster.attributes["subnet_ids"] == ["subnet-1", "subnet-2"]
        assert cluster.attributes["cluster_security_group_id"] == "sg-cluster"

        workers = by_id["demo/workers"]
        assert workers.kind == ResourceKind.NODE_GROUP
        assert workers.name == "workers"
        assert workers.deployment_tag == "demo-v1"
        assert workers.parent_ids == frozenset({"demo"})
        assert workers.status == ResourceStatus.DELETING

    def test_other_deployment_not_described_further(self, collector: EKSCollector, mock_client: MagicMock) -> None:
        """Test that node groups are only listed for matching clusters."""
        with patch.object(collector, "_create_client", return_value=mock_client):
            collector.collect(ScanContext(deployment_tag="demo-v1"))

        listed = [c.kwargs["clusterName"] for c in mock_client.describe_nodegroup.call_args_list]
        assert set(listed) == {"demo"}
