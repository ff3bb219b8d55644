"""Tests for ELBCollector."""

from __future__ import annotations

from unittest.mock import MagicMock, Mock, patch

import pytest

from safedestroy.inventory.collectors.base import ScanContext
from safedestroy.inventory.collectors.elb_collector import ELBCollector
from safedestroy.models.resource import Resource, ResourceKind


def lb_arn(index: int) -> str:
    return f"arn:aws:elasticloadbalancing:us-east-1:123456789012:loadbalancer/app/lb-{index}/abc"


class TestELBCollector:
    """Tests for ELBCollector."""

    @pytest.fixture
    def collector(self) -> ELBCollector:
        provider = Mock()
        provider.region = "us-east-1"
        return ELBCollector(provider)

    @pytest.fixture
    def context(self) -> ScanContext:
        vpc = Resource(resource_id="vpc-1", kind=ResourceKind.NETWORK, deployment_tag="demo-v1")
        return ScanContext(deployment_tag="demo-v1", resources=[vpc])

    def _client(self, balancers, groups, tags) -> MagicMock:
        client = MagicMock()
        pages = {
            "describe_load_balancers": [{"LoadBalancers": balancers}],
            "describe_target_groups": [{"TargetGroups": groups}],
        }

        def get_paginator(operation: str) -> MagicMock:
            paginator = MagicMock()
            paginator.paginate.return_value = pages[operation]
            return paginator

        client.get_paginator.side_effect = get_paginator
        client.describe_tags.side_effect = lambda ResourceArns: {
            "TagDescriptions": [
                {"ResourceArn": arn, "Tags": [{"Key": k, "Value": v} for k, v in tags.get(arn, {}).items()]}
                for arn in ResourceArns
            ]
        }
        return client

    def test_service_name(self, collector: ELBCollector) -> None:
        """Test that service_name returns 'elbv2'."""
        assert collector.service_name == "elbv2"

    def test_untagged_balancer_in_deployment_vpc(self, collector: ELBCollector, context: ScanContext) -> None:
        """Test that controller-created balancers are attributed through their VPC."""
        balancers = [
            {
                "LoadBalancerArn": lb_arn(1),
                "LoadBalancerName": "k8s-default-web",
                "VpcId": "vpc-1",
                "DNSName": "k8s-default-web-123.elb.amazonaws.com",
                "State": {"Code": "active"},
                "Type": "application",
            },
            {"LoadBalancerArn": lb_arn(2), "VpcId": "vpc-other", "State": {"Code": "active"}},
        ]
        groups = [
            {
                "TargetGroupArn": "arn:tg/web",
                "TargetGroupName": "web",
                "VpcId": "vpc-1",
                "TargetType": "ip",
                "LoadBalancerArns": [lb_arn(1)],
            }
        ]
        client = self._client(balancers, groups, {})

        with patch.object(collector, "_create_client", return_value=client):
            resources = collector.collect(context)

        by_id = {r.resource_id: r for r in resources}
        assert set(by_id) == {lb_arn(1), "arn:tg/web"}
        balancer = by_id[lb_arn(1)]
        assert balancer.kind == ResourceKind.LOAD_BALANCER
        assert balancer.name == "k8s-default-web"
        assert balancer.deployment_tag == "demo-v1"
        assert balancer.attributes["dns_name"] == "k8s-default-web-123.elb.amazonaws.com"
        group = by_id["arn:tg/web"]
        assert group.kind == ResourceKind.TARGET_GROUP
        assert group.attributes["target_type"] == "ip"
        assert group.attributes["load_balancer_arns"] == [lb_arn(1)]

    def test_tagged_balancer_outside_vpc(self, collector: ELBCollector, context: ScanContext) -> None:
        """Test that a tagged balancer is collected wherever it lives."""
        balancers = [{"LoadBalancerArn": lb_arn(1), "VpcId": "vpc-other", "State": {"Code": "active"}}]
        client = self._client(balancers, [], {lb_arn(1): {"Deployment": "demo-v1"}})

        with patch.object(collector, "_create_client", return_value=client):
            resources = collector.collect(context)

        assert [r.resource_id for r in resources] == [lb_arn(1)]

    def test_detached_balancer_skipped(self, collector: ELBCollector, context: ScanContext) -> None:
        """Test that a detach marker wins over VPC membership."""
        balancers = [{"LoadBalancerArn": lb_arn(1), "VpcId": "vpc-1", "State": {"Code": "active"}}]
        client = self._client(balancers, [], {lb_arn(1): {"safedestroy:detached-from": "demo-v1"}})

        with patch.object(collector, "_create_client", return_value=client):
            assert collector.collect(context) == []

    def test_tags_fetched_in_batches(self, collector: ELBCollector, context: ScanContext) -> None:
        """Test that DescribeTags is called with at most 20 ARNs."""
        balancers = [{"LoadBalancerArn": lb_arn(i), "VpcId": "vpc-1", "State": {"Code": "active"}} for i in range(45)]
        client = self._client(balancers, [], {})

        with patch.object(collector, "_create_client", return_value=client):
            resources = collector.collect(context)

        assert len(resources) == 45
        sizes = [len(c.kwargs["ResourceArns"]) for c in client.describe_tags.call_args_list]
        assert sizes == [20, 20, 5]
