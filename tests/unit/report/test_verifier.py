"""Tests for VerificationReporter."""

from __future__ import annotations

from safedestroy.models.inventory import InventorySnapshot
from safedestroy.models.resource import ResourceKind
from safedestroy.models.teardown_operation import Outcome
from safedestroy.report.verifier import VerificationReporter, classify
from tests.fixtures.fake_cloud import FakeProvider, FakeTerraform, build_scanner, manifest_entry, make_resource


class TestClassify:
    """Test suite for outcome classification."""

    def test_clean(self) -> None:
        """Test that nothing left is clean."""
        assert classify(InventorySnapshot(deployment_tag="demo-v1")) == Outcome.CLEAN

    def test_manifest_only(self) -> None:
        """Test state entries without live resources."""
        snapshot = InventorySnapshot(
            deployment_tag="demo-v1", manifest=[manifest_entry("aws_vpc.main", "vpc-1", ResourceKind.NETWORK)]
        )
        assert classify(snapshot) == Outcome.MANIFEST_ONLY
        assert Outcome.MANIFEST_ONLY.exit_code == 2

    def test_live_resources_dominate(self) -> None:
        """Test that live resources remain whatever the manifest holds."""
        snapshot = InventorySnapshot(
            deployment_tag="demo-v1", resources=[make_resource("eni-1", ResourceKind.INTERFACE)]
        )
        assert classify(snapshot) == Outcome.RESOURCES_REMAIN
        assert Outcome.RESOURCES_REMAIN.exit_code == 1


class TestVerificationReporter:
    """Test suite for VerificationReporter."""

    def test_verify_clean(self) -> None:
        """Test a fully torn down deployment."""
        provider = FakeProvider()
        reporter = VerificationReporter(build_scanner(provider, FakeTerraform(provider)))

        report = reporter.verify("demo-v1")

        assert report.outcome == Outcome.CLEAN
        assert report.exit_code == 0
        assert "is clean" in reporter.format_terminal(report)

    def test_residuals_with_commands(self) -> None:
        """Test that residuals are listed with the command that removes them."""
        provider = FakeProvider()
        provider.add(make_resource("eni-1", ResourceKind.INTERFACE))
        terraform = FakeTerraform(
            provider,
            [
                manifest_entry("aws_network_interface.app", "eni-1", ResourceKind.INTERFACE),
                manifest_entry("aws_vpc.main", "vpc-1", ResourceKind.NETWORK),
            ],
        )
        reporter = VerificationReporter(build_scanner(provider, terraform))

        report = reporter.verify("demo-v1")
        output = reporter.format_terminal(report, width=200)

        assert report.outcome == Outcome.RESOURCES_REMAIN
        assert [r.resource_id for r in report.residual_resources] == ["eni-1"]
        assert "aws ec2 delete-network-interface --network-interface-id eni-1" in output
        assert "terraform state rm 'aws_vpc.main'" in output
        assert "aws_network_interface.app" not in output

    def test_manifest_only_report(self) -> None:
        """Test residual state entries only."""
        provider = FakeProvider()
        terraform = FakeTerraform(provider, [manifest_entry("aws_s3_bucket.b", "b", ResourceKind.OBJECT_STORE)])
        reporter = VerificationReporter(build_scanner(provider, terraform))

        report = reporter.verify("demo-v1")

        assert report.outcome == Outcome.MANIFEST_ONLY
        assert "state only" in reporter.format_terminal(report, width=200)
