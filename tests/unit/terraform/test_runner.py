"""Tests for TerraformRunner and state manifest parsing."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from safedestroy.errors import (
    CallTimeout,
    DependencyBlocked,
    LockConflict,
    PermissionDenied,
    ProviderUnavailable,
    TeardownError,
)
from safedestroy.models.resource import ResourceKind
from safedestroy.terraform.manifest import parse_state, read_manifest
from safedestroy.terraform.runner import TerraformResult, TerraformRunner


def completed(stdout: str = "", stderr: str = "", returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=["terraform"], returncode=returncode, stdout=stdout, stderr=stderr)


STATE = {
    "values": {
        "root_module": {
            "resources": [
                {"address": "aws_vpc.main", "mode": "managed", "type": "aws_vpc", "values": {"id": "vpc-1"}},
                {
                    "address": "data.aws_caller_identity.me",
                    "mode": "data",
                    "type": "aws_caller_identity",
                    "values": {"id": "123"},
                },
            ],
            "child_modules": [
                {
                    "resources": [
                        {
                            "address": "module.eks.aws_eks_cluster.this",
                            "mode": "managed",
                            "type": "aws_eks_cluster",
                            "values": {"id": "demo", "name": "demo"},
                        },
                        {
                            "address": "module.eks.aws_eks_node_group.workers",
                            "mode": "managed",
                            "type": "aws_eks_node_group",
                            "values": {"id": "demo:workers"},
                        },
                    ]
                }
            ],
        }
    }
}


class TestParseState:
    """Test suite for state manifest parsing."""

    def test_walks_child_modules_and_skips_data(self) -> None:
        """Test that managed resources in every module are returned."""
        entries = parse_state(STATE)

        assert [e.address for e in entries] == [
            "aws_vpc.main",
            "module.eks.aws_eks_cluster.this",
            "module.eks.aws_eks_node_group.workers",
        ]
        assert entries[2].resource_id == "demo/workers"
        assert entries[1].kind == ResourceKind.MANAGED_CLUSTER

    def test_empty_state(self) -> None:
        """Test a document without values."""
        assert parse_state({}) == []

    def test_read_manifest_uses_runner(self) -> None:
        """Test reading through a runner."""
        runner = Mock()
        runner.show_json.return_value = STATE
        assert len(read_manifest(runner)) == 3


class TestTerraformRunner:
    """Test suite for TerraformRunner."""

    @pytest.fixture
    def runner(self, tmp_path: Path) -> TerraformRunner:
        return TerraformRunner(tmp_path, timeout=60)

    @patch("safedestroy.terraform.runner.subprocess.run")
    def test_destroy_with_targets_and_lock_args(self, mock_run: Mock, runner: TerraformRunner) -> None:
        """Test the destroy command line."""
        mock_run.return_value = completed("Destroy complete!")

        runner.destroy(targets=["aws_subnet.a", "aws_subnet.b"], lock_args=["-lock=false"])

        command = mock_run.call_args.args[0]
        assert command[:3] == ["terraform", "destroy", "-auto-approve"]
        assert "-lock=false" in command
        assert command[-2:] == ["-target=aws_subnet.a", "-target=aws_subnet.b"]
        assert mock_run.call_args.kwargs["timeout"] == 60
        assert mock_run.call_args.kwargs["cwd"] == runner.working_dir

    @pytest.mark.parametrize(
        "stderr, error_class",
        [
            ("Error acquiring the state lock", LockConflict),
            ("AccessDenied: not authorized to perform ec2:DeleteSubnet", PermissionDenied),
            ("DependencyViolation: The subnet has dependencies", DependencyBlocked),
            ("InvalidNetworkInterface.InUse: Network interface eni-1 is currently in use", DependencyBlocked),
            ("timeout while waiting for state to become 'deleted'", CallTimeout),
            ("something unexpected", TeardownError),
            ("plugin cache directory in use by another process", TeardownError),
        ],
    )
    @patch("safedestroy.terraform.runner.subprocess.run")
    def test_failures_are_classified(
        self, mock_run: Mock, runner: TerraformRunner, stderr: str, error_class: type
    ) -> None:
        """Test mapping of terraform output onto the error taxonomy."""
        mock_run.return_value = completed(stderr=stderr, returncode=1)

        with pytest.raises(error_class) as exc_info:
            runner.destroy(targets=["aws_subnet.a"])
        assert type(exc_info.value) is error_class
        assert exc_info.value.resource_ids == ["aws_subnet.a"]

    @patch("safedestroy.terraform.runner.subprocess.run")
    def test_timeout(self, mock_run: Mock, runner: TerraformRunner) -> None:
        """Test the per-invocation timeout."""
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="terraform", timeout=60)
        with pytest.raises(CallTimeout):
            runner.destroy()

    @patch("safedestroy.terraform.runner.subprocess.run")
    def test_missing_binary(self, mock_run: Mock, runner: TerraformRunner) -> None:
        """Test terraform not installed."""
        mock_run.side_effect = FileNotFoundError("terraform")
        with pytest.raises(ProviderUnavailable):
            runner.state_list()

    def test_missing_directory(self, tmp_path: Path) -> None:
        """Test a working directory that does not exist."""
        with pytest.raises(ProviderUnavailable, match="not found"):
            TerraformRunner(tmp_path / "missing").state_list()

    @patch("safedestroy.terraform.runner.subprocess.run")
    def test_state_list(self, mock_run: Mock, runner: TerraformRunner) -> None:
        """Test listing state addresses."""
        mock_run.return_value = completed("aws_vpc.main\naws_subnet.a\n\n")
        assert runner.state_list() == ["aws_vpc.main", "aws_subnet.a"]

    @patch("safedestroy.terraform.runner.subprocess.run")
    def test_state_list_without_state(self, mock_run: Mock, runner: TerraformRunner) -> None:
        """Test a workspace that was never applied."""
        mock_run.return_value = completed(stderr="No state file was found!", returncode=1)
        assert runner.state_list() == []

    @patch("safedestroy.terraform.runner.subprocess.run")
    def test_state_rm(self, mock_run: Mock, runner: TerraformRunner) -> None:
        """Test removing addresses from state."""
        mock_run.return_value = completed("Removed 1 resource instance(s).")

        runner.state_rm(["aws_subnet.a"], lock_args=["-lock=false"])

        assert mock_run.call_args.args[0] == ["terraform", "state", "rm", "-lock=false", "aws_subnet.a"]

    def test_state_rm_requires_addresses(self, runner: TerraformRunner) -> None:
        """Test that state rm refuses an empty address list."""
        with pytest.raises(ValueError):
            runner.state_rm([])

    @patch("safedestroy.terraform.runner.subprocess.run")
    def test_show_json(self, mock_run: Mock, runner: TerraformRunner) -> None:
        """Test parsing terraform show output."""
        mock_run.return_value = completed(json.dumps(STATE))
        assert runner.show_json() == STATE

        mock_run.return_value = completed("")
        assert runner.show_json() == {}

        mock_run.return_value = completed("{not json")
        with pytest.raises(TeardownError, match="Cannot parse"):
            runner.show_json()

    def test_result_tail(self) -> None:
        """Test trimming output for log messages."""
        result = TerraformResult(1, "", "\n".join(f"line {i}" for i in range(30)))
        assert not result.ok
        assert result.tail(2) == "line 28\nline 29"
