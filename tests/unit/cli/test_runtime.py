"""Tests for runtime wiring."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import Mock, patch

from safedestroy.cli.config import Config
from safedestroy.cli.runtime import build_runtime
from safedestroy.destroy.lock import ManifestLock, TerraformBuiltinLock


class TestBuildRuntime:
    """Test suite for build_runtime."""

    @patch("safedestroy.aws.provider.create_boto_client")
    def test_builtin_lock_without_table(self, mock_create_client: Mock, tmp_path: Path) -> None:
        """Test that terraform's own locking is used without a lock table."""
        config = Config(terraform_dir=str(tmp_path), audit_dir=str(tmp_path / "audit"), max_attempts=5)

        runtime = build_runtime(config)

        assert isinstance(runtime.lock, TerraformBuiltinLock)
        assert runtime.retry_policy.max_attempts == 5
        assert runtime.terraform.working_dir == tmp_path
        assert not runtime.executor.dry_run
        mock_create_client.assert_not_called()

    @patch("safedestroy.aws.provider.create_boto_client")
    def test_manifest_lock_with_table(self, mock_create_client: Mock, tmp_path: Path) -> None:
        """Test the DynamoDB lock and the backend exclusions."""
        config = Config(
            terraform_dir=str(tmp_path),
            audit_dir=str(tmp_path / "audit"),
            state_bucket="tf-state",
            lock_table="tf-locks",
        )

        runtime = build_runtime(config, dry_run=True)

        assert isinstance(runtime.lock, ManifestLock)
        assert mock_create_client.call_args.kwargs["service_name"] == "dynamodb"
        assert runtime.scanner.excluded_ids == {"tf-state", "tf-locks"}
        assert runtime.executor.dry_run

    @patch("safedestroy.aws.provider.create_boto_client")
    def test_components_share_the_provider(self, mock_create_client: Mock, tmp_path: Path) -> None:
        """Test that coordinator, console and reporter reuse one runtime."""
        runtime = build_runtime(Config(terraform_dir=str(tmp_path), audit_dir=str(tmp_path / "audit")))

        coordinator = runtime.coordinator()
        manual = runtime.console("demo-v1")

        assert coordinator.scanner is runtime.scanner
        assert manual.provider is runtime.provider
        assert runtime.reporter().scanner is runtime.scanner

    @patch("safedestroy.aws.provider.create_boto_client")
    def test_deleter_uses_configured_wait(self, mock_create_client: Mock, tmp_path: Path) -> None:
        """Test that the deleter waits as long as configured."""
        runtime = build_runtime(
            Config(terraform_dir=str(tmp_path), audit_dir=str(tmp_path / "audit"), delete_wait_timeout=300, max_attempts=2)
        )

        assert runtime.deleter.wait_timeout == 300
        assert runtime.deleter.retry_policy.max_attempts == 2
