"""End-to-end teardown of the demo-v1 deployment against the in-memory cloud."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from rich.console import Console

from safedestroy.models.cleanup_action import ActionResult
from safedestroy.models.resource import ResourceKind
from safedestroy.models.teardown_operation import CoordinatorState, Outcome
from tests.fixtures.fake_cloud import FakeLock, demo_v1_cloud, fake_runtime, make_resource


@pytest.fixture
def runtime(tmp_path: Path):
    lock = FakeLock()
    provider, terraform = demo_v1_cloud(lock)
    return fake_runtime(provider, terraform, lock, str(tmp_path / "audit"))


class TestDemoTeardown:
    """Scan, clean up, destroy and verify demo-v1 step by step."""

    def test_scan_finds_blockers(self, runtime) -> None:
        """Test the inventory and blocking dependencies before any change."""
        snapshot = runtime.scanner.scan("demo-v1")
        detection = runtime.detector.detect(snapshot)

        assert snapshot.resource_count == 5
        assert {r.resource_id for r in snapshot.untracked()} == {"eni-1", "eni-2"}
        assert len(detection.resource_edges) == 2
        assert len(detection.actions) == 5
        assert runtime.reporter().verify("demo-v1").outcome == Outcome.RESOURCES_REMAIN

    def test_cleanup_then_destroy(self, runtime) -> None:
        """Test that cleanup unblocks a single full destroy."""
        snapshot = runtime.scanner.scan("demo-v1")
        report = runtime.executor.execute(runtime.detector.detect(snapshot).actions)

        assert report.count(ActionResult.SUCCESS) == 5
        assert report.exit_code == 0
        assert runtime.provider.blockers("subnet-1") == []
        assert runtime.provider.blockers("demo-v1-artifacts") == []

        runtime.terraform.destroy()

        final = runtime.reporter().verify("demo-v1")
        assert final.outcome == Outcome.CLEAN
        assert final.outcome.exit_code == 0

    def test_coordinator_end_to_end(self, runtime) -> None:
        """Test the coordinator drives the whole teardown and logs it."""
        operation = runtime.coordinator().run("demo-v1")
        operation.outcome = runtime.reporter().verify("demo-v1").outcome
        audit_file = runtime.audit.log_operation(operation)

        assert operation.history == [
            CoordinatorState.PLANNING,
            CoordinatorState.FULL_DESTROY_ATTEMPT,
            CoordinatorState.VERIFIED,
        ]
        assert operation.outcome == Outcome.CLEAN
        assert runtime.provider.resources == {}
        assert runtime.terraform.entries == []
        assert all(held for command, targets, held in runtime.terraform.calls)
        assert runtime.audit.get_operation(operation.operation_id)["operation"]["deployment_tag"] == "demo-v1"
        assert audit_file.exists()

    def test_second_run_is_a_no_op(self, runtime) -> None:
        """Test rerunning after a clean teardown."""
        runtime.coordinator().run("demo-v1")
        calls_before = len(runtime.provider.calls)

        operation = runtime.coordinator().run("demo-v1")

        assert operation.state == CoordinatorState.VERIFIED
        assert len(runtime.provider.calls) == calls_before


class TestDetachThenScan:
    """Detaching a stuck resource lets the rest of the deployment finish."""

    def test_detach_foreign_interface(self, runtime) -> None:
        """Test that a detached interface is no longer part of the deployment."""
        runtime.provider.add(
            make_resource("eni-foreign", ResourceKind.INTERFACE, status="in-use", subnet_id="subnet-9")
        )
        answers = ["6", "eni-foreign", "demo-v1", "owned by another team", "7"]
        manual = runtime.console("demo-v1", Console(file=io.StringIO(), width=200))
        manual.prompt = lambda text, default=None: answers.pop(0)

        manual.run()

        assert answers == []
        assert "eni-foreign" in runtime.provider.resources
        assert "Deployment" not in runtime.provider.resources["eni-foreign"].tags
        assert "eni-foreign" not in {r.resource_id for r in runtime.scanner.scan("demo-v1").resources}

        records = runtime.audit.detach_records("demo-v1")
        assert len(records) == 1
        assert records[0]["resource_ids"] == ["eni-foreign"]
        assert records[0]["reason"] == "owned by another team"

        operation = runtime.coordinator().run("demo-v1")
        assert operation.state == CoordinatorState.VERIFIED
        assert runtime.reporter().verify("demo-v1").outcome == Outcome.CLEAN
