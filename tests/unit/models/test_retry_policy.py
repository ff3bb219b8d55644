"""Tests for RetryPolicy."""

from __future__ import annotations

import pytest

from safedestroy.errors import CallTimeout, DependencyBlocked, PermissionDenied
from safedestroy.models.retry_policy import RetryPolicy


class TestRetryPolicy:
    """Test suite for RetryPolicy."""

    def test_rejects_zero_attempts(self) -> None:
        """Test that at least one attempt is required."""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_exponential_delays_capped(self) -> None:
        """Test delays without jitter."""
        policy = RetryPolicy(max_attempts=5, base_delay=2.0, max_delay=10.0, jitter=False)
        assert [policy.delay_for(n) for n in range(1, 5)] == [2.0, 4.0, 8.0, 10.0]

    def test_jitter_stays_in_range(self) -> None:
        """Test jittered delays are between half and the full delay."""
        policy = RetryPolicy(base_delay=4.0, max_delay=100.0)
        for _ in range(20):
            assert 4.0 <= policy.delay_for(2) <= 8.0

    def test_retries_until_success(self) -> None:
        """Test that retriable errors are retried."""
        sleeps = []
        policy = RetryPolicy(max_attempts=3, base_delay=1.0, jitter=False, sleep=sleeps.append)
        calls = {"n": 0}

        def flaky() -> str:
            calls["n"] += 1
            if calls["n"] < 3:
                raise CallTimeout("slow")
            return "done"

        assert policy.run(flaky) == "done"
        assert calls["n"] == 3
        assert sleeps == [1.0, 2.0]

    def test_raises_last_error_when_exhausted(self) -> None:
        """Test that the last retriable error propagates."""
        policy = RetryPolicy(max_attempts=2, base_delay=0.0, jitter=False, sleep=lambda s: None)

        def blocked() -> None:
            raise DependencyBlocked("still in use", ["subnet-1"])

        with pytest.raises(DependencyBlocked) as exc_info:
            policy.run(blocked)
        assert exc_info.value.resource_ids == ["subnet-1"]

    def test_non_retriable_raised_immediately(self) -> None:
        """Test that permission errors are never retried."""
        calls = {"n": 0}
        policy = RetryPolicy(max_attempts=5, sleep=lambda s: None)

        def denied() -> None:
            calls["n"] += 1
            raise PermissionDenied("AccessDenied")

        with pytest.raises(PermissionDenied):
            policy.run(denied)
        assert calls["n"] == 1

    def test_custom_retry_on(self) -> None:
        """Test restricting which errors are retried."""
        calls = {"n": 0}
        policy = RetryPolicy(max_attempts=3, sleep=lambda s: None)

        def blocked() -> None:
            calls["n"] += 1
            raise DependencyBlocked("x")

        with pytest.raises(DependencyBlocked):
            policy.run(blocked, retry_on=(CallTimeout,))
        assert calls["n"] == 1
