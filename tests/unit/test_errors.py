"""Tests for the error taxonomy."""

from __future__ import annotations

from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from safedestroy.errors import (
    CallTimeout,
    DependencyBlocked,
    PermissionDenied,
    ProviderUnavailable,
    TeardownError,
    classify_client_error,
    is_not_found,
)


def client_error(code: str, message: str = "boom") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, "Operation")


class TestClassifyClientError:
    """Test suite for classify_client_error."""

    def test_permission_codes(self) -> None:
        """Test that access errors become PermissionDenied."""
        for code in ("AccessDenied", "UnauthorizedOperation", "ExpiredToken"):
            assert isinstance(classify_client_error(client_error(code)), PermissionDenied)

    def test_dependency_codes(self) -> None:
        """Test that dependency errors are retriable."""
        error = classify_client_error(client_error("DependencyViolation"), ["subnet-1"])
        assert isinstance(error, DependencyBlocked)
        assert error.retriable
        assert error.resource_ids == ["subnet-1"]

    def test_throttling_is_timeout(self) -> None:
        """Test that throttling is treated as a retriable timeout."""
        assert isinstance(classify_client_error(client_error("RequestLimitExceeded")), CallTimeout)

    def test_unknown_code_is_base_error(self) -> None:
        """Test that unknown codes keep their message."""
        error = classify_client_error(client_error("WeirdError", "odd"))
        assert type(error) is TeardownError
        assert "WeirdError: odd" in str(error)

    def test_connection_errors(self) -> None:
        """Test botocore connection and timeout errors."""
        assert isinstance(
            classify_client_error(EndpointConnectionError(endpoint_url="https://ec2")), ProviderUnavailable
        )
        assert isinstance(classify_client_error(ReadTimeoutError(endpoint_url="https://ec2")), CallTimeout)

    def test_taxonomy_errors_pass_through(self) -> None:
        """Test that already translated errors are returned unchanged."""
        original = DependencyBlocked("x")
        assert classify_client_error(original) is original

    def test_not_found(self) -> None:
        """Test not-found detection."""
        assert is_not_found(client_error("InvalidNetworkInterfaceID.NotFound"))
        assert is_not_found(client_error("NoSuchBucket"))
        assert is_not_found(client_error("InvalidFoo.NotFound"))
        assert not is_not_found(client_error("AccessDenied"))

    def test_describe_includes_remediation(self) -> None:
        """Test the human-readable description."""
        error = PermissionDenied("denied", ["eni-1"], "aws ec2 delete-network-interface --network-interface-id eni-1")
        text = error.describe()
        assert "eni-1" in text
        assert "manual fix: aws ec2" in text
