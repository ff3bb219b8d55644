"""Error taxonomy for teardown operations.

Every provider, Terraform and kubectl failure is translated into one of the
classes below so that stages can decide uniformly whether to retry, record
and continue, or stop the run.

Classes:
    TeardownError: Base class carrying resource ids and a remedial command
    DependencyBlocked: Resource still has a dependency (retriable in-stage)
    CallTimeout: A single call timed out or was throttled (retriable)
    PermissionDenied: Credentials lack permission (fatal for the action)
    ProviderUnavailable: Provider cannot be reached (fatal for the run)
    LockConflict: Another process holds the state manifest lock (retriable)
"""

from __future__ import annotations

from typing import Iterable, Optional

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

# Error codes meaning the resource is already gone
NOT_FOUND_CODES = frozenset(
    {
        "NoSuchBucket",
        "NoSuchKey",
        "NoSuchVersion",
        "NoSuchEntity",
        "NotFound",
        "ResourceNotFoundException",
        "InvalidNetworkInterfaceID.NotFound",
        "InvalidSubnetID.NotFound",
        "InvalidVpcID.NotFound",
        "InvalidInstanceID.NotFound",
        "InvalidGroup.NotFound",
        "InvalidRouteTableID.NotFound",
        "InvalidInternetGatewayID.NotFound",
        "InvalidVpcEndpointId.NotFound",
        "NatGatewayNotFound",
        "LoadBalancerNotFound",
        "TargetGroupNotFound",
        "InvalidTarget",
    }
)

PERMISSION_CODES = frozenset(
    {
        "AccessDenied",
        "AccessDeniedException",
        "UnauthorizedOperation",
        "AuthFailure",
        "InvalidClientTokenId",
        "ExpiredToken",
        "ExpiredTokenException",
    }
)

DEPENDENCY_CODES = frozenset(
    {
        "DependencyViolation",
        "ResourceInUse",
        "ResourceInUseException",
        "InvalidNetworkInterface.InUse",
        "BucketNotEmpty",
        "OperationNotPermitted",
    }
)

THROTTLE_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "SlowDown",
        "TooManyRequestsException",
        "RequestTimeout",
    }
)


class TeardownError(Exception):
    """Base class for all teardown failures.

    Attributes:
        resource_ids: Identifiers of the resources the failure concerns
        remediation: Exact command an operator could run by hand (optional)
    """

    retriable = False

    def __init__(
        self,
        message: str,
        resource_ids: Optional[Iterable[str]] = None,
        remediation: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.resource_ids = list(resource_ids or [])
        self.remediation = remediation

    def describe(self) -> str:
        """Human-readable description including ids and remedial command."""
        parts = [str(self)]
        if self.resource_ids:
            parts.append(f"resources: {', '.join(self.resource_ids)}")
        if self.remediation:
            parts.append(f"manual fix: {self.remediation}")
        return " | ".join(parts)


class DependencyBlocked(TeardownError):
    """A resource cannot be removed until a dependency is cleared."""

    retriable = True


class CallTimeout(TeardownError):
    """A single provider/Terraform call timed out or was throttled."""

    retriable = True


class PermissionDenied(TeardownError):
    """The credentials in use may not perform the requested call."""


class ProviderUnavailable(TeardownError):
    """The provider API (or a required CLI) cannot be reached at all."""


class LockConflict(TeardownError):
    """Another process holds the state manifest lock."""

    retriable = True


def error_code(error: ClientError) -> str:
    """Extract the AWS error code from a ClientError."""
    return error.response.get("Error", {}).get("Code", "Unknown")


def is_not_found(error: ClientError) -> bool:
    """Return True when a ClientError means the resource no longer exists."""
    code = error_code(error)
    return code in NOT_FOUND_CODES or code.endswith(".NotFound")


def classify_client_error(
    error: Exception,
    resource_ids: Optional[Iterable[str]] = None,
    remediation: Optional[str] = None,
) -> TeardownError:
    """Translate a botocore exception into the teardown taxonomy.

    Not-found errors are not translated here; callers check
    :func:`is_not_found` first because they mean "already clean".

    Args:
        error: Exception raised by a boto3 call
        resource_ids: Resources the call was about
        remediation: Manual command to print if the error is fatal

    Returns:
        TeardownError subclass instance (never raises)
    """
    if isinstance(error, TeardownError):
        return error

    if isinstance(error, ClientError):
        code = error_code(error)
        message = error.response.get("Error", {}).get("Message", str(error))
        text = f"{code}: {message}"
        if code in PERMISSION_CODES:
            return PermissionDenied(text, resource_ids, remediation)
        if code in DEPENDENCY_CODES:
            return DependencyBlocked(text, resource_ids, remediation)
        if code in THROTTLE_CODES:
            return CallTimeout(text, resource_ids, remediation)
        return TeardownError(text, resource_ids, remediation)

    if isinstance(error, (ReadTimeoutError, ConnectTimeoutError)):
        return CallTimeout(f"Call timed out: {error}", resource_ids, remediation)

    if isinstance(error, (EndpointConnectionError, NoCredentialsError)):
        return ProviderUnavailable(f"Provider unavailable: {error}", resource_ids, remediation)

    if isinstance(error, BotoCoreError):
        return ProviderUnavailable(f"Provider error: {error}", resource_ids, remediation)

    return TeardownError(f"Unexpected error: {error}", resource_ids, remediation)
