"""boto3 client factory with per-call timeouts."""

from __future__ import annotations

from typing import Any, Optional

import boto3
from botocore.config import Config as BotoConfig

DEFAULT_CALL_TIMEOUT = 30


def create_boto_client(
    service_name: str,
    region_name: Optional[str] = None,
    profile_name: Optional[str] = None,
    call_timeout: int = DEFAULT_CALL_TIMEOUT,
) -> Any:
    """Create a boto3 client for ``service_name``.

    The per-call timeout is separate from the orchestrator's RetryPolicy;
    botocore's own retry mode stays in "standard" so throttling is absorbed
    before it reaches our taxonomy.

    Args:
        service_name: AWS service (e.g. "ec2")
        region_name: AWS region (optional, falls back to the profile/env)
        profile_name: AWS profile name (optional)
        call_timeout: Connect and read timeout in seconds

    Returns:
        boto3 client
    """
    session = boto3.Session(profile_name=profile_name, region_name=region_name)
    config = BotoConfig(
        connect_timeout=call_timeout,
        read_timeout=call_timeout,
        retries={"max_attempts": 3, "mode": "standard"},
    )
    return session.client(service_name, config=config)
