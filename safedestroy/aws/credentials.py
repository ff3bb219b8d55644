"""AWS credential validation."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .client import create_boto_client

logger = logging.getLogger(__name__)


class CredentialValidationError(Exception):
    """Raised when AWS credentials are missing or rejected."""


def validate_credentials(profile_name: Optional[str] = None, region_name: Optional[str] = None) -> Dict[str, str]:
    """Validate credentials with STS GetCallerIdentity.

    Args:
        profile_name: AWS profile name (optional)
        region_name: AWS region (optional)

    Returns:
        Dictionary with account_id, arn and user_id

    Raises:
        CredentialValidationError: If credentials are missing or invalid
    """
    try:
        sts = create_boto_client("sts", region_name=region_name, profile_name=profile_name)
        identity = sts.get_caller_identity()
    except (ClientError, BotoCoreError) as e:
        raise CredentialValidationError(f"Unable to validate AWS credentials: {e}") from e

    logger.debug(f"Authenticated as {identity.get('Arn')}")
    return {
        "account_id": identity["Account"],
        "arn": identity["Arn"],
        "user_id": identity.get("UserId", ""),
    }
