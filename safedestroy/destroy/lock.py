"""State manifest locking.

The orchestrator never runs terraform against the manifest without holding
its lock. With a DynamoDB lock table configured the orchestrator takes the
lock itself (the same item terraform's S3 backend uses) and runs terraform
with ``-lock=false`` while it holds it. Without a lock table, terraform's
built-in locking is used with a lock timeout.
"""

from __future__ import annotations

import json
import logging
import socket
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..errors import LockConflict, classify_client_error, error_code
from ..models.detach_record import current_operator
from ..models.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)


class TerraformBuiltinLock:
    """Delegate locking to terraform itself."""

    def __init__(self, lock_timeout: int = 300) -> None:
        self.lock_timeout = lock_timeout

    @property
    def terraform_args(self) -> List[str]:
        return ["-lock=true", f"-lock-timeout={self.lock_timeout}s"]

    @contextmanager
    def hold(self, operation: str = "destroy") -> Iterator[List[str]]:
        logger.debug(f"terraform will acquire its own lock for {operation}")
        yield self.terraform_args


class ManifestLock:
    """Conditional-put lock on the terraform lock table.

    Attributes:
        dynamodb: boto3 DynamoDB client
        table_name: Lock table name
        lock_id: Lock item id (``<state_bucket>/<state_key>``)
        retry_policy: Backoff used while another holder has the lock
    """

    def __init__(
        self,
        dynamodb: Any,
        table_name: str,
        lock_id: str,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.dynamodb = dynamodb
        self.table_name = table_name
        self.lock_id = lock_id
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=5, base_delay=5.0, max_delay=60.0)
        self._info: Optional[str] = None

    @property
    def terraform_args(self) -> List[str]:
        return ["-lock=false"]

    @property
    def held(self) -> bool:
        return self._info is not None

    def _lock_info(self, operation: str) -> str:
        return json.dumps(
            {
                "ID": str(uuid.uuid4()),
                "Operation": f"safedestroy-{operation}",
                "Who": f"{current_operator()}@{socket.gethostname()}",
                "Created": datetime.now(timezone.utc).isoformat(),
            }
        )

    def _try_acquire(self, operation: str) -> None:
        info = self._lock_info(operation)
        try:
            self.dynamodb.put_item(
                TableName=self.table_name,
                Item={"LockID": {"S": self.lock_id}, "Info": {"S": info}},
                ConditionExpression="attribute_not_exists(LockID)",
            )
        except ClientError as e:
            if error_code(e) == "ConditionalCheckFailedException":
                raise LockConflict(
                    f"State manifest lock {self.lock_id} is held by another process",
                    [self.lock_id],
                    "terraform force-unlock <LOCK_ID>",
                ) from e
            raise classify_client_error(e, [self.lock_id]) from e
        except BotoCoreError as e:
            raise classify_client_error(e, [self.lock_id]) from e
        self._info = info

    def acquire(self, operation: str = "destroy") -> None:
        """Acquire the lock, backing off while another holder has it.

        Raises:
            LockConflict: If the lock is still held after all attempts
        """
        self.retry_policy.run(
            lambda: self._try_acquire(operation),
            retry_on=(LockConflict,),
            description=f"acquire lock {self.lock_id}",
        )
        logger.debug(f"Acquired state manifest lock {self.lock_id}")

    def release(self) -> None:
        """Release the lock if we hold it; only our own lock item is removed."""
        if self._info is None:
            return
        try:
            self.dynamodb.delete_item(
                TableName=self.table_name,
                Key={"LockID": {"S": self.lock_id}},
                ConditionExpression="Info = :info",
                ExpressionAttributeValues={":info": {"S": self._info}},
            )
            logger.debug(f"Released state manifest lock {self.lock_id}")
        except ClientError as e:
            if error_code(e) != "ConditionalCheckFailedException":
                raise classify_client_error(e, [self.lock_id]) from e
            logger.warning(f"Lock {self.lock_id} was taken over by another holder before release")
        finally:
            self._info = None

    @contextmanager
    def hold(self, operation: str = "destroy") -> Iterator[List[str]]:
        """Hold the lock for the duration of a terraform invocation.

        Yields:
            Extra terraform arguments to use while the lock is held
        """
        self.acquire(operation)
        try:
            yield self.terraform_args
        finally:
            self.release()
