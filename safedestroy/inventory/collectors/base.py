"""Base class for resource collectors."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from botocore.exceptions import BotoCoreError, ClientError

from ...aws.provider import AwsProvider
from ...errors import TeardownError, classify_client_error
from ...models.resource import Resource, ResourceKind, ResourceStatus


def tags_to_dict(tags: Optional[Iterable[Dict[str, str]]]) -> Dict[str, str]:
    """Convert an AWS ``[{"Key": ..., "Value": ...}]`` tag list to a dict."""
    return {tag["Key"]: tag.get("Value", "") for tag in tags or [] if "Key" in tag}


@dataclass
class ScanContext:
    """What a scan is looking for, plus everything found so far.

    Attributes:
        deployment_tag: Tag value, or a prefix when it ends in ``*``
        tag_key: Tag key carrying the deployment name
        marker_key: Detach marker tag key; resources carrying it are skipped
        excluded_ids: Ids never reported (Terraform backend bucket and lock table)
        resources: Resources collected by earlier collectors
    """

    deployment_tag: str
    tag_key: str = "Deployment"
    marker_key: str = "safedestroy:detached-from"
    excluded_ids: Set[str] = field(default_factory=set)
    resources: List[Resource] = field(default_factory=list)

    def match(self, tags: Dict[str, str]) -> Optional[str]:
        """Return the matched deployment tag value, or None if the tags do not match."""
        if self.marker_key in tags:
            return None
        value = tags.get(self.tag_key)
        if value is None:
            return None
        if self.deployment_tag.endswith("*"):
            return value if value.startswith(self.deployment_tag[:-1]) else None
        return value if value == self.deployment_tag else None

    def is_detached(self, tags: Dict[str, str]) -> bool:
        return self.marker_key in tags

    def of_kind(self, kind: ResourceKind) -> List[Resource]:
        return [r for r in self.resources if r.kind == kind]

    def ids_of(self, kind: ResourceKind) -> List[str]:
        return [r.resource_id for r in self.of_kind(kind)]

    def tag_for(self, resource_id: str) -> str:
        """Deployment tag of a resource found earlier in this scan."""
        for resource in self.resources:
            if resource.resource_id == resource_id:
                return resource.deployment_tag
        return ""


class BaseResourceCollector(ABC):
    """Base class for per-service collectors.

    Collectors are read-only. Permission and connectivity errors are raised
    as PermissionDenied/ProviderUnavailable; a collector never retries.
    """

    def __init__(self, provider: AwsProvider) -> None:
        self.provider = provider
        self.region = provider.region or ""
        self.logger = logging.getLogger(self.__class__.__module__)

    @property
    @abstractmethod
    def service_name(self) -> str:
        """AWS service the collector queries."""

    @abstractmethod
    def collect(self, context: ScanContext) -> List[Resource]:
        """Collect resources belonging to the deployment in ``context``."""

    def _create_client(self) -> Any:
        return self.provider.client(self.service_name)

    def _raise(self, error: Exception, what: str) -> TeardownError:
        """Translate a botocore error raised while listing ``what``."""
        if isinstance(error, (ClientError, BotoCoreError)):
            translated = classify_client_error(error)
        else:
            translated = TeardownError(str(error))
        translated.args = (f"Error collecting {what} in {self.region or 'default region'}: {translated}",)
        return translated

    @staticmethod
    def status_for(state: Optional[str]) -> ResourceStatus:
        """Map a provider lifecycle state onto ResourceStatus."""
        state = (state or "").lower()
        if state in ("deleting", "shutting-down", "draining", "terminating"):
            return ResourceStatus.DELETING
        if state in ("deleted", "terminated"):
            return ResourceStatus.GONE
        return ResourceStatus.ACTIVE
