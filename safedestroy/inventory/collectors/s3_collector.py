"""S3 collector."""

from __future__ import annotations

from typing import Dict, List

from botocore.exceptions import BotoCoreError, ClientError

from ...errors import error_code, is_not_found
from ...models.resource import Resource, ResourceKind
from .base import BaseResourceCollector, ScanContext, tags_to_dict


class S3Collector(BaseResourceCollector):
    """Collector for tagged S3 buckets (the Terraform state bucket is never reported)."""

    @property
    def service_name(self) -> str:
        return "s3"

    def collect(self, context: ScanContext) -> List[Resource]:
        client = self._create_client()
        resources: List[Resource] = []

        try:
            for bucket in client.list_buckets().get("Buckets", []):
                name = bucket["Name"]
                if name in context.excluded_ids:
                    continue
                tags = self._bucket_tags(client, name)
                deployment = context.match(tags)
                if deployment is None:
                    continue
                versioning = client.get_bucket_versioning(Bucket=name).get("Status", "Disabled")
                resources.append(
                    Resource(
                        resource_id=name,
                        kind=ResourceKind.OBJECT_STORE,
                        deployment_tag=deployment,
                        arn=f"arn:aws:s3:::{name}",
                        region=self.region,
                        tags=tags,
                        attributes={"versioning": versioning},
                    )
                )
        except (ClientError, BotoCoreError) as e:
            raise self._raise(e, "S3 buckets") from e

        self.logger.debug(f"Collected {len(resources)} S3 buckets")
        return resources

    @staticmethod
    def _bucket_tags(client, name: str) -> Dict[str, str]:
        try:
            return tags_to_dict(client.get_bucket_tagging(Bucket=name).get("TagSet"))
        except ClientError as e:
            # Untagged buckets and buckets deleted mid-scan have no tags
            if error_code(e) == "NoSuchTagSet" or is_not_found(e):
                return {}
            raise
