"""DynamoDB collector."""

from __future__ import annotations

from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from ...errors import is_not_found
from ...models.resource import Resource, ResourceKind
from .base import BaseResourceCollector, ScanContext, tags_to_dict


class DynamoDBCollector(BaseResourceCollector):
    """Collector for tagged DynamoDB tables (the backend lock table is never reported)."""

    @property
    def service_name(self) -> str:
        return "dynamodb"

    def collect(self, context: ScanContext) -> List[Resource]:
        client = self._create_client()
        resources: List[Resource] = []

        try:
            for page in client.get_paginator("list_tables").paginate():
                for table_name in page.get("TableNames", []):
                    if table_name in context.excluded_ids:
                        continue
                    try:
                        table = client.describe_table(TableName=table_name)["Table"]
                        tags = tags_to_dict(
                            client.list_tags_of_resource(ResourceArn=table["TableArn"]).get("Tags")
                        )
                    except ClientError as e:
                        if is_not_found(e):
                            continue
                        raise
                    deployment = context.match(tags)
                    if deployment is None:
                        continue
                    resources.append(
                        Resource(
                            resource_id=table_name,
                            kind=ResourceKind.LOCK_TABLE,
                            status=self.status_for(table.get("TableStatus")),
                            deployment_tag=deployment,
                            arn=table["TableArn"],
                            region=self.region,
                            tags=tags,
                        )
                    )
        except (ClientError, BotoCoreError) as e:
            raise self._raise(e, "DynamoDB tables") from e

        self.logger.debug(f"Collected {len(resources)} DynamoDB tables in {self.region}")
        return resources
