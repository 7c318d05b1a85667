"""Profile store backed by a DynamoDB table keyed by ``username``.

The table mirrors a subset of the credential record so that application
code can read user attributes without going through Keycloak.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

PARTITION_KEY = "username"


class ProfileStoreError(Exception):
    """DynamoDB call failed."""
    pass


class ProfileNotFoundError(ProfileStoreError):
    """No profile item exists for the username."""
    pass


def connect_profile_table(table_name: str, region: str, endpoint_url: Optional[str] = None):
    """Return a boto3 Table resource (no network call until first use)."""
    resource = boto3.resource("dynamodb", region_name=region, endpoint_url=endpoint_url or None)
    return resource.Table(table_name)


class ProfileService:
    """Point put/update/query of profile records."""

    def __init__(self, table):
        self.table = table

    def put(self, username: str, record: Dict[str, Any]) -> None:
        item = dict(record)
        item[PARTITION_KEY] = username
        try:
            self.table.put_item(Item=item)
        except (ClientError, BotoCoreError) as exc:
            raise ProfileStoreError(f"Failed to write profile '{username}': {exc}") from exc
        logger.info("[profiles] Profile '%s' written", username)

    def update(self, username: str, field: str, value: Any) -> Dict[str, Any]:
        """Set one field on an existing profile and return the updated item.

        Raises:
            ProfileNotFoundError: If no profile exists for the username
            ProfileStoreError: On any other DynamoDB failure
        """
        try:
            resp = self.table.update_item(
                Key={PARTITION_KEY: username},
                UpdateExpression="SET #field = :value",
                ConditionExpression="attribute_exists(#pk)",
                ExpressionAttributeNames={"#field": field, "#pk": PARTITION_KEY},
                ExpressionAttributeValues={":value": value},
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise ProfileNotFoundError(f"Profile '{username}' not found") from exc
            raise ProfileStoreError(f"Failed to update profile '{username}': {exc}") from exc
        except BotoCoreError as exc:
            raise ProfileStoreError(f"Failed to update profile '{username}': {exc}") from exc
        logger.info("[profiles] Field '%s' updated for '%s'", field, username)
        return resp.get("Attributes", {})

    def query(self, username: str) -> List[Dict[str, Any]]:
        try:
            resp = self.table.query(KeyConditionExpression=Key(PARTITION_KEY).eq(username))
        except (ClientError, BotoCoreError) as exc:
            raise ProfileStoreError(f"Failed to query profile '{username}': {exc}") from exc
        return resp.get("Items", [])
