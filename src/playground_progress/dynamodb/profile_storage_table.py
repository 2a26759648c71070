import logging
import typing
from datetime import datetime, timezone

import boto3
from botocore.exceptions import ClientError

from playground_progress.tracker.errors import StorageReadError, StorageWriteError
from playground_progress.utils.base_types import ProfileId, StorageKey

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class PersistentStore(typing.Protocol):
    """
    Opaque string key/value store for one learner profile.
    Implementations raise StorageReadError / StorageWriteError on failure.
    """

    def get(self, key: StorageKey) -> typing.Optional[str]: ...

    def set(self, key: StorageKey, value: str) -> None: ...

    def remove(self, key: StorageKey) -> None: ...


class ProfileStorageTable:
    """
    Data Abstraction Layer for the ProfileStorage DynamoDB table, the durable
    replacement for the playgrounds' browser storage.

    Table Schema:
      - PK: profileId
      - SK: storageKey (e.g. "level1-progress", "frontend-mastery-progress")
      - Attributes: value (JSON string), updatedAt (ISO timestamp)
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def get_value(self, profile_id: ProfileId, storage_key: StorageKey) -> typing.Optional[str]:
        """
        Retrieves the raw string stored under a key.

        :param profile_id: The learner profile that owns the key.
        :param storage_key: The key to read.
        :return: The stored string if found, else None.
        """
        _LOGGER.debug(f"Fetching {storage_key} for profile_id: {profile_id}")
        try:
            response = self.table.get_item(Key={"profileId": profile_id, "storageKey": storage_key})
        except ClientError as e:
            _LOGGER.error(f"Failed to get {storage_key} for profile_id {profile_id}: {e.response['Error']['Message']}")
            raise StorageReadError(f"Could not read '{storage_key}'") from e

        item_data = response.get("Item")
        if not item_data:
            _LOGGER.debug(f"No value stored under {storage_key} for profile_id: {profile_id}")
            return None

        value = item_data.get("value")
        if not isinstance(value, str):
            _LOGGER.warning(f"Item {storage_key} for profile_id {profile_id} has no string value.")
            raise StorageReadError(f"Value under '{storage_key}' is not a string")
        return value

    def put_value(self, profile_id: ProfileId, storage_key: StorageKey, value: str) -> None:
        """
        Overwrites the value stored under a key.

        :raises StorageWriteError: If DynamoDB rejects the write (size limit, throttling, ...).
        """
        item = {
            "profileId": profile_id,
            "storageKey": storage_key,
            "value": value,
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.table.put_item(Item=item)
            _LOGGER.debug(f"Stored {len(value)} chars under {storage_key} for profile_id: {profile_id}")
        except ClientError as e:
            _LOGGER.error(f"Failed to put {storage_key} for profile_id {profile_id}: {e.response['Error']['Message']}")
            raise StorageWriteError(f"Could not write '{storage_key}'") from e

    def delete_value(self, profile_id: ProfileId, storage_key: StorageKey) -> None:
        try:
            self.table.delete_item(Key={"profileId": profile_id, "storageKey": storage_key})
            _LOGGER.info(f"Deleted {storage_key} for profile_id: {profile_id}")
        except ClientError as e:
            _LOGGER.error(
                f"Failed to delete {storage_key} for profile_id {profile_id}: {e.response['Error']['Message']}"
            )
            raise StorageWriteError(f"Could not delete '{storage_key}'") from e

    def for_profile(self, profile_id: ProfileId) -> "ProfileStorage":
        return ProfileStorage(self, profile_id)


class ProfileStorage:
    """
    PersistentStore view of the table bound to a single profile.
    """

    def __init__(self, table: ProfileStorageTable, profile_id: ProfileId) -> None:
        self.table = table
        self.profile_id = profile_id

    def get(self, key: StorageKey) -> typing.Optional[str]:
        return self.table.get_value(self.profile_id, key)

    def set(self, key: StorageKey, value: str) -> None:
        self.table.put_value(self.profile_id, key, value)

    def remove(self, key: StorageKey) -> None:
        self.table.delete_value(self.profile_id, key)
