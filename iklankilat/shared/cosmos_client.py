# Standardized Cosmos DB client implementation

import os
import time
import logging
import backoff
from functools import lru_cache
from typing import Optional, List, Dict, Any, Tuple
from azure.core import MatchConditions
from azure.cosmos import CosmosClient, exceptions
from azure.cosmos.container import ContainerProxy
from azure.identity import DefaultAzureCredential
from iklankilat.specs.common.errors import ConfigurationError


MAX_RETRIES = 3
OPERATION_TIMEOUT = 10.0    # seconds, across all retries


class RetryableCosmosError(Exception):
    """Throttling or transient unavailability; the call is retried"""
    pass


class ConcurrentModificationError(Exception):
    """A conditional write lost to another writer; re-read and try again"""
    pass


def _is_retryable(exc: exceptions.CosmosHttpResponseError) -> bool:
    return exc.status_code in (429, 503)


def _raise_if_retryable(exc: exceptions.CosmosHttpResponseError, action: str) -> None:
    if _is_retryable(exc):
        msg = f"Retryable error {action}: {exc}"
        logging.warning(msg)
        raise RetryableCosmosError(msg) from exc


retry_transient = backoff.on_exception(
    backoff.expo,
    RetryableCosmosError,
    max_tries=MAX_RETRIES,
    max_time=OPERATION_TIMEOUT,
)


def build_equality_query(filters: Dict[str, Any]) -> Tuple[str, List[Dict[str, Any]]]:
    """Build a parameterized ``SELECT`` matching every field in ``filters``.

    Field names must be plain identifiers; values always travel as parameters.
    """
    clauses = []
    parameters = []
    for field, value in filters.items():
        if not field.isidentifier():
            raise ValueError(f"Invalid field name: {field!r}")
        clauses.append(f"c.{field} = @{field}")
        parameters.append({"name": f"@{field}", "value": value})
    query = "SELECT * FROM c"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    return query, parameters


class CosmosDBClient:
    def __init__(self):
        """Connect with COSMOS_DB_CONNECTION_STRING, or COSMOS_DB_ENDPOINT plus AAD"""
        self.connection_string = os.environ.get("COSMOS_DB_CONNECTION_STRING")
        self.endpoint = os.environ.get("COSMOS_DB_ENDPOINT")
        self.database_name = os.environ.get("COSMOS_DB_NAME")

        if not (self.connection_string or self.endpoint) or not self.database_name:
            raise ConfigurationError("Missing Cosmos DB connection string/endpoint or database name")

        if self.connection_string:
            self.client = CosmosClient.from_connection_string(self.connection_string, retry_total=MAX_RETRIES)
            self.endpoint = self.connection_string.split(';')[0]
        else:
            self.client = CosmosClient(self.endpoint, credential=DefaultAzureCredential(), retry_total=MAX_RETRIES)
        self.database = self.client.get_database_client(self.database_name)

    def get_container(self, container_name: str) -> ContainerProxy:
        """``COSMOS_DB_CONTAINER_<NAME>`` replaces the logical name when set."""
        override = os.environ.get(f"COSMOS_DB_CONTAINER_{container_name.upper()}")
        return self.database.get_container_client(override or container_name)

    @retry_transient
    def get_item(
        self,
        container_name: str,
        item_id: str,
        partition_key: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Point-read an item; ``partition_key`` defaults to the id. Returns None when missing."""
        container = self.get_container(container_name)
        try:
            return container.read_item(item=item_id, partition_key=partition_key or item_id)
        except exceptions.CosmosResourceNotFoundError:
            return None
        except exceptions.CosmosHttpResponseError as e:
            _raise_if_retryable(e, f"reading '{item_id}'")
            logging.error(
                "Unexpected error reading item",
                extra={
                    "container": container_name,
                    "itemId": item_id,
                    "error": str(e),
                    "databaseName": self.database_name,
                    "endpoint": self.endpoint,
                }
            )
            raise

    @retry_transient
    def query_items(
        self,
        container_name: str,
        query: str,
        parameters: Optional[List[Dict[str, Any]]] = None,
        partition_key: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Run a parameterized query.

        A partition key scopes the query to one partition; without it the
        query fans out across partitions.
        """
        container = self.get_container(container_name)
        options: Dict[str, Any] = {"parameters": parameters or []}
        if partition_key is not None:
            options["partition_key"] = partition_key
        else:
            options["enable_cross_partition_query"] = True
        try:
            return list(container.query_items(query=query, **options))
        except exceptions.CosmosHttpResponseError as e:
            _raise_if_retryable(e, f"querying '{container_name}'")
            raise

    def find_items(
        self,
        container_name: str,
        filters: Dict[str, Any],
        partition_key: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query, parameters = build_equality_query(filters)
        return self.query_items(container_name, query, parameters, partition_key=partition_key)

    @retry_transient
    def upsert_item(self, container_name: str, item: Dict[str, Any]) -> Dict[str, Any]:
        """Create or replace; the partition key is read from the body."""
        container = self.get_container(container_name)
        try:
            return container.upsert_item(body=item)
        except exceptions.CosmosHttpResponseError as e:
            _raise_if_retryable(e, f"upserting '{item.get('id')}'")
            raise

    @retry_transient
    def create_item(self, container_name: str, item: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new item; ConcurrentModificationError when the id already exists."""
        container = self.get_container(container_name)
        try:
            return container.create_item(body=item)
        except exceptions.CosmosResourceExistsError as e:
            raise ConcurrentModificationError(f"Item '{item.get('id')}' already exists") from e
        except exceptions.CosmosHttpResponseError as e:
            _raise_if_retryable(e, f"creating '{item.get('id')}'")
            raise

    @retry_transient
    def replace_item(self, container_name: str, item: Dict[str, Any], etag: str) -> Dict[str, Any]:
        """Replace an item only if it still carries ``etag``."""
        container = self.get_container(container_name)
        try:
            return container.replace_item(
                item=item["id"],
                body=item,
                etag=etag,
                match_condition=MatchConditions.IfNotModified,
            )
        except exceptions.CosmosAccessConditionFailedError as e:
            raise ConcurrentModificationError(f"Item '{item['id']}' changed since it was read") from e
        except exceptions.CosmosHttpResponseError as e:
            _raise_if_retryable(e, f"replacing '{item['id']}'")
            raise

    @retry_transient
    def delete_item(
        self,
        container_name: str,
        item_id: str,
        partition_key: Optional[str] = None
    ) -> bool:
        """Delete by id; False when the item was already gone."""
        started = time.time()
        container = self.get_container(container_name)
        try:
            container.delete_item(item=item_id, partition_key=partition_key or item_id)
        except exceptions.CosmosResourceNotFoundError:
            logging.info(f"Item '{item_id}' already absent from '{container_name}'")
            return False
        except exceptions.CosmosHttpResponseError as e:
            _raise_if_retryable(e, f"deleting '{item_id}'")
            logging.error(f"Error deleting item '{item_id}': {e}")
            raise
        logging.debug(f"Deleted '{item_id}' from '{container_name}' in {time.time() - started:.2f}s")
        return True


@lru_cache(maxsize=1)
def get_cosmos_client() -> CosmosDBClient:
    return CosmosDBClient()
