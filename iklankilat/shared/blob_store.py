import os
from functools import lru_cache
from typing import Optional
from urllib.parse import unquote, urlparse

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobServiceClient, ContentSettings

from iklankilat.specs.common.errors import ConfigurationError


DEFAULT_MEDIA_CONTAINER = "iklan-kilat-media"


def media_container() -> str:
    return os.getenv("PUBLIC_BLOB_CONTAINER", DEFAULT_MEDIA_CONTAINER)


@lru_cache(maxsize=1)
def _get_service_client() -> BlobServiceClient:
    conn = os.getenv("PUBLIC_BLOB_CONNECTION_STRING")
    if conn:
        return BlobServiceClient.from_connection_string(conn)
    account_url = os.getenv("PUBLIC_BLOB_ACCOUNT_URL")
    if account_url:
        return BlobServiceClient(account_url, credential=DefaultAzureCredential())
    raise ConfigurationError(
        "PUBLIC_BLOB_CONNECTION_STRING or PUBLIC_BLOB_ACCOUNT_URL is required for media uploads"
    )


def upload_bytes(
    *,
    container: str,
    blob_name: str,
    data: bytes,
    content_type: Optional[str] = None,
) -> str:
    """Upload bytes to blob storage, return the public blob URL.

    Creates the container with anonymous blob read access if missing.
    """
    service = _get_service_client()
    container_client = service.get_container_client(container)
    try:
        container_client.create_container(public_access="blob")
    except ResourceExistsError:
        pass
    blob = container_client.get_blob_client(blob_name)
    kwargs = {}
    if content_type:
        kwargs["content_settings"] = ContentSettings(content_type=content_type)
    blob.upload_blob(data, overwrite=True, **kwargs)
    return blob.url


def container_url(container: str) -> str:
    """Public base URL of ``container``, as the storage account serves it."""
    return _get_service_client().get_container_client(container).url


def blob_name_from_url(url: str, base_url: str) -> Optional[str]:
    """Return the blob name when ``url`` points into the container at ``base_url``, else None.

    Scheme, host and container path must all match, so a foreign host
    reusing our container path is never mistaken for one of our blobs.
    """
    parsed = urlparse(url)
    base = urlparse(base_url)
    if parsed.scheme not in ("http", "https") or parsed.scheme != base.scheme:
        return None
    if parsed.netloc.lower() != base.netloc.lower():
        return None
    prefix = unquote(base.path).rstrip("/") + "/"
    path = unquote(parsed.path)
    if not path.startswith(prefix) or len(path) == len(prefix):
        return None
    return path[len(prefix):]


def delete_blob(*, container: str, blob_name: str) -> bool:
    """Delete a blob; returns False when it did not exist."""
    service = _get_service_client()
    blob = service.get_container_client(container).get_blob_client(blob_name)
    try:
        blob.delete_blob()
    except ResourceNotFoundError:
        return False
    return True
