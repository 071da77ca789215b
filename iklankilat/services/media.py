"""Media helpers: data URLs, remote fetches and the public media container."""

import base64
import binascii
import re
import uuid
from typing import Optional, Tuple

import requests

from iklankilat.shared import blob_store
from iklankilat.shared.logging_utils import info as log_info, warning as log_warning
from iklankilat.shared.retry_utils import retry_with_backoff
from iklankilat.specs.common.errors import ConfigurationError, MediaUploadError, ValidationError


UPLOAD_FOLDER = "uploads"
FETCH_TIMEOUT_SECONDS = 30

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^;,]*)*?);base64,(?P<data>.*)$", re.DOTALL)

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "video/mp4": "mp4",
    "video/quicktime": "mov",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
}


def is_data_url(value: Optional[str]) -> bool:
    return bool(value) and value.startswith("data:")


def decode_data_url(data_url: str) -> Tuple[bytes, str]:
    """Split a base64 data URL into (bytes, mime type)."""
    match = _DATA_URL_RE.match(data_url or "")
    if not match:
        raise ValidationError("Invalid data URL; expected data:<mime>;base64,<payload>")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid base64 payload in data URL")
    return data, match.group("mime") or "application/octet-stream"


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type.split(";")[0].strip().lower(), "bin")


def fetch_media(url: str) -> Tuple[bytes, str]:
    """Load media from a data URL or an http(s) URL; returns (bytes, mime type)."""
    if is_data_url(url):
        return decode_data_url(url)
    if not url or not url.startswith(("http://", "https://")):
        raise ValidationError("Media must be a data URL or an http(s) URL")

    def _get() -> requests.Response:
        resp = requests.get(url, timeout=FETCH_TIMEOUT_SECONDS)
        resp.raise_for_status()
        return resp

    try:
        resp = retry_with_backoff(_get, attempts=3, delay=1.0, exceptions=(requests.RequestException,))
    except requests.RequestException as exc:
        raise MediaUploadError(f"Could not fetch media: {exc}", details={"url": url})
    mime = (resp.headers.get("Content-Type") or "application/octet-stream").split(";")[0].strip()
    return resp.content, mime


def upload_media(data: bytes, mime_type: str, *, folder: str = UPLOAD_FOLDER, name: Optional[str] = None) -> str:
    """Store bytes in the public media container and return their URL."""
    blob_name = f"{folder}/{name or uuid.uuid4().hex}.{extension_for(mime_type)}"
    try:
        url = blob_store.upload_bytes(
            container=blob_store.media_container(),
            blob_name=blob_name,
            data=data,
            content_type=mime_type,
        )
    except MediaUploadError:
        raise
    except Exception as exc:
        raise MediaUploadError("Failed to upload file on the server", details={"error": str(exc)})
    log_info(None, "media:uploaded", blobName=blob_name, bytes=len(data), mimeType=mime_type)
    return url


def upload_data_url(data_url: str, *, folder: str = UPLOAD_FOLDER) -> str:
    data, mime = decode_data_url(data_url)
    return upload_media(data, mime, folder=folder)


def _hosted_blob_name(url: str) -> Optional[str]:
    base_url = blob_store.container_url(blob_store.media_container())
    return blob_store.blob_name_from_url(url, base_url)


def is_hosted(url: Optional[str]) -> bool:
    """True when ``url`` already lives in our media container."""
    return bool(url) and _hosted_blob_name(url) is not None


def ensure_hosted(url: str, *, folder: str = UPLOAD_FOLDER) -> str:
    """Return a media-container URL for ``url``, uploading data or foreign URLs first."""
    if is_hosted(url):
        return url
    data, mime = fetch_media(url)
    return upload_media(data, mime, folder=folder)


def delete_media(url: Optional[str]) -> bool:
    """Best-effort delete of a file we host; foreign URLs are left alone.

    Returns False when nothing was deleted. Only foreign URLs and failed
    deletes are logged; a blob that is already gone is not an orphan.
    """
    if not url:
        return False
    try:
        blob_name = _hosted_blob_name(url)
    except ConfigurationError as exc:
        log_warning(None, "media:delete_failed", url=url[:200], error=str(exc))
        return False
    if blob_name is None:
        log_warning(None, "media:orphaned", url=url[:200], reason="not in media container")
        return False
    try:
        return blob_store.delete_blob(container=blob_store.media_container(), blob_name=blob_name)
    except Exception as exc:
        log_warning(None, "media:delete_failed", blobName=blob_name, error=str(exc))
        return False
