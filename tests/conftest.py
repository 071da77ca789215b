"""Shared fixtures: an in-memory Cosmos stand-in, users, images and HTTP helpers."""

import copy
import io
import json
import uuid
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import azure.functions as func
import pytest
from PIL import Image

from iklankilat.services.gemini import GeminiService
from iklankilat.services.media import to_data_url
from iklankilat.services.repository import Repository
from iklankilat.shared import blob_store
from iklankilat.shared.cosmos_client import ConcurrentModificationError
from iklankilat.specs.models.domain import AppUser


# Partition key path per logical container, mirroring the deployed layout.
PARTITION_KEYS = {
    "users": "id",
    "projects": "userId",
    "assets": "projectId",
    "scheduled_posts": "userId",
    "guest_usage": "id",
    "job_runs": "id",
}


class FakeCosmos:
    """Implements the subset of CosmosDBClient the services use."""

    def __init__(self):
        self.containers: Dict[str, Dict[tuple, dict]] = defaultdict(dict)
        self.deleted: List[tuple] = []

    def get_item(self, container_name: str, item_id: str, partition_key: Optional[str] = None):
        doc = self.containers[container_name].get((partition_key or item_id, item_id))
        return copy.deepcopy(doc) if doc else None

    def find_items(self, container_name: str, filters: Dict[str, Any], partition_key: Optional[str] = None):
        return [
            copy.deepcopy(doc)
            for (pk, _), doc in self.containers[container_name].items()
            if (partition_key is None or pk == partition_key)
            and all(doc.get(k) == v for k, v in filters.items())
        ]

    def _key(self, container_name: str, doc: Dict[str, Any]) -> tuple:
        return doc[PARTITION_KEYS[container_name]], doc["id"]

    def upsert_item(self, container_name: str, item: Dict[str, Any]):
        doc = json.loads(json.dumps(item))
        doc["_etag"] = uuid.uuid4().hex
        self.containers[container_name][self._key(container_name, doc)] = doc
        return copy.deepcopy(doc)

    def create_item(self, container_name: str, item: Dict[str, Any]):
        if self._key(container_name, item) in self.containers[container_name]:
            raise ConcurrentModificationError(f"Item '{item['id']}' already exists")
        return self.upsert_item(container_name, item)

    def replace_item(self, container_name: str, item: Dict[str, Any], etag: str):
        current = self.containers[container_name].get(self._key(container_name, item))
        if current is None or current["_etag"] != etag:
            raise ConcurrentModificationError(f"Item '{item['id']}' changed since it was read")
        return self.upsert_item(container_name, item)

    def delete_item(self, container_name: str, item_id: str, partition_key: Optional[str] = None) -> bool:
        self.deleted.append((container_name, item_id))
        return self.containers[container_name].pop((partition_key or item_id, item_id), None) is not None

    def all(self, container_name: str) -> List[dict]:
        return list(self.containers[container_name].values())


@pytest.fixture
def fake_cosmos():
    return FakeCosmos()


@pytest.fixture
def repository(fake_cosmos):
    return Repository(client=fake_cosmos)


@pytest.fixture
def user():
    return AppUser(uid="user-1", email="sari@example.com", displayName="Sari")


@pytest.fixture
def connected_user(user, repository):
    repository.create_user_profile(user.uid, user.email, user.displayName)
    repository.update_instagram_connection(user.uid, True, "@kopisari")
    return user.model_copy(update={"isInstagramConnected": True, "instagramHandle": "@kopisari"})


@pytest.fixture
def gemini():
    return MagicMock(spec=GeminiService)


# Account "acct" resolves to https://acct.blob.core.windows.net; nothing is contacted.
BLOB_CONNECTION_STRING = (
    "DefaultEndpointsProtocol=https;AccountName=acct;AccountKey=a2V5;EndpointSuffix=core.windows.net"
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.setenv("RUNTIME_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("RUN_STATE_BACKEND", "file")
    monkeypatch.setenv("PUBLIC_BLOB_CONTAINER", "media")
    monkeypatch.setenv("PUBLIC_BLOB_CONNECTION_STRING", BLOB_CONNECTION_STRING)
    monkeypatch.delenv("PUBLIC_BLOB_ACCOUNT_URL", raising=False)
    monkeypatch.delenv("GUEST_MAX_GENERATIONS", raising=False)
    blob_store._get_service_client.cache_clear()
    yield
    blob_store._get_service_client.cache_clear()


def make_png(size=(100, 100), color=(200, 30, 30, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def image_size(image_bytes: bytes) -> Tuple[int, int]:
    with Image.open(io.BytesIO(image_bytes)) as img:
        return img.size


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def png_data_url(png_bytes):
    return to_data_url(png_bytes, "image/png")


def make_request(
    method: str,
    url: str,
    body: Optional[Any] = None,
    *,
    token: Optional[str] = "token",
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, str]] = None,
    route_params: Optional[Dict[str, str]] = None,
) -> func.HttpRequest:
    all_headers = {"Content-Type": "application/json"}
    if token:
        all_headers["Authorization"] = f"Bearer {token}"
    all_headers.update(headers or {})
    raw = body if isinstance(body, bytes) else json.dumps(body or {}).encode()
    return func.HttpRequest(
        method=method,
        url=url,
        headers=all_headers,
        params=params or {},
        route_params=route_params or {},
        body=raw,
    )


def call(handler, req: func.HttpRequest) -> func.HttpResponse:
    """Invoke the user function behind a blueprint-decorated handler."""
    return handler.build().get_user_function()(req)


def response_json(resp: func.HttpResponse) -> Any:
    return json.loads(resp.get_body())
