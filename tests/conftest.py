"""Shared fixtures for the LPO uploader test suite.

The Shopify Admin API is replaced by ``FakeShopify``, an in-memory store
served through ``httpx.MockTransport``. No test touches the network.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any, Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from lpo_uploader.api import create_app
from lpo_uploader.config import Settings
from lpo_uploader.service import LpoService
from lpo_uploader.shopify.client import ShopifyClient

WEBHOOK_SECRET = "test-secret"
STAGED_HOST = "storage.test"


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """Compute a valid X-Shopify-Hmac-SHA256 header value."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def graphql_ok(data: dict) -> httpx.Response:
    return httpx.Response(200, json={"data": data})


class FakeShopify:
    """In-memory GraphQL Admin API.

    Behaviour can be scripted per operation:
    - ``file_create``: dict (``fileCreate`` payload) or callable(variables) -> dict
    - ``nodes``: queue of node records returned by successive ``node`` queries
    - ``link_errors``: ownerId -> userErrors list for ``metafieldsSet``
    - ``queued``: raw httpx.Responses returned before any normal handling
    """

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.metafields: dict[tuple[str, str, str], dict] = {}
        self.files: dict[str, dict] = {}
        self.staged_posts: list[httpx.Request] = []
        self.file_create: dict | Callable[[dict], dict] | None = None
        self.nodes: list[dict | None] = []
        self.link_errors: dict[str, list[dict]] = {}
        self.queued: list[httpx.Response | Exception] = []
        self._next_id = 1

    # ── helpers ──

    def operations(self) -> list[str]:
        return [op for op, _ in self.calls]

    def count(self, operation: str) -> int:
        return self.operations().count(operation)

    def metafield_value(self, owner_gid: str, namespace: str = "custom", key: str = "lpo_file"):
        entry = self.metafields.get((owner_gid, namespace, key))
        return entry["value"] if entry else None

    # ── transport ──

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == STAGED_HOST:
            self.staged_posts.append(request)
            return httpx.Response(204)

        body = json.loads(request.content)
        query = body["query"]
        variables = body.get("variables") or {}
        operation = self._operation(query)
        self.calls.append((operation, variables))

        if self.queued:
            item = self.queued.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        return getattr(self, f"_{operation}")(variables)

    @staticmethod
    def _operation(query: str) -> str:
        for name in ("stagedUploadsCreate", "fileCreate", "metafieldsSet"):
            if f"{name}(" in query.split("{", 1)[1]:
                return name
        if "node(" in query:
            return "node"
        raise AssertionError(f"unexpected query: {query}")

    def _fileCreate(self, variables: dict) -> httpx.Response:
        if callable(self.file_create):
            return graphql_ok({"fileCreate": self.file_create(variables)})
        if self.file_create is not None:
            return graphql_ok({"fileCreate": self.file_create})

        file_input = variables["files"][0]
        file_id = f"gid://shopify/GenericFile/{self._next_id}"
        self._next_id += 1
        record = {
            "__typename": "GenericFile",
            "id": file_id,
            "fileStatus": "READY",
            "alt": file_input.get("alt"),
            "fileErrors": [],
            "url": f"https://cdn.shopify.test/files/{file_input.get('filename', 'file')}",
        }
        self.files[file_id] = record
        return graphql_ok({"fileCreate": {"files": [record], "userErrors": []}})

    def _stagedUploadsCreate(self, variables: dict) -> httpx.Response:
        file_input = variables["input"][0]
        target = {
            "url": f"https://{STAGED_HOST}/upload",
            "resourceUrl": f"https://{STAGED_HOST}/tmp/{file_input['filename']}",
            "parameters": [{"name": "key", "value": f"tmp/{file_input['filename']}"}],
        }
        return graphql_ok({"stagedUploadsCreate": {"stagedTargets": [target], "userErrors": []}})

    def _node(self, variables: dict) -> httpx.Response:
        if self.nodes:
            return graphql_ok({"node": self.nodes.pop(0)})
        return graphql_ok({"node": self.files.get(variables["id"])})

    def _metafieldsSet(self, variables: dict) -> httpx.Response:
        written = []
        for mf in variables["metafields"]:
            errors = self.link_errors.get(mf["ownerId"])
            if errors:
                return graphql_ok(
                    {"metafieldsSet": {"metafields": [], "userErrors": errors}}
                )
            slot = (mf["ownerId"], mf["namespace"], mf["key"])
            existing = self.metafields.get(slot)
            mf_id = existing["id"] if existing else f"gid://shopify/Metafield/{self._next_id}"
            if not existing:
                self._next_id += 1
            entry = {"id": mf_id, "namespace": mf["namespace"], "key": mf["key"], "value": mf["value"]}
            self.metafields[slot] = entry
            written.append(entry)
        return graphql_ok({"metafieldsSet": {"metafields": written, "userErrors": []}})


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "shop_domain": "test-shop.myshopify.com",
        "access_token": "shpat_test",
        "webhook_secret": WEBHOOK_SECRET,
        "retry_base_delay": 0.0,
        "resolve_base_delay": 0.0,
        "resolve_attempts": 3,
        "max_retries": 2,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_shopify() -> FakeShopify:
    return FakeShopify()


@pytest.fixture
def http_client(fake_shopify: FakeShopify) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_shopify.handler))


@pytest.fixture
def shopify_client(settings: Settings, http_client: httpx.AsyncClient) -> ShopifyClient:
    return ShopifyClient(settings, http_client=http_client)


@pytest.fixture
def service(settings: Settings, shopify_client: ShopifyClient) -> LpoService:
    return LpoService(settings, shopify_client)


@pytest.fixture
def app(settings: Settings, service: LpoService):
    return create_app(settings, service=service)


@pytest.fixture
def client(app):
    """TestClient with the fake platform behind the service."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
