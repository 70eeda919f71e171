"""Summary: Shared fixtures for ClanBridge tests.

Importance: Provides an in-memory remote document tree behind httpx.MockTransport so the bridge
and services run their real HTTP code paths without a network.
Alternatives: Run tests against the Firebase emulator.
"""

from __future__ import annotations

import copy
import json
import time
from typing import Any

import httpx
import pytest

from clanbridge.app import AppServices, build_services
from clanbridge.cache import EntityCache
from clanbridge.config import AppConfig
from clanbridge.oauth import AccessToken
from clanbridge.storage.rest_bridge import RestBridge


BASE_URL = "https://clan-test.firebaseio.test"
TEST_TOKEN = "test-token"


class FakeTokens:
    """Token source that always returns the same long-lived token."""

    def __init__(self) -> None:
        self.calls = 0

    async def get_token(self) -> AccessToken:
        self.calls += 1
        return AccessToken(token=TEST_TOKEN, expires_at=time.time() + 3600, token_type="Bearer")


class RemoteTree:
    """Summary: In-memory document tree answering the remote store's REST verbs.

    Importance: Lets tests assert on both the resulting data and the exact calls made.
    Alternatives: Mock each bridge method individually.
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = data or {}
        self.requests: list[tuple[str, str, Any]] = []
        self.failures: dict[tuple[str, str], int] = {}
        self.failing_prefixes: list[str] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        assert path.endswith(".json")
        path = path[: -len(".json")]
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))
        if request.url.params.get("access_token") != TEST_TOKEN:
            return httpx.Response(401, json={"error": "Permission denied"})
        status = self.failures.pop((request.method, path), None)
        if any(path.startswith(prefix) for prefix in self.failing_prefixes):
            status = 500
        if status is not None:
            return httpx.Response(status, json={"error": "injected"})
        segments = [segment for segment in path.split("/") if segment]
        if request.method == "GET":
            return self._json(self.get(segments))
        if request.method == "PUT":
            self.set(segments, body)
            return self._json(body)
        if request.method == "PATCH":
            for key, value in body.items():
                self.set(segments + key.split("/"), value)
            return self._json(body)
        if request.method == "DELETE":
            self.set(segments, None)
            return self._json(None)
        return httpx.Response(405)

    def get(self, segments: list[str]) -> Any:
        node: Any = self.data
        for segment in segments:
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return copy.deepcopy(node)

    def set(self, segments: list[str], value: Any) -> None:
        node = self.data
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                if value is None:
                    return
                child = {}
                node[segment] = child
            node = child
        if value is None:
            node.pop(segments[-1], None)
        else:
            node[segments[-1]] = copy.deepcopy(value)

    def calls(self, method: str) -> list[tuple[str, str, Any]]:
        return [call for call in self.requests if call[0] == method]

    @staticmethod
    def _json(value: Any) -> httpx.Response:
        return httpx.Response(200, content=json.dumps(value).encode("utf-8"))


class ManualClock:
    """Clock whose time only moves when a test advances it."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_config(**overrides: Any) -> AppConfig:
    values: dict[str, Any] = {
        "database_url": BASE_URL,
        "client_email": "bridge@clan-test.iam.gserviceaccount.com",
        "private_key": None,
        "project_id": "clan-test",
        "token_url": "https://oauth2.googleapis.com/token",
        "token_scope": "https://www.googleapis.com/auth/firebase.database",
        "cache_ttl_seconds": 30.0,
        "cache_max_entries": None,
        "http_timeout": 5.0,
        "api_key": "",
        "discord_guild_id": None,
        "discord_bot_token": None,
    }
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def remote() -> RemoteTree:
    return RemoteTree()


@pytest.fixture
def http_client(remote: RemoteTree) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(remote.handle))


@pytest.fixture
def bridge(http_client: httpx.AsyncClient) -> RestBridge:
    return RestBridge(BASE_URL, FakeTokens(), client=http_client)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def cache(clock: ManualClock) -> EntityCache:
    return EntityCache(ttl_seconds=30.0, clock=clock)


@pytest.fixture
def services(http_client: httpx.AsyncClient) -> AppServices:
    return build_services(build_config(), client=http_client, tokens=FakeTokens())


@pytest.fixture
def config_factory():
    return build_config
