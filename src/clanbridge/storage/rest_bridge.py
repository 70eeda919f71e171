"""Summary: Authenticated REST accessor for the remote document tree.

Importance: The remote store has no server-side client library here, so every read and write
goes through its `{path}.json` HTTP interface.
Alternatives: Use the Firebase Admin SDK with its long-lived listeners.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx

from clanbridge.errors import InvalidPathSegment, RemoteStoreError
from clanbridge.oauth import AccessToken


logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ("GET", "PUT", "POST", "PATCH", "DELETE")
# Characters the remote store rejects inside keys.
FORBIDDEN_KEY_CHARS = frozenset("/.#$[]")


class TokenSource(Protocol):
    async def get_token(self) -> AccessToken: ...


def build_path(*segments: str) -> str:
    """Summary: Join identifiers into a `/`-delimited document tree path.

    Importance: Rejects identifiers that would address a different node than intended.
    Alternatives: Format paths with f-strings at each call site.
    """

    for segment in segments:
        if not isinstance(segment, str) or not segment:
            raise InvalidPathSegment(f"Path segment must be a non-empty string: {segment!r}")
        if FORBIDDEN_KEY_CHARS.intersection(segment):
            raise InvalidPathSegment(f"Path segment contains a reserved character: {segment!r}")
    return "/" + "/".join(segments)


class RestBridge:
    """Summary: Issues one authenticated HTTP call per logical read or write.

    Importance: Gives services get, set, merge, and delete semantics over the document tree.
    Alternatives: Batch writes behind the scenes and flush periodically.

    No retries are attempted here; callers decide what a failure means.
    """

    def __init__(
        self,
        base_url: str,
        tokens: TokenSource,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._tokens = tokens
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def request(self, path: str, method: str = "GET", body: Any = None) -> Any:
        """Summary: Send a single REST call for a path and return the decoded JSON.

        Importance: Central place where the access token is attached and failures are mapped.
        Alternatives: Let each service build URLs and handle responses.
        """

        method = method.upper()
        if method not in SUPPORTED_METHODS:
            raise ValueError(f"Unsupported method: {method}")
        if not path.startswith("/"):
            raise InvalidPathSegment(f"Path must start with '/': {path!r}")
        token = await self._tokens.get_token()
        url = f"{self._base_url}{path}.json"
        content = None
        headers = {}
        if method in ("PUT", "POST", "PATCH"):
            content = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"
        try:
            response = await self._client.request(
                method,
                url,
                params={"access_token": token.token},
                content=content,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed before a response: %s", method, path, exc)
            raise RemoteStoreError(None, path, str(exc)) from exc
        logger.debug("%s %s -> %s", method, path, response.status_code)
        if method == "DELETE" and response.status_code == 404:
            return None
        if response.is_error:
            raise RemoteStoreError(response.status_code, path, response.text)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteStoreError(response.status_code, path, "invalid JSON") from exc

    async def get(self, path: str) -> Any:
        return await self.request(path, "GET")

    async def put(self, path: str, value: Any) -> Any:
        """Replace the node at path with value."""

        return await self.request(path, "PUT", value)

    async def patch(self, path: str, updates: dict[str, Any]) -> Any:
        """Summary: Merge updates into the node at path.

        Importance: Keys may be relative multi-segment paths, so one call can touch many children.
        Alternatives: Issue one PUT per child.
        """

        return await self.request(path, "PATCH", updates)

    async def delete(self, path: str) -> None:
        await self.request(path, "DELETE")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
