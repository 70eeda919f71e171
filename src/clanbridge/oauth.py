"""Summary: Service account OAuth2 token handling for the remote store.

Importance: Every REST call to the document database needs a short-lived bearer token.
Alternatives: Use the google-auth library or the Firebase Admin SDK.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx
from jose import jwt

from clanbridge.config import AppConfig
from clanbridge.errors import CredentialsMissing, TokenExchangeFailed


logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600
# Tokens are cached for 5/6 of their lifetime (50 minutes of an hour).
TOKEN_CACHE_FRACTION = 5 / 6


@dataclass(frozen=True)
class AccessToken:
    """Summary: Bearer token with the absolute time it stops being served from cache.

    Importance: Replaced wholesale on refresh so concurrent readers never see a half update.
    Alternatives: Keep the raw provider response and recompute expiry on every call.
    """

    token: str
    expires_at: float
    token_type: str | None = None

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at

    @staticmethod
    def from_response(payload: dict[str, Any], now: float) -> "AccessToken":
        """Summary: Build an AccessToken from a token endpoint payload.

        Importance: Shortens the advertised lifetime so a token never expires mid-request.
        Alternatives: Trust expires_in as-is and refresh on 401.
        """

        expires_in = payload.get("expires_in")
        if not isinstance(expires_in, (int, float)):
            expires_in = ASSERTION_LIFETIME_SECONDS
        return AccessToken(
            token=payload["access_token"],
            expires_at=now + expires_in * TOKEN_CACHE_FRACTION,
            token_type=payload.get("token_type"),
        )


def build_assertion(config: AppConfig, now: float) -> str:
    """Summary: Sign the JWT assertion exchanged for an access token.

    Importance: Proves the service identity to the token endpoint without a client secret.
    Alternatives: Use a pre-issued long-lived credential.
    """

    _ensure_credentials(config)
    issued_at = int(now)
    claims = {
        "iss": config.client_email,
        "scope": config.token_scope,
        "aud": config.token_url,
        "iat": issued_at,
        "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
    }
    return jwt.encode(claims, config.private_key, algorithm="RS256")


def _ensure_credentials(config: AppConfig) -> None:
    """Summary: Validate that service account credentials exist.

    Importance: Prevents confusing token exchange errors when credentials are missing.
    Alternatives: Allow requests to fail at the provider endpoint.
    """

    missing = [
        name
        for name, value in (
            ("client_email", config.client_email),
            ("private_key", config.private_key),
            ("project_id", config.project_id),
        )
        if not value
    ]
    if missing:
        raise CredentialsMissing(missing)


class TokenProvider:
    """Summary: Obtains and caches the service account access token.

    Importance: Keeps one valid token per process so most calls skip the token endpoint.
    Alternatives: Exchange a new assertion before every REST call.

    Concurrent callers that miss the cache at the same time may each run an exchange.
    The later result simply replaces the earlier one.
    """

    def __init__(
        self,
        config: AppConfig,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._client = client
        self._clock = clock
        self._cached: AccessToken | None = None

    async def get_token(self) -> AccessToken:
        """Summary: Return the cached token or exchange a new assertion for one.

        Importance: Attached to every remote store call by the REST bridge.
        Alternatives: Refresh on a background timer.
        """

        cached = self._cached
        if cached is not None and cached.is_fresh(self._clock()):
            return cached
        now = self._clock()
        assertion = build_assertion(self._config, now)
        payload = await self._post_form(
            self._config.token_url,
            {"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
        )
        if not isinstance(payload, dict):
            raise TokenExchangeFailed(None, "Token response was not a JSON object")
        if "access_token" not in payload:
            raise TokenExchangeFailed(None, "Response did not include an access_token")
        token = AccessToken.from_response(payload, now)
        self._cached = token
        logger.info("Refreshed service account token for %s.", self._config.client_email)
        return token

    def invalidate(self) -> None:
        """Drop the cached token so the next call exchanges a new one."""

        self._cached = None

    async def _post_form(self, url: str, payload: dict[str, str]) -> dict[str, Any]:
        """Summary: Send a form-encoded POST request and parse JSON.

        Importance: Maps transport and HTTP failures to TokenExchangeFailed.
        Alternatives: Let httpx exceptions escape to callers.
        """

        try:
            if self._client is not None:
                response = await self._client.post(url, data=payload)
            else:
                async with httpx.AsyncClient(timeout=self._config.http_timeout) as client:
                    response = await client.post(url, data=payload)
        except httpx.HTTPError as exc:
            raise TokenExchangeFailed(None, str(exc)) from exc
        if response.is_error:
            logger.warning("Token endpoint answered %s.", response.status_code)
            raise TokenExchangeFailed(response.status_code, response.text or response.reason_phrase)
        try:
            return response.json()
        except ValueError as exc:
            raise TokenExchangeFailed(response.status_code, "invalid JSON") from exc
