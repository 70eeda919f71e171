"""Summary: Error taxonomy for the remote store bridge.

Importance: Lets callers tell configuration faults, transient failures, and missing data apart.
Alternatives: Raise RuntimeError everywhere and parse messages.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for errors raised by the bridge and the services on top of it."""


class CredentialsMissing(BridgeError):
    """Summary: Raised when the service account configuration is incomplete.

    Importance: Fails fast on a fatal configuration problem instead of calling the token endpoint.
    Alternatives: Let the identity provider reject an empty assertion.
    """

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing service account credentials: {', '.join(missing)}")


class TokenExchangeFailed(BridgeError):
    """Summary: Raised when the identity provider rejects the assertion exchange.

    Importance: Carries the HTTP status so callers can decide whether to retry.
    Alternatives: Surface the raw httpx exception.
    """

    def __init__(self, status: int | None, detail: str) -> None:
        self.status = status
        self.detail = detail
        super().__init__(f"Token exchange failed ({status}): {detail}")


class RemoteStoreError(BridgeError):
    """Summary: Raised when the remote store answers a REST call with a non-2xx status.

    Importance: Keeps the status and path together for logging and error mapping.
    Alternatives: Return None and let callers guess what happened.
    """

    def __init__(self, status: int | None, path: str, detail: str = "") -> None:
        self.status = status
        self.path = path
        self.detail = detail
        super().__init__(f"Remote store error {status} on {path}: {detail}".rstrip(": "))

    @property
    def is_transient(self) -> bool:
        """Summary: Whether a retry of the same call could succeed.

        Importance: 5xx and transport failures are transient, 4xx are caller errors.
        Alternatives: Let every caller inspect the status code itself.
        """

        return self.status is None or self.status >= 500


class NotFound(BridgeError):
    """Raised when a read succeeds but the addressed entity is absent."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class InvalidPathSegment(ValueError):
    """Raised when an identifier cannot be used as a document tree path segment."""
