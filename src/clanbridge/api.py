"""Summary: FastAPI application for ClanBridge.

Importance: Exposes user, notification, and messaging endpoints backed by the remote store.
Alternatives: Use a different web framework or serve only the CLI.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from clanbridge.app import AppServices, build_services
from clanbridge.config import AppConfig
from clanbridge.errors import (
    BridgeError,
    CredentialsMissing,
    NotFound,
    RemoteStoreError,
    TokenExchangeFailed,
)
from clanbridge.models import Principal


logger = logging.getLogger(__name__)


class NotificationActionRequest(BaseModel):
    """Summary: Request payload for notification actions.

    Importance: One endpoint covers create, mark read, mark all read, and delete.
    Alternatives: Give each action its own route.
    """

    action: Literal["create", "markRead", "markAllRead", "delete"]
    notification_id: str | None = None
    to_user_id: str | None = None
    type: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class OpenConversationRequest(BaseModel):
    """Summary: Request payload for opening a direct conversation.

    Importance: Returns an existing two-party conversation when there is one.
    Alternatives: Always create a new conversation.
    """

    user_id: str


class SendMessageRequest(BaseModel):
    """Summary: Request payload for sending a message.

    Importance: Either a conversation id or a recipient id addresses the message.
    Alternatives: Require clients to open a conversation first.
    """

    content: str = Field(min_length=1, max_length=4000)
    conversation_id: str | None = None
    recipient_id: str | None = None
    type: str = "text"


def _status_for(exc: BridgeError) -> int:
    """Summary: Map bridge errors to HTTP status codes.

    Importance: Transient upstream failures surface as 503 so clients can retry.
    Alternatives: Return 500 for every failure.
    """

    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, TokenExchangeFailed):
        return 503
    if isinstance(exc, RemoteStoreError):
        return 503 if exc.is_transient else 502
    return 500


def create_app(config: AppConfig, services: AppServices | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to ClanBridge services.

    Importance: Ensures the API layer shares one token provider and one cache.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    services = services or build_services(config)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        await services.aclose()

    app = FastAPI(title="ClanBridge API", version="0.1.0", lifespan=lifespan)
    app.state.services = services

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(_request: Request, exc: BridgeError) -> JSONResponse:
        status = _status_for(exc)
        if isinstance(exc, CredentialsMissing):
            logger.error("Service account is not configured: %s", exc)
            return JSONResponse(status_code=status, content={"error": "Internal server error"})
        if status >= 500:
            logger.warning("Upstream failure: %s", exc)
        return JSONResponse(status_code=status, content={"error": str(exc)})

    @app.exception_handler(PermissionError)
    async def permission_error_handler(_request: Request, exc: PermissionError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"error": "Access denied"})

    @app.exception_handler(ValueError)
    async def value_error_handler(_request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Only the trusted session proxy may call the API.
        Alternatives: Use mutual TLS between proxy and API.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    def require_principal(
        x_user_id: str | None = Header(default=None),
        x_user_name: str | None = Header(default=None),
        x_user_email: str | None = Header(default=None),
        x_user_image: str | None = Header(default=None),
    ) -> Principal:
        """Summary: Read the verified principal forwarded by the session layer.

        Importance: Identity verification happens upstream; this only rejects anonymous calls.
        Alternatives: Verify session cookies inside the API.
        """

        if not x_user_id:
            raise HTTPException(status_code=401, detail="Unauthorized")
        return Principal(user_id=x_user_id, name=x_user_name, email=x_user_email, image=x_user_image)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/users/me", dependencies=[Depends(require_api_key)])
    async def get_me(principal: Principal = Depends(require_principal)) -> dict[str, Any]:
        """Summary: Return the caller's profile and bump its last-seen time.

        Importance: The profile page polls this endpoint.
        Alternatives: Track presence through a websocket.
        """

        user = await services.users.require_user(principal.user_id)
        await services.users.update_last_seen(principal.user_id)
        return {"user": user}

    @app.get("/users/check/{user_id}", dependencies=[Depends(require_api_key)])
    async def check_user(
        user_id: str, principal: Principal = Depends(require_principal)
    ) -> dict[str, Any]:
        """Summary: Report whether a user is registered and their public fields.

        Importance: Clients check this before offering to start a conversation.
        Alternatives: Fail at send time only.
        """

        user = await services.users.get_user(user_id)
        registered = bool(user and user.get("isRegistered") is True)
        public = None
        if registered:
            public = {
                "discordId": user.get("discordId"),
                "username": user.get("username"),
                "displayName": user.get("displayName"),
                "avatar": user.get("avatar"),
                "lastSeen": user.get("lastSeen"),
            }
        return {"userId": user_id, "isRegistered": registered, "userData": public}

    @app.post("/users/register", dependencies=[Depends(require_api_key)])
    async def register_user(principal: Principal = Depends(require_principal)) -> dict[str, Any]:
        record = await services.users.register(principal)
        return {"success": True, "userData": record}

    @app.get("/notifications", dependencies=[Depends(require_api_key)])
    async def list_notifications(
        limit: int = Query(default=50, ge=1, le=500),
        unread_only: bool = False,
        principal: Principal = Depends(require_principal),
    ) -> dict[str, Any]:
        return await services.notifications.summary(principal.user_id, limit, unread_only)

    @app.post("/notifications", dependencies=[Depends(require_api_key)])
    async def notification_action(
        payload: NotificationActionRequest, principal: Principal = Depends(require_principal)
    ) -> dict[str, Any]:
        """Summary: Apply a notification action for the caller.

        Importance: Create targets another user; the other actions target the caller's own inbox.
        Alternatives: Split into REST resources per action.
        """

        notifications = services.notifications
        if payload.action == "create":
            if not payload.to_user_id or not payload.type:
                raise HTTPException(status_code=400, detail="Missing required fields")
            sender_info = await services.users.public_info(principal.user_id)
            notification = await notifications.create(
                payload.to_user_id,
                payload.type,
                from_user_id=principal.user_id,
                from_user_info=sender_info,
                data=payload.data,
            )
            return {"success": True, "notificationId": notification.id, "notification": notification.to_dict()}
        if payload.action == "markAllRead":
            updated = await notifications.mark_all_read(principal.user_id)
            return {"success": True, "updatedCount": updated}
        if not payload.notification_id:
            raise HTTPException(status_code=400, detail="Missing notification_id")
        if payload.action == "markRead":
            await notifications.mark_read(principal.user_id, payload.notification_id)
        else:
            await notifications.delete(principal.user_id, payload.notification_id)
        return {"success": True}

    @app.get("/conversations", dependencies=[Depends(require_api_key)])
    async def list_conversations(principal: Principal = Depends(require_principal)) -> dict[str, Any]:
        entries = await services.conversations.overview(principal.user_id)
        return {"conversations": entries, "total": len(entries)}

    @app.get("/conversations/{conversation_id}/messages", dependencies=[Depends(require_api_key)])
    async def list_messages(
        conversation_id: str, principal: Principal = Depends(require_principal)
    ) -> dict[str, Any]:
        """Summary: Return the messages of a conversation the caller takes part in.

        Importance: Each message carries its sender's public info.
        Alternatives: Return sender ids only.
        """

        conversations = services.conversations
        await conversations.require_participant(conversation_id, principal.user_id)
        messages = await conversations.get_messages(conversation_id)
        payload = []
        for message in messages:
            sender_info = await services.users.public_info(message.sender_id)
            payload.append({**message.to_dict(), "senderInfo": sender_info.to_record()})
        return {"messages": payload, "conversationId": conversation_id, "total": len(payload)}

    @app.post("/conversations/open", dependencies=[Depends(require_api_key)])
    async def open_conversation(
        payload: OpenConversationRequest, principal: Principal = Depends(require_principal)
    ) -> dict[str, Any]:
        conversation_id = await services.conversations.open_direct(principal.user_id, payload.user_id)
        return {"conversationId": conversation_id}

    @app.post("/messages", dependencies=[Depends(require_api_key)])
    async def send_message(
        payload: SendMessageRequest, principal: Principal = Depends(require_principal)
    ) -> dict[str, Any]:
        message = await services.conversations.send_message(
            principal,
            payload.content,
            conversation_id=payload.conversation_id,
            recipient_id=payload.recipient_id,
            message_type=payload.type,
        )
        sender_info = await services.users.public_info(principal.user_id)
        return {
            "success": True,
            "message": {**message.to_dict(), "senderInfo": sender_info.to_record()},
            "conversationId": message.conversation_id,
        }

    return app
